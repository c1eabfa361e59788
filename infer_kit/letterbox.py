from typing import Tuple

import numpy as np


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (416, 416),
    color: Tuple[int, int, int] = (114, 114, 114),
) -> Tuple[np.ndarray, float]:
    """
    Resize with one uniform scale and paste into a constant-filled canvas.

    The resized image sits in the top-left corner; the right/bottom remainder
    keeps `color`. No centering, so decoded boxes only need division by `ratio`.

    Returns:
        padded: (H, W, 3) uint8 canvas
        ratio: scale applied to both axes (new / old)
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {image.shape}")

    h, w = image.shape[:2]
    new_w, new_h = new_shape

    r = min(new_w / w, new_h / h)
    # Half-up rounding, not banker's rounding.
    resized_w, resized_h = int(np.floor(w * r + 0.5)), int(np.floor(h * r + 0.5))
    # Guard rounding drift on extreme aspect ratios.
    resized_w = min(max(resized_w, 1), new_w)
    resized_h = min(max(resized_h, 1), new_h)

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    padded = np.empty((new_h, new_w, 3), dtype=np.uint8)
    padded[...] = np.asarray(color, dtype=np.uint8)
    padded[:resized_h, :resized_w] = image

    return padded, r
