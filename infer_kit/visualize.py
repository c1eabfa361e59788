from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Tuple, Union

import numpy as np

from .types import Box


logger = logging.getLogger(__name__)


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for drawing. Install with `pip install opencv-python`.") from e
    return cv2


def draw_boxes(
    image_bgr: np.ndarray,
    boxes: Iterable[Box],
    *,
    color: Tuple[int, int, int] = (0, 0, 255),
    thickness: int = 2,
) -> np.ndarray:
    """
    Draw boxes on an OpenCV BGR image and return a copy.
    """

    cv2 = _require_cv2()

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim == 2:
        out = cv2.cvtColor(image_bgr, cv2.COLOR_GRAY2BGR)
    elif image_bgr.ndim == 3 and image_bgr.shape[2] in (3, 4):
        out = np.ascontiguousarray(image_bgr[:, :, :3]).copy()
    else:
        raise ValueError(f"Expected image shape (H, W) or (H, W, 3|4), got {image_bgr.shape}")

    h, w = out.shape[:2]
    for box in boxes:
        x1, y1, x2, y2 = box.as_xyxy()
        p1 = (int(np.clip(x1, 0, w - 1)), int(np.clip(y1, 0, h - 1)))
        p2 = (int(np.clip(x2, 0, w - 1)), int(np.clip(y2, 0, h - 1)))
        cv2.rectangle(out, p1, p2, color, thickness=thickness)
    return out


def dump_debug_image(image: np.ndarray, debug_dir: Union[str, Path], name: str) -> Path:
    """
    Write an intermediate image to `debug_dir/name`, creating the directory.

    CHW float canvases are converted back to HWC uint8 first.
    """

    cv2 = _require_cv2()

    img = np.asarray(image)
    if img.ndim == 3 and img.shape[0] in (1, 3) and img.shape[2] not in (1, 3, 4):
        img = np.transpose(img, (1, 2, 0))
    if img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)

    out_dir = Path(debug_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / name
    if not cv2.imwrite(str(path), img):
        raise OSError(f"Could not write debug image: {path}")
    logger.debug("Wrote debug image %s", path)
    return path
