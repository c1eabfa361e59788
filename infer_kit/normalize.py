"""
Image normalization for the two model families.

- OCR: fixed 64 px height, grayscale, values scaled to [-1, 1]
- Detection: letterbox into a fixed canvas filled with 114, CHW float output

Both accept a path, an encoded image blob, or an already decoded OpenCV array.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from .errors import DecodeError
from .letterbox import letterbox
from .types import DetectionInput, OcrInput


logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, bytearray, memoryview, np.ndarray]

OCR_TARGET_HEIGHT = 64
DETECTION_CANVAS = (416, 416)
LETTERBOX_FILL = 114
_CHANNEL_ORDERS = ("bgr", "rgb")


def load_image(source: ImageSource) -> np.ndarray:
    """
    Decode `source` into a new OpenCV-style array (H, W), (H, W, 3) BGR or (H, W, 4) BGRA.

    Raises DecodeError when the file is missing/unreadable or the bytes are not an image.
    """

    if isinstance(source, np.ndarray):
        img = source.copy()
    elif isinstance(source, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(source, dtype=np.uint8)
        if buf.size == 0:
            raise DecodeError("Image buffer is empty")
        try:
            img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
        except cv2.error as exc:
            raise DecodeError(f"Could not decode image buffer ({buf.size} bytes)") from exc
        if img is None:
            raise DecodeError(f"Could not decode image buffer ({buf.size} bytes)")
    elif isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise DecodeError(f"Could not read image at path: {path}")
        img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if img is None:
            raise DecodeError(f"Could not decode image at path: {path}")
    else:
        raise TypeError(f"Unsupported image source type: {type(source).__name__}")

    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    elif img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)

    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]
    if img.ndim not in (2, 3) or (img.ndim == 3 and img.shape[2] not in (3, 4)):
        raise DecodeError(f"Unsupported pixel layout {img.shape}")
    if img.shape[0] == 0 or img.shape[1] == 0:
        raise DecodeError(f"Image has no pixels {img.shape}")
    return img


def _to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def _to_three_channels(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        # alpha is ignored, not composited
        return np.ascontiguousarray(img[:, :, :3])
    return img


def normalize_ocr(source: ImageSource, target_height: int = OCR_TARGET_HEIGHT) -> OcrInput:
    img = load_image(source)
    h, w = img.shape[:2]

    target_width = max(int(np.floor(w * target_height / h)), 1)
    if (w, h) != (target_width, target_height):
        img = cv2.resize(img, (target_width, target_height), interpolation=cv2.INTER_LINEAR)
    gray = _to_gray(img)

    data = ((gray.astype(np.float32) / 255.0 - 0.5) / 0.5).reshape(-1)
    logger.debug("OCR input %dx%d -> %dx%d", w, h, target_width, target_height)
    return OcrInput(data=data, width=target_width, height=target_height)


def normalize_detection(
    source: ImageSource,
    canvas_size: Tuple[int, int] = DETECTION_CANVAS,
    fill: int = LETTERBOX_FILL,
    source_order: str = "bgr",
    model_order: str = "bgr",
) -> DetectionInput:
    """
    Letterbox `source` into `canvas_size` (width, height) and flatten it channel-first.

    `source_order` is the channel order of decoded pixels (OpenCV decodes to BGR),
    `model_order` the order the network was trained on.
    """

    _check_orders(source_order, model_order)
    return prepare_detection(load_image(source), canvas_size, fill, source_order, model_order)


def _check_orders(source_order: str, model_order: str) -> None:
    if source_order not in _CHANNEL_ORDERS or model_order not in _CHANNEL_ORDERS:
        raise ValueError(f"Channel order must be one of {_CHANNEL_ORDERS}, got {source_order!r} -> {model_order!r}")


def prepare_detection(
    image: np.ndarray,
    canvas_size: Tuple[int, int] = DETECTION_CANVAS,
    fill: int = LETTERBOX_FILL,
    source_order: str = "bgr",
    model_order: str = "bgr",
) -> DetectionInput:
    """
    Same as `normalize_detection` for an array already returned by `load_image`.

    `image` is read, never modified or copied.
    """

    _check_orders(source_order, model_order)
    img = _to_three_channels(image)
    orig_h, orig_w = img.shape[:2]

    padded, ratio = letterbox(img, new_shape=canvas_size, color=(fill, fill, fill))

    if source_order != model_order:
        padded = padded[:, :, ::-1]

    data = np.ascontiguousarray(np.transpose(padded, (2, 0, 1)), dtype=np.float32).reshape(-1)
    logger.debug("Detection input %dx%d letterboxed into %s (ratio=%.6f)", orig_w, orig_h, canvas_size, ratio)
    return DetectionInput(
        data=data,
        canvas_size=(int(canvas_size[0]), int(canvas_size[1])),
        width=orig_w,
        height=orig_h,
        ratio=ratio,
    )
