from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Box:
    """
    Final detection box in original image pixels (x1 <= x2, y1 <= y2).
    """

    x1: int
    y1: int
    x2: int
    y2: int

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x1, self.y1, self.x2, self.y2


@dataclass(frozen=True)
class OcrInput:
    """
    Grayscale line image scaled to [-1, 1], flattened row-major.
    """

    data: np.ndarray
    width: int
    height: int

    @property
    def tensor(self) -> np.ndarray:
        # NCHW with a single channel
        return self.data.reshape(1, 1, self.height, self.width)


@dataclass(frozen=True)
class DetectionInput:
    """
    Letterboxed canvas flattened in CHW order.

    `ratio` is the uniform scale applied to the source image and must be passed
    unchanged to box decoding.
    """

    data: np.ndarray
    canvas_size: Tuple[int, int]
    width: int
    height: int
    ratio: float

    @property
    def tensor(self) -> np.ndarray:
        canvas_w, canvas_h = self.canvas_size
        return self.data.reshape(1, 3, canvas_h, canvas_w)
