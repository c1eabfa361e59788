from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence, Tuple

import numpy as np

from .errors import ShapeMismatchError
from .nms import NMSConfig, multiclass_nms
from .types import Box, DetectionInput


logger = logging.getLogger(__name__)

STRIDES: Tuple[int, ...] = (8, 16, 32)
# [cx, cy, w, h, objectness, class0, ...]
MIN_ATTRIBUTES = 6


@lru_cache(maxsize=16)
def _grids_cached(canvas_size: Tuple[int, int], strides: Tuple[int, ...]) -> Tuple[np.ndarray, np.ndarray]:
    canvas_w, canvas_h = canvas_size
    grids = []
    expanded_strides = []
    for stride in strides:
        hsize = canvas_h // stride
        wsize = canvas_w // stride
        xv, yv = np.meshgrid(np.arange(wsize), np.arange(hsize))
        grid = np.stack((xv, yv), axis=2).reshape(-1, 2)
        grids.append(grid)
        expanded_strides.append(np.full((grid.shape[0],), stride))

    grid_arr = np.concatenate(grids, axis=0).astype(np.float64)
    stride_arr = np.concatenate(expanded_strides, axis=0).astype(np.float64)
    grid_arr.setflags(write=False)
    stride_arr.setflags(write=False)
    return grid_arr, stride_arr


def make_grids(
    canvas_size: Tuple[int, int],
    strides: Sequence[int] = STRIDES,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Grid cell coordinates (N, 2) as (x, y) and the stride of each cell (N,).

    Cells are row-major per stride level, levels concatenated in `strides` order,
    which must match the order the network emits its anchors in.
    Returned arrays are shared and read-only.
    """

    canvas_w, canvas_h = int(canvas_size[0]), int(canvas_size[1])
    strides = tuple(int(s) for s in strides)
    if canvas_w <= 0 or canvas_h <= 0:
        raise ValueError(f"canvas_size must be positive, got {canvas_size}")
    if not strides or any(s <= 0 for s in strides):
        raise ValueError(f"strides must be positive, got {strides}")
    return _grids_cached((canvas_w, canvas_h), strides)


def _as_predictions(raw: Sequence[float], dims: Sequence[int]) -> np.ndarray:
    # copy: decoding writes into the array
    p = np.array(raw, dtype=np.float64).reshape(-1)
    dims = tuple(int(d) for d in dims)
    if any(d < 0 for d in dims):
        raise ShapeMismatchError(f"Negative dimension in {dims}")
    expected = int(np.prod(dims)) if dims else 0
    if p.size != expected:
        raise ShapeMismatchError(f"Raw output has {p.size} elements but dims {dims} declare {expected}")

    if len(dims) == 3:
        if dims[0] != 1:
            raise ShapeMismatchError(f"Batch > 1 is not supported (got dims {dims}). Pass one image at a time.")
        dims = dims[1:]
    if len(dims) != 2:
        raise ShapeMismatchError(f"Detection output must be (anchors, attributes), got dims {dims}")
    if dims[1] < MIN_ATTRIBUTES:
        raise ShapeMismatchError(f"Expected at least {MIN_ATTRIBUTES} attributes per anchor, got {dims[1]}")
    return p.reshape(dims)


def decode_outputs(
    raw: Sequence[float],
    dims: Sequence[int],
    canvas_size: Tuple[int, int],
    strides: Sequence[int] = STRIDES,
) -> np.ndarray:
    """
    Turn grid-relative regression outputs into canvas pixels (center form).

    Returns a new (A, attributes) array; columns 0-3 become cx, cy, w, h.
    """

    preds = _as_predictions(raw, dims)
    grids, expanded_strides = make_grids(canvas_size, strides)
    if preds.shape[0] != grids.shape[0]:
        raise ShapeMismatchError(
            f"Output has {preds.shape[0]} anchors but canvas {tuple(canvas_size)} with strides "
            f"{tuple(strides)} yields {grids.shape[0]}"
        )

    preds[:, :2] = (preds[:, :2] + grids) * expanded_strides[:, None]
    preds[:, 2:4] = np.exp(preds[:, 2:4]) * expanded_strides[:, None]
    return preds


def scores_from_predictions(preds: np.ndarray) -> np.ndarray:
    # Class-agnostic: objectness times the best class probability.
    return preds[:, 4] * np.max(preds[:, 5:], axis=1)


def cxcywh_to_xyxy(boxes: np.ndarray, ratio: float = 1.0) -> np.ndarray:
    """
    Convert center-form boxes to corners and undo the letterbox scale.
    """

    if ratio <= 0:
        raise ValueError(f"ratio must be > 0, got {ratio}")
    cx, cy, w_box, h_box = np.asarray(boxes, dtype=np.float64).reshape(-1, 4).T
    x1 = cx - w_box / 2
    y1 = cy - h_box / 2
    x2 = cx + w_box / 2
    y2 = cy + h_box / 2
    return np.stack([x1, y1, x2, y2], axis=1) / ratio


def decode_boxes(
    raw: Sequence[float],
    dims: Sequence[int],
    canvas_size: Tuple[int, int],
    ratio: float,
    strides: Sequence[int] = STRIDES,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Decode every anchor into an xyxy box in original image pixels and a score.
    """

    preds = decode_outputs(raw, dims, canvas_size, strides)
    boxes = cxcywh_to_xyxy(preds[:, :4], ratio)
    scores = scores_from_predictions(preds)
    return boxes, scores


def clip_boxes(boxes: np.ndarray, width: int, height: int) -> List[Box]:
    """
    Clamp x1/y1 at 0 and x2/y2 at the image size, truncating coordinates to int.
    """

    out = []
    for x1, y1, x2, y2 in np.asarray(boxes, dtype=np.float64).reshape(-1, 4):
        out.append(
            Box(
                x1=0 if x1 < 0 else int(x1),
                y1=0 if y1 < 0 else int(y1),
                x2=int(width) if x2 > width else int(x2),
                y2=int(height) if y2 > height else int(y2),
            )
        )
    return out


def decode_detections(
    raw: Sequence[float],
    dims: Sequence[int],
    canvas_size: Tuple[int, int],
    width: int,
    height: int,
    ratio: float,
    iou_threshold: float = 0.45,
    score_threshold: float = 0.1,
) -> List[Box]:
    """
    Full detection decode: grid decode -> class-agnostic NMS -> clipping.

    Arg:
        raw: flat model output
        dims: its shape, (A, 5 + C) or (1, A, 5 + C)
        canvas_size: (width, height) of the letterboxed model input
        width, height: original image size
        ratio: letterbox scale from normalization
    """

    post = DetectionPostprocessor(
        DetectionPostConfig(nms=NMSConfig(iou_threshold=iou_threshold, score_threshold=score_threshold))
    )
    return post.decode(raw, dims, canvas_size, (width, height), ratio)


@dataclass(frozen=True)
class DetectionPostConfig:
    nms: NMSConfig = NMSConfig()
    strides: Tuple[int, ...] = STRIDES


class DetectionPostprocessor:
    """
    Decode raw detector output for one letterboxed image.

    Expected layout (per image): (A, 5 + C) = [cx, cy, w, h, obj, class_scores...]
    with A = sum over strides of (canvas_h // s) * (canvas_w // s).
    """

    def __init__(self, cfg: DetectionPostConfig = DetectionPostConfig()):
        self.cfg = cfg

    def process(self, output: np.ndarray, prep: DetectionInput) -> List[Box]:
        output = np.asarray(output)
        return self.decode(output.reshape(-1), output.shape, prep.canvas_size, (prep.width, prep.height), prep.ratio)

    def decode(
        self,
        raw: Sequence[float],
        dims: Sequence[int],
        canvas_size: Tuple[int, int],
        orig_size: Tuple[int, int],
        ratio: float,
    ) -> List[Box]:
        boxes, scores = decode_boxes(raw, dims, canvas_size, ratio, self.cfg.strides)

        nms_cfg = self.cfg.nms
        kept = multiclass_nms(
            boxes,
            scores,
            iou_threshold=nms_cfg.iou_threshold,
            score_threshold=nms_cfg.score_threshold,
            max_detections=nms_cfg.max_detections,
        )
        logger.debug("Decoded %d anchors, kept %d boxes after NMS", boxes.shape[0], kept.shape[0])

        orig_w, orig_h = orig_size
        return clip_boxes(kept, orig_w, orig_h)
