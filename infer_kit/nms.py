from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import ShapeMismatchError


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    score_threshold: float = 0.1
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if self.max_detections is not None and self.max_detections < 0:
            raise ValueError("max_detections must be >= 0")


def _check_boxes(boxes: np.ndarray, scores: np.ndarray) -> None:
    if boxes.ndim != 2 or boxes.shape[1] != 4:
        raise ShapeMismatchError(f"Boxes must have shape (N, 4), got {boxes.shape}")
    if scores.ndim != 1 or scores.shape[0] != boxes.shape[0]:
        raise ShapeMismatchError(f"Scores shape {scores.shape} does not match {boxes.shape[0]} boxes")


def box_areas(boxes: np.ndarray) -> np.ndarray:
    # Inclusive pixel convention: a box from 0 to 9 is 10 pixels wide.
    return (boxes[:, 2] - boxes[:, 0] + 1) * (boxes[:, 3] - boxes[:, 1] + 1)


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    w = np.maximum(0.0, xx2 - xx1 + 1)
    h = np.maximum(0.0, yy2 - yy1 + 1)
    inter = w * h
    area = (box[2] - box[0] + 1) * (box[3] - box[1] + 1)
    return inter / (area + box_areas(boxes) - inter)


def nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    iou_threshold: float = 0.45,
    max_detections: Optional[int] = None,
) -> np.ndarray:
    """
    Single-class greedy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Equal scores keep their original index order.
    """

    boxes = np.asarray(boxes, dtype=np.float64)
    scores = np.asarray(scores, dtype=np.float64)
    if boxes.size == 0 and scores.size == 0:
        return np.empty((0,), dtype=np.int64)
    _check_boxes(boxes, scores)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        if max_detections is not None and len(keep) >= max_detections:
            break
        i = order[0]
        keep.append(i)

        rest = order[1:]
        iou = iou_one_to_many(boxes[i], boxes[rest])

        inds = np.where(iou <= iou_threshold)[0]
        order = rest[inds]

    return np.array(keep, dtype=np.int64)


def multiclass_nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    iou_threshold: float = 0.45,
    score_threshold: float = 0.1,
    max_detections: Optional[int] = None,
) -> np.ndarray:
    """
    Class-agnostic wrapper: drop scores <= `score_threshold`, run NMS on the rest.

    Returns the kept boxes (K, 4); scores are not part of the output.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    _check_boxes(boxes, scores)

    mask = scores > score_threshold
    valid_boxes, valid_scores = boxes[mask], scores[mask]
    if valid_boxes.shape[0] == 0:
        return valid_boxes

    keep = nms(valid_boxes, valid_scores, iou_threshold, max_detections=max_detections)
    return valid_boxes[keep]
