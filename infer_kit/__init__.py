"""
Pre/post-processing around OCR and object-detection models.

Turns images into the tensors the models expect and turns raw model output
into text (greedy sequence decode) or boxes (grid decode + NMS). Model
execution itself is delegated to an `infer_fn` or an optional backend.
"""

from .errors import DecodeError, InferKitError, ShapeMismatchError, UnsupportedRangeError
from .types import Box, DetectionInput, OcrInput
from .charset import CharsetRange, CharsetSpec, resolve
from .metadata import load_charset
from .letterbox import letterbox
from .normalize import load_image, normalize_detection, normalize_ocr, prepare_detection
from .sequence import argmax_sequence, collapse, decode_ocr
from .nms import NMSConfig, multiclass_nms, nms
from .postprocess import (
    DetectionPostConfig,
    DetectionPostprocessor,
    clip_boxes,
    decode_boxes,
    decode_detections,
    make_grids,
)
from .config import PipelineProfile, load_pipeline_profile
from .runtime import (
    DetectionConfig,
    DetectionPipeline,
    OcrPipeline,
    load_detection_pipeline,
    load_ocr_pipeline,
    load_pipelines_from_config,
)
from .visualize import draw_boxes

__all__ = [
    "InferKitError",
    "UnsupportedRangeError",
    "DecodeError",
    "ShapeMismatchError",
    "Box",
    "DetectionInput",
    "OcrInput",
    "CharsetRange",
    "CharsetSpec",
    "resolve",
    "load_charset",
    "letterbox",
    "load_image",
    "normalize_ocr",
    "normalize_detection",
    "prepare_detection",
    "argmax_sequence",
    "collapse",
    "decode_ocr",
    "NMSConfig",
    "nms",
    "multiclass_nms",
    "DetectionPostConfig",
    "DetectionPostprocessor",
    "make_grids",
    "decode_boxes",
    "clip_boxes",
    "decode_detections",
    "PipelineProfile",
    "load_pipeline_profile",
    "DetectionConfig",
    "DetectionPipeline",
    "OcrPipeline",
    "load_detection_pipeline",
    "load_ocr_pipeline",
    "load_pipelines_from_config",
    "draw_boxes",
]
