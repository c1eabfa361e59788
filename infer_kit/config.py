from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .charset import RangeSpec, resolve


@dataclass(frozen=True)
class PipelineProfile:
    """
    JSON profile describing which models to load and how to decode them.

    At least one of `detection_model` / `ocr_model` must be set; an OCR model
    needs a `charset` file. Relative paths are kept as written and resolved
    against the profile's directory by the loader.
    """

    schema_version: int
    detection_model: Optional[str] = None
    ocr_model: Optional[str] = None
    charset: Optional[str] = None
    charset_range: Optional[RangeSpec] = None
    backend: Optional[str] = None
    canvas_size: Tuple[int, int] = (416, 416)
    iou_threshold: float = 0.45
    score_threshold: float = 0.1
    debug_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("pipeline profile schema_version must be 1")
        if self.detection_model is None and self.ocr_model is None:
            raise ValueError("pipeline profile needs detection_model or ocr_model")
        if self.ocr_model is not None and self.charset is None:
            raise ValueError("ocr_model requires a charset file")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ValueError("score_threshold must be within [0, 1]")
        if self.charset_range is not None:
            # Fail at load time rather than on first decode.
            resolve(self.charset_range)


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _canvas_size(payload: Dict[str, Any]) -> Tuple[int, int]:
    value = payload.get("canvas_size", [416, 416])
    if (
        not isinstance(value, list)
        or len(value) != 2
        or any(isinstance(v, bool) or not isinstance(v, int) or v <= 0 for v in value)
    ):
        raise ValueError("canvas_size must be a list of two positive integers [width, height]")
    return int(value[0]), int(value[1])


def load_pipeline_profile(path: Union[str, Path]) -> PipelineProfile:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline profile must be a JSON object")

    allowed = {
        "schema_version",
        "detection_model",
        "ocr_model",
        "charset",
        "charset_range",
        "backend",
        "canvas_size",
        "iou_threshold",
        "score_threshold",
        "debug_dir",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline profile keys: {unknown}")

    charset_range = payload.get("charset_range")
    if charset_range is not None and (isinstance(charset_range, bool) or not isinstance(charset_range, (int, str))):
        raise ValueError("charset_range must be an integer code or a string of characters")

    return PipelineProfile(
        schema_version=_require_int(payload, "schema_version"),
        detection_model=_optional_str(payload, "detection_model"),
        ocr_model=_optional_str(payload, "ocr_model"),
        charset=_optional_str(payload, "charset"),
        charset_range=charset_range,
        backend=_optional_str(payload, "backend"),
        canvas_size=_canvas_size(payload),
        iou_threshold=_optional_number(payload, "iou_threshold", 0.45),
        score_threshold=_optional_number(payload, "score_threshold", 0.1),
        debug_dir=_optional_str(payload, "debug_dir"),
    )
