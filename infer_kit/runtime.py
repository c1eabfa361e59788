from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .charset import CharsetSpec, RangeSpec, resolve
from .config import load_pipeline_profile
from .metadata import load_charset
from .normalize import (
    DETECTION_CANVAS,
    LETTERBOX_FILL,
    OCR_TARGET_HEIGHT,
    ImageSource,
    load_image,
    normalize_detection,
    normalize_ocr,
    prepare_detection,
)
from .nms import NMSConfig
from .postprocess import DetectionPostConfig, DetectionPostprocessor
from .sequence import decode_ocr
from .types import Box, DetectionInput, OcrInput
from .visualize import draw_boxes, dump_debug_image


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], np.ndarray]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Walk up from `start` (default: cwd) to the first directory holding a marker.

    Falls back to `start` itself when nothing matches.
    """

    p = Path(start).resolve() if start is not None else Path.cwd().resolve()
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        if any((parent / m).exists() for m in markers):
            return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Absolute paths pass through; relative ones resolve against `root`
    ("auto" or None means the project root).
    """

    p = Path(path)
    if p.is_absolute():
        return p
    base = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (base / p).resolve()


@dataclass(frozen=True)
class DetectionConfig:
    canvas_size: Tuple[int, int] = DETECTION_CANVAS
    fill: int = LETTERBOX_FILL
    # OpenCV decodes to BGR; the detector was trained on BGR input.
    source_order: str = "bgr"
    model_order: str = "bgr"
    post: DetectionPostConfig = DetectionPostConfig()
    debug_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.canvas_size) != 2 or min(self.canvas_size) < 32:
            raise ValueError(f"canvas_size must be (width, height) >= 32, got {self.canvas_size}")
        if not 0 <= self.fill <= 255:
            raise ValueError("fill must be within [0, 255]")


class DetectionPipeline:
    """
    Letterbox -> model call -> grid decode -> NMS -> clip.

    Accepts a path, encoded bytes, or a decoded BGR array and returns `Box`
    objects in original image pixels.
    """

    def __init__(self, infer_fn: InferFn, cfg: DetectionConfig = DetectionConfig(), *, backend: Optional[object] = None):
        self._infer_fn = infer_fn
        self.backend = backend
        self.cfg = cfg
        self.post = DetectionPostprocessor(cfg.post)

    def preprocess(self, source: ImageSource) -> DetectionInput:
        return normalize_detection(
            source,
            canvas_size=self.cfg.canvas_size,
            fill=self.cfg.fill,
            source_order=self.cfg.source_order,
            model_order=self.cfg.model_order,
        )

    def postprocess(self, output: np.ndarray, prep: DetectionInput) -> List[Box]:
        return self.post.process(output, prep)

    def __call__(self, source: ImageSource) -> List[Box]:
        image = load_image(source)
        prep = prepare_detection(
            image,
            canvas_size=self.cfg.canvas_size,
            fill=self.cfg.fill,
            source_order=self.cfg.source_order,
            model_order=self.cfg.model_order,
        )
        if self.cfg.debug_dir:
            dump_debug_image(prep.tensor[0], self.cfg.debug_dir, "pre-process.jpg")

        output = np.asarray(self._infer_fn(prep.tensor))
        boxes = self.postprocess(output, prep)

        if self.cfg.debug_dir:
            dump_debug_image(draw_boxes(image, boxes), self.cfg.debug_dir, "post-process.jpg")
        return boxes


class OcrPipeline:
    """
    Resize to 64 px height -> model call -> greedy decode.

    The charset restriction is fixed per instance; `with_ranges` returns a new
    pipeline so an instance can be shared across threads.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        charset: Sequence[str],
        spec: Optional[CharsetSpec] = None,
        *,
        target_height: int = OCR_TARGET_HEIGHT,
        backend: Optional[object] = None,
    ):
        if not charset:
            raise ValueError("charset must not be empty")
        self._infer_fn = infer_fn
        self.backend = backend
        self.charset = tuple(charset)
        self.spec = spec if spec is not None else CharsetSpec.unrestricted()
        self.target_height = target_height

    def with_ranges(self, range_spec: RangeSpec) -> "OcrPipeline":
        return self.with_spec(resolve(range_spec))

    def with_spec(self, spec: CharsetSpec) -> "OcrPipeline":
        return OcrPipeline(
            self._infer_fn,
            self.charset,
            spec,
            target_height=self.target_height,
            backend=self.backend,
        )

    def preprocess(self, source: ImageSource) -> OcrInput:
        return normalize_ocr(source, target_height=self.target_height)

    def postprocess(self, output: np.ndarray) -> str:
        output = np.asarray(output)
        return decode_ocr(output.reshape(-1), output.shape, self.charset, self.spec)

    def __call__(self, source: ImageSource) -> str:
        prep = self.preprocess(source)
        output = self._infer_fn(prep.tensor)
        return self.postprocess(output)


def _make_backend(
    model_path: Path,
    backend: Optional[str],
    *,
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
):
    chosen = backend
    if chosen is None:
        suffix = model_path.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    logger.debug("Loading %s with backend %s", model_path, chosen)
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(model_path, OnnxRuntimeBackendConfig(providers=onnx_providers))

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return TorchScriptBackend(model_path, TorchScriptBackendConfig(device=torch_device))

    raise ValueError(f"Unsupported backend: {backend!r}")


def load_detection_pipeline(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    cfg: DetectionConfig = DetectionConfig(),
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
) -> DetectionPipeline:
    """
    Create a detection pipeline for a model on disk.

        pipe = load_detection_pipeline("models/detector.onnx")
        boxes = pipe("captcha.png")
    """

    resolved = resolve_path(model_path, root=root)
    model = _make_backend(resolved, backend, onnx_providers=onnx_providers, torch_device=torch_device)
    return DetectionPipeline(model.infer, cfg, backend=model)


def load_ocr_pipeline(
    model_path: PathLike,
    charset_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    ranges: Optional[RangeSpec] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
) -> OcrPipeline:
    """
    Create an OCR pipeline from a model file and its charset file.

    `ranges` takes a `CharsetRange` code or a literal string of allowed characters.
    """

    resolved = resolve_path(model_path, root=root)
    charset = load_charset(resolve_path(charset_path, root=root))
    spec = resolve(ranges) if ranges is not None else None
    model = _make_backend(resolved, backend, onnx_providers=onnx_providers, torch_device=torch_device)
    return OcrPipeline(model.infer, charset, spec, backend=model)


def load_pipelines_from_config(
    profile_path: PathLike,
) -> Tuple[Optional[DetectionPipeline], Optional[OcrPipeline]]:
    """
    Build the pipelines a JSON profile describes; either may be None.

    Relative model/charset paths resolve against the profile's directory.
    """

    profile_path = Path(profile_path).resolve()
    profile = load_pipeline_profile(profile_path)
    root = profile_path.parent

    detection = None
    if profile.detection_model is not None:
        cfg = DetectionConfig(
            canvas_size=profile.canvas_size,
            post=DetectionPostConfig(
                nms=NMSConfig(iou_threshold=profile.iou_threshold, score_threshold=profile.score_threshold)
            ),
            debug_dir=str(resolve_path(profile.debug_dir, root=root)) if profile.debug_dir else None,
        )
        detection = load_detection_pipeline(profile.detection_model, backend=profile.backend, root=root, cfg=cfg)

    ocr = None
    if profile.ocr_model is not None:
        ocr = load_ocr_pipeline(
            profile.ocr_model,
            profile.charset,
            backend=profile.backend,
            root=root,
            ranges=profile.charset_range,
        )
    return detection, ocr
