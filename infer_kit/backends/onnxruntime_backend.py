from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np


PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    - providers: ORT execution providers; None lets ORT pick (CPU when nothing else is built in)
    - input_name/output_name: override the first input/output if the export has several
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None


class OnnxRuntimeBackend:
    """
    Runs an exported detector or OCR model with ONNX Runtime.

    `infer` takes the NCHW float32 tensor built by the normalizers and
    returns the selected output as a NumPy array (shape preserved).
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), providers=providers)
        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        tensor = np.ascontiguousarray(tensor, dtype=np.float32)
        outputs = self.session.run([self.output_name], {self.input_name: tensor})
        return np.asarray(outputs[0])
