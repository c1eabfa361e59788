from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .charset import CharsetSpec
from .errors import ShapeMismatchError


logger = logging.getLogger(__name__)

BLANK_INDEX = 0


def _check_dims(raw: np.ndarray, dims: Sequence[int]) -> tuple:
    dims = tuple(int(d) for d in dims)
    if any(d < 0 for d in dims):
        raise ShapeMismatchError(f"Negative dimension in {dims}")
    expected = int(np.prod(dims)) if dims else 0
    if raw.size != expected:
        raise ShapeMismatchError(f"Raw output has {raw.size} elements but dims {dims} declare {expected}")
    return dims


def argmax_sequence(raw: Sequence[float], dims: Sequence[int]) -> np.ndarray:
    """
    Reshape the flat (batch=1, timestep, class) output and take arg-max over classes.
    """

    p = np.asarray(raw, dtype=np.float32).reshape(-1)
    dims = _check_dims(p, dims)
    if len(dims) != 3:
        raise ShapeMismatchError(f"OCR output must be 3-D (batch, timestep, class), got dims {dims}")
    if dims[0] != 1:
        raise ShapeMismatchError(f"Batch > 1 is not supported (got dims {dims}). Pass one image at a time.")
    if dims[1] == 0:
        return np.empty((0,), dtype=np.int64)
    if dims[2] == 0:
        raise ShapeMismatchError(f"OCR output has no classes (dims {dims})")

    return np.argmax(p.reshape(dims), axis=2)[0]


def collapse(indices: Sequence[int], charset: Sequence[str], spec: Optional[CharsetSpec] = None) -> str:
    """
    Greedy collapse of an arg-max index sequence into text.

    An index equal to the last index seen is skipped, so runs collapse to one
    symbol. Note this also merges two identical characters that are not
    separated by a blank. Index 0 is the blank and is never emitted.
    """

    spec = spec if spec is not None else CharsetSpec.unrestricted()
    out = []
    last = BLANK_INDEX
    for idx in indices:
        idx = int(idx)
        if idx == last:
            continue
        last = idx
        if idx == BLANK_INDEX:
            continue
        if idx < 0 or idx >= len(charset):
            raise ShapeMismatchError(f"Class index {idx} is outside the charset (size {len(charset)})")
        char = charset[idx]
        if spec.is_valid_char(char):
            out.append(char)
    return "".join(out)


def decode_ocr(
    raw: Sequence[float],
    dims: Sequence[int],
    charset: Sequence[str],
    spec: Optional[CharsetSpec] = None,
) -> str:
    indices = argmax_sequence(raw, dims)
    text = collapse(indices, charset, spec)
    logger.debug("Decoded %d timesteps into %d characters", len(indices), len(text))
    return text
