from __future__ import annotations

import json
from pathlib import Path
from typing import List, Union


def load_charset(charset_path: Union[str, Path]) -> List[str]:
    """
    Load the index -> character table that accompanies an OCR model.

    Two formats are accepted:

        ["", "a", "b", ...]          JSON array (.json)

        <blank line for index 0>
        a
        b                            one entry per line (anything else)

    Index 0 is the blank token; its value is never emitted by the decoder.
    """

    path = Path(charset_path)
    if not path.exists():
        raise FileNotFoundError(f"Charset file not found: {path}")

    raw = path.read_text(encoding="utf-8")

    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid charset JSON: {path}") from exc
        if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
            raise ValueError("Charset JSON must be an array of strings")
        charset = payload
    else:
        # Keep empty lines: the first line is usually the blank entry.
        charset = raw.split("\n")
        if charset and charset[-1] == "":
            charset = charset[:-1]

    if not charset:
        raise ValueError(f"Charset file is empty: {path}")
    return charset
