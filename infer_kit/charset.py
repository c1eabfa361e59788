from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import FrozenSet, Iterable, Union

from .errors import UnsupportedRangeError


logger = logging.getLogger(__name__)

NUM_CASE = "0123456789"
LOWER_CASE = "abcdefghijklmnopqrstuvwxyz"
UPPER_CASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
MIX_LOWER_UPPER_CASE = LOWER_CASE + UPPER_CASE
MIX_LOWER_NUM_CASE = LOWER_CASE + NUM_CASE
MIX_UPPER_NUM_CASE = UPPER_CASE + NUM_CASE
MIX_LOWER_UPPER_NUM_CASE = LOWER_CASE + UPPER_CASE + NUM_CASE


class CharsetRange(IntEnum):
    """
    Predefined OCR output restrictions.

    Codes 0-6 restrict output to the named characters; code 7 excludes
    letters and digits and accepts everything else.
    """

    NUM_CASE = 0
    LOWER_CASE = 1
    UPPER_CASE = 2
    MIX_LOWER_UPPER_CASE = 3
    MIX_LOWER_NUM_CASE = 4
    MIX_UPPER_NUM_CASE = 5
    MIX_LOWER_UPPER_NUM_CASE = 6
    NO_LOWER_UPPER_NUM_CASE = 7


_VALID_BY_RANGE = {
    CharsetRange.NUM_CASE: NUM_CASE,
    CharsetRange.LOWER_CASE: LOWER_CASE,
    CharsetRange.UPPER_CASE: UPPER_CASE,
    CharsetRange.MIX_LOWER_UPPER_CASE: MIX_LOWER_UPPER_CASE,
    CharsetRange.MIX_LOWER_NUM_CASE: MIX_LOWER_NUM_CASE,
    CharsetRange.MIX_UPPER_NUM_CASE: MIX_UPPER_NUM_CASE,
    CharsetRange.MIX_LOWER_UPPER_NUM_CASE: MIX_LOWER_UPPER_NUM_CASE,
}

RangeSpec = Union[int, str]


@dataclass(frozen=True)
class CharsetSpec:
    """
    Allow-list / deny-list pair applied to decoded OCR characters.

    An empty `valid` set means every character not in `invalid` is accepted.
    """

    valid: FrozenSet[str] = field(default_factory=frozenset)
    invalid: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def unrestricted(cls) -> "CharsetSpec":
        return cls()

    def is_valid_char(self, char: str) -> bool:
        if char in self.invalid:
            return False
        if not self.valid:
            return True
        return char in self.valid

    def with_valid(self, chars: Iterable[str]) -> "CharsetSpec":
        return CharsetSpec(valid=frozenset(chars), invalid=self.invalid)

    def with_invalid(self, chars: Iterable[str]) -> "CharsetSpec":
        return CharsetSpec(valid=self.valid, invalid=frozenset(chars))


def resolve(range_spec: RangeSpec) -> CharsetSpec:
    """
    Map a `CharsetRange` code or a literal string of characters to a `CharsetSpec`.

    A string makes each of its characters valid. Any other code or type
    raises `UnsupportedRangeError`.
    """

    # bool is an int subclass; True/False are not range codes.
    if isinstance(range_spec, bool):
        raise UnsupportedRangeError(f"Unsupported charset range type: {type(range_spec).__name__}")

    if isinstance(range_spec, str):
        return CharsetSpec(valid=frozenset(range_spec))

    if isinstance(range_spec, int):
        try:
            code = CharsetRange(range_spec)
        except ValueError as e:
            raise UnsupportedRangeError(f"Unsupported charset range code: {range_spec}") from e

        if code is CharsetRange.NO_LOWER_UPPER_NUM_CASE:
            spec = CharsetSpec(invalid=frozenset(MIX_LOWER_UPPER_NUM_CASE))
        else:
            spec = CharsetSpec(valid=frozenset(_VALID_BY_RANGE[code]))
        logger.debug("Resolved charset range %s (%d valid, %d invalid)", code.name, len(spec.valid), len(spec.invalid))
        return spec

    raise UnsupportedRangeError(f"Unsupported charset range type: {type(range_spec).__name__}")
