"""
Error types raised by infer_kit.

Every error subclasses a builtin so callers that only catch `ValueError` /
`OSError` keep working.
"""


class InferKitError(Exception):
    pass


class UnsupportedRangeError(InferKitError, ValueError):
    """Charset range is not a supported code or type."""


class DecodeError(InferKitError, OSError):
    """Image source could not be read or decoded into pixels."""


class ShapeMismatchError(InferKitError, ValueError):
    """Raw tensor data does not match its declared dimensions."""
