"""
Error Types

PURPOSE:
One place for the exceptions raised by blocks, parameters and the parameter
file codec, so callers can catch a single family.

HIERARCHY:
    BlocknetError
    ├── ShapeMismatchError
    │   └── DataTypeMismatchError
    ├── UninitializedStateError
    └── SerializationFormatError
        └── UnsupportedFormatError

Unknown tokens in the vocabulary path are substituted with the unknown token
and never raised.
"""


class BlocknetError(Exception):
    """Base class for all blocknet errors."""


class ShapeMismatchError(BlocknetError):
    """Declared and observed shapes disagree (initialization or load)."""


class DataTypeMismatchError(ShapeMismatchError):
    """Declared and observed data types disagree."""


class UninitializedStateError(BlocknetError):
    """An operation needs resolved shapes or materialized values that don't exist yet."""


class SerializationFormatError(BlocknetError):
    """A parameter stream is truncated, corrupt or out of order."""


class UnsupportedFormatError(SerializationFormatError):
    """A parameter record carries a data-type tag this codec does not know."""
