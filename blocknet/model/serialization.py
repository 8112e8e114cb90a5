"""
Parameter Record Codec

PURPOSE:
Byte-level format used to persist parameter values across processes.

RECORD LAYOUT (big-endian, one record per parameter, no header/footer):
    name       uint16 length + UTF-8 bytes
    rank       uint32
    dims       rank x int64
    dtype tag  uint8
    values     prod(dims) values, row-major, fixed width per tag

DTYPE TAGS:
    1 float32 (4)   2 float64 (8)   3 float16 (2)   4 uint8 (1)
    5 int32 (4)     6 int8 (1)      7 int64 (8)

PACKAGES USED:
- struct: fixed-width integer fields
- numpy: endianness-aware conversion of the value payload
- torch: the arrays being written/read

FILES FROM THIS PROJECT:
- model/block.py: save_parameters / load_parameters call these per record
"""

import math
import os
import struct
from typing import BinaryIO, Dict, Tuple

import numpy as np
import torch

from blocknet.errors import SerializationFormatError, UnsupportedFormatError

_NAME_LEN = struct.Struct(">H")
_RANK = struct.Struct(">I")
_DIM = struct.Struct(">q")
_TAG = struct.Struct(">B")

# Ranks above this only come from corrupt streams
MAX_RANK = 32

# Payloads above this only come from corrupt streams
MAX_PAYLOAD_BYTES = 1 << 40

# tag -> (torch dtype, numpy wire dtype)
DTYPE_TAGS: Dict[int, Tuple[torch.dtype, str]] = {
    1: (torch.float32, ">f4"),
    2: (torch.float64, ">f8"),
    3: (torch.float16, ">f2"),
    4: (torch.uint8, "u1"),
    5: (torch.int32, ">i4"),
    6: (torch.int8, "i1"),
    7: (torch.int64, ">i8"),
}
_TAG_OF = {dtype: tag for tag, (dtype, _) in DTYPE_TAGS.items()}


def dtype_tag(dtype: torch.dtype) -> int:
    """Wire tag for a torch dtype."""
    if dtype not in _TAG_OF:
        raise UnsupportedFormatError(f"Data type {dtype} has no parameter file encoding")
    return _TAG_OF[dtype]


def write_record(stream: BinaryIO, name: str, array: torch.Tensor) -> None:
    """
    Append one parameter record to a binary stream.

    Args:
        stream: Writable binary stream
        name: Parameter name
        array: Parameter values
    """
    encoded = name.encode("utf-8")
    if len(encoded) > 0xFFFF:
        raise SerializationFormatError(f"Parameter name too long to encode ({len(encoded)} bytes)")

    tag = dtype_tag(array.dtype)
    wire_dtype = DTYPE_TAGS[tag][1]
    values = array.detach().cpu().contiguous().numpy()

    stream.write(_NAME_LEN.pack(len(encoded)))
    stream.write(encoded)
    stream.write(_RANK.pack(values.ndim))
    for dim in values.shape:
        stream.write(_DIM.pack(dim))
    stream.write(_TAG.pack(tag))
    stream.write(values.astype(wire_dtype, copy=False).tobytes(order="C"))


def read_record(stream: BinaryIO) -> Tuple[str, torch.Tensor]:
    """
    Read one parameter record.

    Returns:
        (name, values) with values as a CPU tensor

    Raises:
        SerializationFormatError: Truncated or corrupt record
        UnsupportedFormatError: Unknown dtype tag
    """
    (name_len,) = _NAME_LEN.unpack(_read_exact(stream, _NAME_LEN.size, "name length"))
    try:
        name = _read_exact(stream, name_len, "name").decode("utf-8")
    except UnicodeDecodeError as e:
        raise SerializationFormatError(f"Corrupt parameter name: {e}") from e

    (rank,) = _RANK.unpack(_read_exact(stream, _RANK.size, f"rank of '{name}'"))
    if rank > MAX_RANK:
        raise SerializationFormatError(f"Corrupt rank {rank} for parameter '{name}'")

    shape = []
    for _ in range(rank):
        (dim,) = _DIM.unpack(_read_exact(stream, _DIM.size, f"shape of '{name}'"))
        if dim < 0:
            raise SerializationFormatError(f"Negative dimension {dim} for parameter '{name}'")
        shape.append(dim)
    shape = tuple(shape)

    (tag,) = _TAG.unpack(_read_exact(stream, _TAG.size, f"dtype of '{name}'"))
    if tag not in DTYPE_TAGS:
        raise UnsupportedFormatError(f"Unknown dtype tag {tag} for parameter '{name}'")
    torch_dtype, wire_dtype = DTYPE_TAGS[tag]

    size = math.prod(shape) * np.dtype(wire_dtype).itemsize
    _check_payload_size(stream, size, shape, name)
    payload = _read_exact(stream, size, f"values of '{name}'")

    values = np.frombuffer(payload, dtype=wire_dtype).astype(np.dtype(wire_dtype).newbyteorder("="))
    array = torch.from_numpy(values.reshape(shape)).to(torch_dtype)
    return name, array


def _check_payload_size(stream: BinaryIO, size: int, shape: Tuple[int, ...], name: str) -> None:
    if size > MAX_PAYLOAD_BYTES:
        raise SerializationFormatError(f"Corrupt shape {shape} for parameter '{name}' ({size} bytes of values)")
    if not stream.seekable():
        return
    position = stream.tell()
    remaining = stream.seek(0, os.SEEK_END) - position
    stream.seek(position)
    if size > remaining:
        raise SerializationFormatError(
            f"Unexpected end of stream while reading values of '{name}' (needed {size} bytes, got {remaining})"
        )


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if data is None or len(data) < size:
        got = 0 if data is None else len(data)
        raise SerializationFormatError(
            f"Unexpected end of stream while reading {what} (needed {size} bytes, got {got})"
        )
    return data
