"""
Field layout engine for descriptor-driven binary records.

A record is described by an ordered list of FieldDescriptor values. Field
offsets and the record stride are running sums of ``size * count`` in
declared order. The same descriptors build a numpy structured dtype, which
is how whole payloads are decoded and encoded in one pass.
"""

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Sequence, Tuple, Union

import numpy as np

from scanforge.errors import HeaderParseError, LayoutError, UnsupportedFormatError

BytesLike = Union[bytes, bytearray, memoryview]

# Mapping from (type letter, byte size) to little-endian numpy dtype strings
# F = floating point, U = unsigned integer, I = signed integer
DTYPE_MAP: Dict[Tuple[str, int], str] = {
    ("F", 4): "<f4",
    ("F", 8): "<f8",
    ("U", 1): "u1",
    ("U", 2): "<u2",
    ("U", 4): "<u4",
    ("U", 8): "<u8",
    ("I", 1): "i1",
    ("I", 2): "<i2",
    ("I", 4): "<i4",
    ("I", 8): "<i8",
}

_FLOAT32 = struct.Struct("<f")
_UINT32 = struct.Struct("<I")


@dataclass(frozen=True)
class FieldDescriptor:
    """One column of a tabular record.

    Parameters
    ----------
    name : str
        Field name (e.g. "x", "rgb").
    size : int
        Byte size of a single element.
    type : str
        Type letter: "F", "U" or "I".
    count : int
        Number of elements in the field.
    """

    name: str
    size: int
    type: str
    count: int = 1

    @property
    def byte_size(self) -> int:
        """Total bytes the field occupies in a record."""
        return self.size * self.count

    @property
    def dtype(self) -> np.dtype:
        """Numpy dtype of a single element."""
        try:
            return np.dtype(DTYPE_MAP[(self.type.upper(), self.size)])
        except KeyError:
            raise UnsupportedFormatError(
                f"Unsupported field type {self.type}{self.size} for field '{self.name}'"
            ) from None


def descriptors_from_lists(
    names: Sequence[str],
    sizes: Sequence[int],
    types: Sequence[str],
    counts: Sequence[int],
) -> List[FieldDescriptor]:
    """
    Zip the four parallel header lists into field descriptors.

    Raises
    ------
    HeaderParseError
        If the lists do not all have the same length, or a size is not
        positive or a count is negative.
    """
    if not (len(names) == len(sizes) == len(types) == len(counts)):
        raise HeaderParseError(
            f"Header field count mismatch: fields={len(names)}, sizes={len(sizes)}, "
            f"types={len(types)}, counts={len(counts)}"
        )
    fields = []
    for n, s, t, c in zip(names, sizes, types, counts):
        if int(s) <= 0 or int(c) < 0:
            raise HeaderParseError(f"Invalid size {s} or count {c} for field {n!r}")
        fields.append(FieldDescriptor(name=n, size=int(s), type=t, count=int(c)))
    return fields


def record_size(fields: Sequence[FieldDescriptor]) -> int:
    """Return the byte stride of one record."""
    return sum(f.byte_size for f in fields)


def field_offsets(fields: Sequence[FieldDescriptor]) -> List[int]:
    """Return the byte offset of every field within a record."""
    offsets = []
    position = 0
    for f in fields:
        offsets.append(position)
        position += f.byte_size
    return offsets


def field_offset(fields: Sequence[FieldDescriptor], index: int) -> int:
    """Return the byte offset of ``fields[index]`` within a record."""
    if not 0 <= index < len(fields):
        raise IndexError(f"Field index {index} out of range for {len(fields)} fields")
    return sum(f.byte_size for f in fields[:index])


def record_dtype(fields: Sequence[FieldDescriptor]) -> np.dtype:
    """
    Build a numpy structured dtype for a record.

    Fields with ``count > 1`` become sub-arrays. The dtype's itemsize equals
    :func:`record_size`, so it can view a packed payload directly.

    Repeated names (PCD padding fields are all called "_") get a numeric
    suffix so every column stays addressable.

    Raises
    ------
    UnsupportedFormatError
        If a field's type/size combination has no numpy equivalent.
    """
    names = _unique_names(fields)
    formats = [f.dtype if f.count == 1 else (f.dtype, (f.count,)) for f in fields]
    return np.dtype(
        {
            "names": names,
            "formats": formats,
            "offsets": field_offsets(fields),
            "itemsize": record_size(fields),
        }
    )


def _unique_names(fields: Sequence[FieldDescriptor]) -> List[str]:
    seen: Dict[str, int] = {}
    names = []
    for f in fields:
        k = seen.get(f.name, 0)
        names.append(f.name if k == 0 else f"{f.name}_{k}")
        seen[f.name] = k + 1
    return names


def _check_bounds(buffer: BytesLike, record_offset: int, offset: int, width: int) -> int:
    """Return the absolute position of a ``width``-byte access or raise."""
    start = record_offset + offset
    if record_offset < 0 or offset < 0 or start + width > len(buffer):
        raise LayoutError(
            f"Access of {width} bytes at {record_offset}+{offset} "
            f"outside buffer of {len(buffer)} bytes"
        )
    return start


def extract_float32(buffer: BytesLike, record_offset: int, offset: int) -> float:
    """Read a little-endian float32 at ``record_offset + offset``."""
    start = _check_bounds(buffer, record_offset, offset, 4)
    return _FLOAT32.unpack_from(buffer, start)[0]


def inject_float32(
    buffer: Union[bytearray, memoryview], record_offset: int, offset: int, value: float
) -> None:
    """Write a little-endian float32 at ``record_offset + offset``."""
    start = _check_bounds(buffer, record_offset, offset, 4)
    _FLOAT32.pack_into(buffer, start, value)


def extract_packed_rgb(buffer: BytesLike, record_offset: int, offset: int) -> Tuple[int, int, int]:
    """Read a packed 0x00RRGGBB color and return (r, g, b)."""
    start = _check_bounds(buffer, record_offset, offset, 4)
    packed = _UINT32.unpack_from(buffer, start)[0]
    return (packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF


def inject_packed_rgb(
    buffer: Union[bytearray, memoryview],
    record_offset: int,
    offset: int,
    color: Tuple[int, int, int],
) -> None:
    """Write (r, g, b) as a packed 0x00RRGGBB color."""
    start = _check_bounds(buffer, record_offset, offset, 4)
    r, g, b = color
    _UINT32.pack_into(buffer, start, ((r & 0xFF) << 16) | ((g & 0xFF) << 8) | (b & 0xFF))


def decode_records(
    buffer: BytesLike, fields: Sequence[FieldDescriptor], count: int
) -> np.ndarray:
    """
    View ``count`` row-major records of a payload as a structured array.

    Raises
    ------
    LayoutError
        If the buffer is shorter than ``count`` records.
    """
    dtype = record_dtype(fields)
    needed = count * dtype.itemsize
    if len(buffer) < needed:
        raise LayoutError(
            f"Payload holds {len(buffer)} bytes, {count} records need {needed}"
        )
    return np.frombuffer(buffer, dtype=dtype, count=count)


def encode_records(records: np.ndarray) -> bytes:
    """Serialize a structured array as packed row-major records."""
    return records.tobytes()


def split_columns(records: np.ndarray) -> bytes:
    """
    Serialize a structured array column-major.

    All values of the first field come first, then all values of the
    second, and so on. Each field keeps its own byte width.
    """
    return b"".join(
        np.ascontiguousarray(records[name]).tobytes() for name in records.dtype.names
    )


def join_columns(
    buffer: BytesLike, fields: Sequence[FieldDescriptor], count: int
) -> np.ndarray:
    """
    Re-interleave a column-major payload into row-major records.

    Inverse of :func:`split_columns`.

    Raises
    ------
    LayoutError
        If the buffer is shorter than ``count`` records.
    """
    dtype = record_dtype(fields)
    needed = count * dtype.itemsize
    if len(buffer) < needed:
        raise LayoutError(
            f"Payload holds {len(buffer)} bytes, {count} records need {needed}"
        )

    records = np.zeros(count, dtype=dtype)
    position = 0
    for f, name in zip(fields, dtype.names):
        column = np.frombuffer(buffer, dtype=f.dtype, count=f.count * count, offset=position)
        records[name] = column.reshape(records[name].shape)
        position += f.byte_size * count
    return records


def bytes_remaining(stream: BinaryIO) -> int:
    """Return the number of bytes between the stream position and its end."""
    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    return max(end - position, 0)
