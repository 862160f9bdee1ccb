"""
PCD file reader for ScanForge.

Provides the PCDHeader dataclass and load_pcd function for reading point
clouds stored as ascii, binary or binary_compressed PCD files.
"""

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import numpy as np

from scanforge.codec import lzf
from scanforge.errors import (
    HeaderParseError,
    PayloadSizeMismatch,
    PointCloudIOError,
    UnsupportedFormatError,
)
from scanforge.io.layout import (
    FieldDescriptor,
    bytes_remaining,
    decode_records,
    descriptors_from_lists,
    join_columns,
    record_dtype,
    record_size,
)
from scanforge.point_cloud import DEFAULT_COLOR, PointCloud, unpack_rgb

logger = logging.getLogger(__name__)

# Prefix of a binary_compressed payload: compressed size, uncompressed size
COMPRESSED_PREFIX = struct.Struct("<II")

# WIDTH, HEIGHT and POINTS are unsigned 32-bit counts
MAX_COUNT = 0xFFFFFFFF


class DataRepresentation(str, Enum):
    """Payload encoding named by the DATA directive."""

    ASCII = "ascii"
    BINARY = "binary"
    BINARY_COMPRESSED = "binary_compressed"

    @classmethod
    def parse(cls, value: Any) -> "DataRepresentation":
        """Convert a DATA keyword to a representation."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedFormatError(
                f"Unsupported PCD data representation: {value!r}"
            ) from None


class CompressedLayout(str, Enum):
    """Field ordering inside a decompressed binary_compressed payload.

    ROW_MAJOR stores whole records one after another, exactly like plain
    binary. COLUMN_MAJOR stores every value of the first field, then every
    value of the second, and so on.
    """

    ROW_MAJOR = "row"
    COLUMN_MAJOR = "column"


@dataclass
class PCDHeader:
    """Parsed PCD preamble.

    Parameters
    ----------
    version : str
        Format version string (e.g. "0.7").
    fields : list of FieldDescriptor
        Record layout in declared order.
    width : int
        Points per row.
    height : int
        Number of rows.
    viewpoint : str
        Acquisition viewpoint (translation + quaternion), kept verbatim.
    points : int
        Total number of points.
    data : DataRepresentation
        Payload encoding.
    """

    version: str = ""
    fields: List[FieldDescriptor] = field(default_factory=list)
    width: int = 0
    height: int = 0
    viewpoint: str = ""
    points: int = 0
    data: DataRepresentation = DataRepresentation.ASCII

    @property
    def is_valid(self) -> bool:
        """True if the header declares fields, a width and a point count."""
        return bool(self.fields) and self.width > 0 and self.points > 0

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def has_xyz(self) -> bool:
        """True if x, y and z fields are all present."""
        names = self.field_names
        return all(axis in names for axis in ("x", "y", "z"))

    @property
    def has_rgb(self) -> bool:
        return "rgb" in self.field_names

    @property
    def record_size(self) -> int:
        """Byte stride of one binary record."""
        return record_size(self.fields)

    def field_index(self, name: str) -> Optional[int]:
        """Return the position of field ``name``, or None if absent."""
        try:
            return self.field_names.index(name)
        except ValueError:
            return None


def load_pcd(
    filepath: Path,
    compressed_layout: CompressedLayout = CompressedLayout.ROW_MAJOR,
) -> Tuple[PCDHeader, PointCloud]:
    """
    Load a PCD file into a PointCloud.

    Parameters
    ----------
    filepath : Path
        Path to the PCD file.
    compressed_layout : CompressedLayout
        Field ordering of binary_compressed payloads. Ignored for
        ascii and binary files.

    Returns
    -------
    tuple
        (PCDHeader, PointCloud). Points with non-finite coordinates are
        dropped and the cloud is marked not dense.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    PointCloudIOError
        If the file cannot be read.
    HeaderParseError
        If the preamble is malformed, invalid or lacks x/y/z fields.
    UnsupportedFormatError
        If the DATA representation or a field type is not supported.
    PayloadSizeMismatch
        If the payload is shorter than the header declares.
    CompressionError
        If a binary_compressed payload cannot be decompressed.
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        with open(filepath, "rb") as f:
            header = parse_header(f)

            if not header.has_xyz:
                raise HeaderParseError(
                    f"PCD file lacks x/y/z fields: {header.field_names}"
                )

            if header.data is DataRepresentation.ASCII:
                cloud = _read_ascii(f, header)
            elif header.data is DataRepresentation.BINARY:
                cloud = _read_binary(f, header)
            else:
                cloud = _read_binary_compressed(f, header, CompressedLayout(compressed_layout))
    except OSError as e:
        if isinstance(e, PointCloudIOError):
            raise
        raise PointCloudIOError(f"Failed to read PCD file: {filepath}. Error: {e}") from e

    logger.debug(f"Loaded {cloud.n_points} points ({header.data.value}) from {filepath}")
    return header, cloud


def parse_header(stream: BinaryIO) -> PCDHeader:
    """
    Parse the PCD preamble, leaving ``stream`` at the start of the payload.

    Raises
    ------
    HeaderParseError
        If DATA is missing, a numeric directive does not parse or is out
        of range, the four field lists differ in length, or the header is
        not valid.
    UnsupportedFormatError
        If the DATA representation is unknown.
    """
    header = PCDHeader()
    names: List[str] = []
    sizes: List[int] = []
    types: List[str] = []
    counts: List[int] = []
    data_seen = False

    for raw in iter(stream.readline, b""):
        line = raw.decode("ascii", errors="replace").strip()
        if not line or line.startswith("#"):
            continue

        parts = line.split(None, 1)
        key = parts[0].upper()
        rest = parts[1] if len(parts) > 1 else ""
        values = rest.split()

        try:
            if key == "VERSION":
                header.version = values[0] if values else ""
            elif key == "FIELDS":
                names = values
            elif key == "SIZE":
                sizes = [int(v) for v in values]
            elif key == "TYPE":
                types = [v.upper() for v in values]
            elif key == "COUNT":
                counts = [int(v) for v in values]
            elif key == "WIDTH":
                header.width = int(values[0])
            elif key == "HEIGHT":
                header.height = int(values[0])
            elif key == "VIEWPOINT":
                header.viewpoint = rest.strip()
            elif key == "POINTS":
                header.points = int(values[0])
            elif key == "DATA":
                if not values:
                    raise HeaderParseError("DATA directive has no value")
                header.data = DataRepresentation.parse(values[0])
                data_seen = True
                break
        except (ValueError, IndexError) as e:
            if isinstance(e, (HeaderParseError, UnsupportedFormatError)):
                raise
            raise HeaderParseError(f"Malformed {key} directive: {line!r}") from e

    if not data_seen:
        raise HeaderParseError("PCD header ended without a DATA directive")

    counts_declared = (
        ("WIDTH", header.width),
        ("HEIGHT", header.height),
        ("POINTS", header.points),
    )
    for key, value in counts_declared:
        if not 0 <= value <= MAX_COUNT:
            raise HeaderParseError(f"{key} {value} is outside the 32-bit unsigned range")

    header.fields = descriptors_from_lists(names, sizes, types, counts)

    if not header.is_valid:
        raise HeaderParseError(
            f"Invalid PCD header: fields={header.field_names}, "
            f"width={header.width}, points={header.points}"
        )

    return header


def get_pcd_info(filepath: Path) -> Dict[str, Any]:
    """
    Get summary information about a PCD file without loading its points.

    Parameters
    ----------
    filepath : Path
        Path to PCD file.

    Returns
    -------
    dict
        Dictionary containing file information.
    """
    filepath = Path(filepath)

    with open(filepath, "rb") as f:
        header = parse_header(f)

    return {
        "filepath": str(filepath),
        "version": header.version,
        "point_count": header.points,
        "width": header.width,
        "height": header.height,
        "data": header.data.value,
        "fields": header.field_names,
        "viewpoint": header.viewpoint or "Not specified",
        "has_xyz": header.has_xyz,
        "has_rgb": header.has_rgb,
    }


def _build_cloud(header: PCDHeader, xyz: np.ndarray, rgb: np.ndarray) -> PointCloud:
    """Drop non-finite points and wrap the arrays in a PointCloud."""
    finite = np.isfinite(xyz).all(axis=1)
    is_dense = bool(finite.all())
    if not is_dense:
        logger.debug(f"Dropping {int((~finite).sum())} non-finite points")
        xyz = xyz[finite]
        rgb = rgb[finite]

    return PointCloud(
        xyz=xyz,
        rgb=rgb,
        width=header.width,
        height=header.height,
        is_dense=is_dense,
    )


def _packed_colors(column: np.ndarray, descriptor: FieldDescriptor) -> np.ndarray:
    """Turn an rgb column into 0x00RRGGBB integers.

    Float-typed rgb fields carry the packed color in their bit pattern.
    """
    column = np.ascontiguousarray(column).reshape(len(column), -1)[:, 0]
    if descriptor.type == "F" and descriptor.size == 4:
        return column.astype("<f4").view("<u4")
    return column.astype(np.uint64).astype(np.uint32)


def _records_to_cloud(header: PCDHeader, records: np.ndarray) -> PointCloud:
    """Extract positions and colors from decoded binary records."""
    names = record_dtype(header.fields).names
    columns = {f.name: names[i] for i, f in reversed(list(enumerate(header.fields)))}

    xyz = np.column_stack(
        [records[columns[axis]].reshape(len(records), -1)[:, 0] for axis in ("x", "y", "z")]
    ).astype(np.float32)

    rgb_index = header.field_index("rgb")
    if rgb_index is not None:
        packed = _packed_colors(records[columns["rgb"]], header.fields[rgb_index])
        rgb = unpack_rgb(packed)
    else:
        rgb = np.tile(np.array(DEFAULT_COLOR, dtype=np.uint8), (len(records), 1))

    return _build_cloud(header, xyz, rgb)


def _read_binary(stream: BinaryIO, header: PCDHeader) -> PointCloud:
    expected = header.record_size * header.points
    available = bytes_remaining(stream)

    if available < expected:
        raise PayloadSizeMismatch(
            f"Binary payload has {available} bytes, expected {expected} "
            f"({header.points} points x {header.record_size} bytes)"
        )

    payload = stream.read(expected)
    records = decode_records(payload, header.fields, header.points)
    return _records_to_cloud(header, records)


def _read_binary_compressed(
    stream: BinaryIO, header: PCDHeader, layout: CompressedLayout
) -> PointCloud:
    prefix = stream.read(COMPRESSED_PREFIX.size)
    if len(prefix) != COMPRESSED_PREFIX.size:
        raise PayloadSizeMismatch("Truncated binary_compressed size prefix")

    compressed_size, uncompressed_size = COMPRESSED_PREFIX.unpack(prefix)

    expected = header.record_size * header.points
    if uncompressed_size != expected:
        raise PayloadSizeMismatch(
            f"Uncompressed size {uncompressed_size} does not match "
            f"{header.points} points x {header.record_size} bytes"
        )

    available = bytes_remaining(stream)
    if available < compressed_size:
        raise PayloadSizeMismatch(
            f"Compressed payload has {available} bytes, expected {compressed_size}"
        )

    if uncompressed_size > lzf.max_decompressed_size(compressed_size):
        raise PayloadSizeMismatch(
            f"Uncompressed size {uncompressed_size} exceeds what "
            f"{compressed_size} compressed bytes can hold"
        )

    payload = stream.read(compressed_size)
    data = lzf.decompress(payload, uncompressed_size)

    if layout is CompressedLayout.COLUMN_MAJOR:
        records = join_columns(data, header.fields, header.points)
    else:
        records = decode_records(data, header.fields, header.points)

    return _records_to_cloud(header, records)


def _read_ascii(stream: BinaryIO, header: PCDHeader) -> PointCloud:
    # Token position of each field; a field spans `count` tokens
    starts = {}
    position = 0
    for f in header.fields:
        starts.setdefault(f.name, position)
        position += f.count
    n_tokens = position

    ix, iy, iz = starts["x"], starts["y"], starts["z"]
    rgb_index = header.field_index("rgb")
    rgb_field = header.fields[rgb_index] if rgb_index is not None else None
    irgb = starts.get("rgb")

    xyz = []
    packed = []
    skipped = 0

    for line_number in range(header.points):
        raw = stream.readline()
        if not raw:
            break

        values = raw.decode("ascii", errors="replace").split()
        if len(values) < n_tokens:
            skipped += 1
            continue

        try:
            coords = (float(values[ix]), float(values[iy]), float(values[iz]))
            color = _parse_ascii_rgb(values[irgb], rgb_field) if rgb_field else None
        except ValueError:
            logger.debug(f"Skipping malformed ASCII point line {line_number}")
            skipped += 1
            continue

        xyz.append(coords)
        packed.append(color)

    if skipped:
        logger.debug(f"Skipped {skipped} incomplete ASCII point lines")

    xyz_array = np.array(xyz, dtype=np.float32).reshape(-1, 3)
    if rgb_field:
        rgb = unpack_rgb(np.array(packed, dtype=np.uint32))
    else:
        rgb = np.tile(np.array(DEFAULT_COLOR, dtype=np.uint8), (len(xyz), 1))

    return _build_cloud(header, xyz_array, rgb)


def _parse_ascii_rgb(token: str, descriptor: FieldDescriptor) -> int:
    """Parse an ASCII rgb token into a 0x00RRGGBB integer."""
    if descriptor.type == "F":
        return struct.unpack("<I", struct.pack("<f", float(token)))[0]
    value = int(token)
    if value < 0:
        raise ValueError(f"Negative packed color: {token}")
    return value & 0xFFFFFFFF
