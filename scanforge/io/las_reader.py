"""
LAS file reader for ScanForge.

Provides the LASHeader dataclass, the point format capability table and
load_las for reading LAS 1.2, 1.3 and 1.4 files with point formats 0-10.
"""

import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Tuple

import numpy as np

from scanforge.errors import (
    HeaderParseError,
    PayloadSizeMismatch,
    PointCloudIOError,
    UnsupportedFormatError,
)
from scanforge.io.layout import FieldDescriptor, bytes_remaining, record_dtype, record_size
from scanforge.point_cloud import DEFAULT_COLOR, PointCloud

logger = logging.getLogger(__name__)

LAS_SIGNATURE = b"LASF"

# Standard header size per minor version
HEADER_SIZES: Dict[int, int] = {2: 227, 3: 235, 4: 375}

# Header blocks in file order. Bounding box is max/min per axis.
HEADER_BLOCK = struct.Struct("<4sHH16sBB32s32sHHHIIBHI5I3d3d6d")
WAVEFORM_BLOCK = struct.Struct("<Q")
EXTENDED_BLOCK = struct.Struct("<QIQ15Q")


class PointFormat(IntEnum):
    """LAS point data record formats."""

    FORMAT_0 = 0
    FORMAT_1 = 1
    FORMAT_2 = 2
    FORMAT_3 = 3
    FORMAT_4 = 4
    FORMAT_5 = 5
    FORMAT_6 = 6
    FORMAT_7 = 7
    FORMAT_8 = 8
    FORMAT_9 = 9
    FORMAT_10 = 10


@dataclass(frozen=True)
class FormatCapabilities:
    """Optional blocks carried by a point format, and its record length."""

    has_gps_time: bool
    has_color: bool
    has_near_infrared: bool
    has_wave_packets: bool
    is_extended: bool
    record_length: int


POINT_FORMAT_CAPABILITIES: Dict[PointFormat, FormatCapabilities] = {
    PointFormat.FORMAT_0: FormatCapabilities(False, False, False, False, False, 20),
    PointFormat.FORMAT_1: FormatCapabilities(True, False, False, False, False, 28),
    PointFormat.FORMAT_2: FormatCapabilities(False, True, False, False, False, 26),
    PointFormat.FORMAT_3: FormatCapabilities(True, True, False, False, False, 34),
    PointFormat.FORMAT_4: FormatCapabilities(True, False, False, True, False, 57),
    PointFormat.FORMAT_5: FormatCapabilities(True, True, False, True, False, 63),
    PointFormat.FORMAT_6: FormatCapabilities(True, False, False, False, True, 30),
    PointFormat.FORMAT_7: FormatCapabilities(True, True, False, False, True, 36),
    PointFormat.FORMAT_8: FormatCapabilities(True, True, True, False, True, 38),
    PointFormat.FORMAT_9: FormatCapabilities(True, False, False, True, True, 59),
    PointFormat.FORMAT_10: FormatCapabilities(True, True, True, True, True, 67),
}

POINT_RECORD_LENGTHS: Dict[int, int] = {
    int(fmt): caps.record_length for fmt, caps in POINT_FORMAT_CAPABILITIES.items()
}

# Record building blocks, in ASPRS order
_LEGACY_CORE = [
    FieldDescriptor("X", 4, "I"),
    FieldDescriptor("Y", 4, "I"),
    FieldDescriptor("Z", 4, "I"),
    FieldDescriptor("intensity", 2, "U"),
    FieldDescriptor("return_byte", 1, "U"),
    FieldDescriptor("classification", 1, "U"),
    FieldDescriptor("scan_angle_rank", 1, "I"),
    FieldDescriptor("user_data", 1, "U"),
    FieldDescriptor("point_source_id", 2, "U"),
]
_EXTENDED_CORE = [
    FieldDescriptor("X", 4, "I"),
    FieldDescriptor("Y", 4, "I"),
    FieldDescriptor("Z", 4, "I"),
    FieldDescriptor("intensity", 2, "U"),
    FieldDescriptor("return_byte", 1, "U"),
    FieldDescriptor("flags", 1, "U"),
    FieldDescriptor("classification", 1, "U"),
    FieldDescriptor("user_data", 1, "U"),
    FieldDescriptor("scan_angle", 2, "I"),
    FieldDescriptor("point_source_id", 2, "U"),
]
_GPS_TIME = [FieldDescriptor("gps_time", 8, "F")]
_COLOR = [
    FieldDescriptor("red", 2, "U"),
    FieldDescriptor("green", 2, "U"),
    FieldDescriptor("blue", 2, "U"),
]
_NIR = [FieldDescriptor("nir", 2, "U")]
_WAVE_PACKET = [
    FieldDescriptor("wave_packet_index", 1, "U"),
    FieldDescriptor("wave_packet_offset", 8, "U"),
    FieldDescriptor("wave_packet_size", 4, "U"),
    FieldDescriptor("return_point_wave_location", 4, "F"),
    FieldDescriptor("x_t", 4, "F"),
    FieldDescriptor("y_t", 4, "F"),
    FieldDescriptor("z_t", 4, "F"),
]


def _default_return_counts(n: int) -> List[int]:
    return [0] * n


@dataclass
class LASHeader:
    """Public header block of a LAS file.

    Field order and units follow the on-disk layout. Version specific
    fields (``waveform_data_offset`` from 1.3, the EVLR and extended
    count fields from 1.4) are zero for older versions.
    """

    file_signature: bytes = LAS_SIGNATURE
    file_source_id: int = 0
    global_encoding: int = 0
    project_id: bytes = b"\x00" * 16
    version_major: int = 1
    version_minor: int = 2
    system_identifier: str = ""
    generating_software: str = ""
    creation_day_of_year: int = 0
    creation_year: int = 0
    header_size: int = HEADER_SIZES[2]
    offset_to_point_data: int = HEADER_SIZES[2]
    number_of_vlrs: int = 0
    point_format: int = 0
    point_record_length: int = POINT_RECORD_LENGTHS[0]
    legacy_point_count: int = 0
    legacy_points_by_return: List[int] = field(
        default_factory=lambda: _default_return_counts(5)
    )
    scale: Tuple[float, float, float] = (0.01, 0.01, 0.01)
    offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    max_bounds: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    min_bounds: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    waveform_data_offset: int = 0
    evlr_offset: int = 0
    evlr_count: int = 0
    extended_point_count: int = 0
    points_by_return: List[int] = field(
        default_factory=lambda: _default_return_counts(15)
    )

    @property
    def is_valid(self) -> bool:
        """True for a LASF signature with version 1.2, 1.3 or 1.4."""
        return (
            self.file_signature == LAS_SIGNATURE
            and self.version_major == 1
            and 2 <= self.version_minor <= 4
        )

    @property
    def version(self) -> str:
        return f"{self.version_major}.{self.version_minor}"

    @property
    def total_point_count(self) -> int:
        """Number of point records; 1.4 files use the 64-bit count."""
        if self.version_minor >= 4:
            return self.extended_point_count
        return self.legacy_point_count

    @property
    def capabilities(self) -> FormatCapabilities:
        try:
            return POINT_FORMAT_CAPABILITIES[PointFormat(self.point_format)]
        except ValueError:
            raise UnsupportedFormatError(
                f"Unsupported LAS point format: {self.point_format}"
            ) from None

    @property
    def has_color(self) -> bool:
        return self.capabilities.has_color

    @property
    def has_gps_time(self) -> bool:
        return self.capabilities.has_gps_time

    @property
    def has_near_infrared(self) -> bool:
        return self.capabilities.has_near_infrared


def point_fields(point_format: int) -> List[FieldDescriptor]:
    """
    Return the field descriptors of a point record format.

    Raises
    ------
    UnsupportedFormatError
        If the format is outside 0-10.
    """
    try:
        caps = POINT_FORMAT_CAPABILITIES[PointFormat(point_format)]
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported LAS point format: {point_format}") from None

    fields = list(_EXTENDED_CORE if caps.is_extended else _LEGACY_CORE)
    if caps.has_gps_time:
        fields += _GPS_TIME
    if caps.has_color:
        fields += _COLOR
    if caps.has_near_infrared:
        fields += _NIR
    if caps.has_wave_packets:
        fields += _WAVE_PACKET
    return fields


def point_dtype(point_format: int, record_length: int = 0) -> np.dtype:
    """
    Build the structured dtype of one point record.

    Parameters
    ----------
    point_format : int
        Point record format (0-10).
    record_length : int
        Declared record length. Bytes past the standard fields are kept
        as an ``extra_bytes`` column. 0 means the standard length.

    Raises
    ------
    PayloadSizeMismatch
        If ``record_length`` is shorter than the format requires.
    """
    fields = point_fields(point_format)
    minimum = record_size(fields)

    if record_length == 0:
        record_length = minimum
    if record_length < minimum:
        raise PayloadSizeMismatch(
            f"Point record length {record_length} is below the {minimum} bytes "
            f"required by format {point_format}"
        )

    if record_length > minimum:
        fields = fields + [FieldDescriptor("extra_bytes", 1, "U", record_length - minimum)]
    return record_dtype(fields)


def load_las(filepath: Path) -> Tuple[LASHeader, PointCloud]:
    """
    Load a LAS file into a PointCloud.

    Coordinates are ``raw * scale + offset`` per axis. 16-bit colors keep
    their high byte; formats without color load as white.

    Parameters
    ----------
    filepath : Path
        Path to LAS file.

    Returns
    -------
    tuple
        (LASHeader, PointCloud).

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    PointCloudIOError
        If the file cannot be read.
    HeaderParseError
        If the header is truncated, not LASF or not version 1.2-1.4.
    UnsupportedFormatError
        If the point format is above 10.
    PayloadSizeMismatch
        If the point records are shorter than the header declares.
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        with open(filepath, "rb") as f:
            header = parse_header(f)
            records = read_point_records(f, header)
    except OSError as e:
        if isinstance(e, PointCloudIOError):
            raise
        raise PointCloudIOError(f"Failed to read LAS file: {filepath}. Error: {e}") from e

    scale = np.asarray(header.scale, dtype=np.float64)
    offset = np.asarray(header.offset, dtype=np.float64)
    raw = np.column_stack([records["X"], records["Y"], records["Z"]]).astype(np.float64)
    xyz = (raw * scale + offset).astype(np.float32)

    if header.has_color:
        rgb = np.column_stack(
            [records["red"] >> 8, records["green"] >> 8, records["blue"] >> 8]
        ).astype(np.uint8)
    else:
        rgb = np.tile(np.array(DEFAULT_COLOR, dtype=np.uint8), (len(records), 1))

    finite = np.isfinite(xyz).all(axis=1)
    is_dense = bool(finite.all())
    if not is_dense:
        logger.debug(f"Dropping {int((~finite).sum())} non-finite points")
        xyz = xyz[finite]
        rgb = rgb[finite]

    cloud = PointCloud(xyz=xyz, rgb=rgb, width=len(xyz), height=1, is_dense=is_dense)

    logger.debug(
        f"Loaded {cloud.n_points} points (LAS {header.version}, "
        f"format {header.point_format}) from {filepath}"
    )
    return header, cloud


def parse_header(stream: BinaryIO) -> LASHeader:
    """
    Read the public header block from the start of ``stream``.

    Raises
    ------
    HeaderParseError
        If the header is truncated, the signature is not LASF or the
        version is not 1.2-1.4.
    UnsupportedFormatError
        If the point format is above 10.
    """
    values = _unpack(stream, HEADER_BLOCK, "header")

    header = LASHeader(
        file_signature=values[0],
        file_source_id=values[1],
        global_encoding=values[2],
        project_id=values[3],
        version_major=values[4],
        version_minor=values[5],
        system_identifier=_decode_text(values[6]),
        generating_software=_decode_text(values[7]),
        creation_day_of_year=values[8],
        creation_year=values[9],
        header_size=values[10],
        offset_to_point_data=values[11],
        number_of_vlrs=values[12],
        point_format=values[13],
        point_record_length=values[14],
        legacy_point_count=values[15],
        legacy_points_by_return=list(values[16:21]),
        scale=tuple(values[21:24]),
        offset=tuple(values[24:27]),
        max_bounds=(values[27], values[29], values[31]),
        min_bounds=(values[28], values[30], values[32]),
    )

    if header.file_signature != LAS_SIGNATURE:
        raise HeaderParseError(f"Not a LAS file, signature {header.file_signature!r}")
    if not header.is_valid:
        raise HeaderParseError(f"Unsupported LAS version {header.version}")
    if header.point_format > max(PointFormat):
        raise UnsupportedFormatError(f"Unsupported LAS point format: {header.point_format}")

    if header.version_minor >= 3:
        (header.waveform_data_offset,) = _unpack(stream, WAVEFORM_BLOCK, "1.3 header block")

    if header.version_minor >= 4:
        extended = _unpack(stream, EXTENDED_BLOCK, "1.4 header block")
        header.evlr_offset = extended[0]
        header.evlr_count = extended[1]
        header.extended_point_count = extended[2]
        header.points_by_return = list(extended[3:])

    return header


def read_point_records(stream: BinaryIO, header: LASHeader) -> np.ndarray:
    """
    Read every point record as a structured array.

    Raises
    ------
    PayloadSizeMismatch
        If the declared record length is too short for the format, or
        the file holds fewer records than the header declares.
    """
    dtype = point_dtype(header.point_format, header.point_record_length)
    count = header.total_point_count
    expected = count * dtype.itemsize

    stream.seek(header.offset_to_point_data)
    available = bytes_remaining(stream)

    if available < expected:
        raise PayloadSizeMismatch(
            f"Point data has {available} bytes, expected {expected} "
            f"({count} points x {dtype.itemsize} bytes)"
        )

    payload = stream.read(expected)
    return np.frombuffer(payload, dtype=dtype, count=count)


def return_number(records: np.ndarray, point_format: int) -> np.ndarray:
    """Decode the return number from each record's return byte."""
    if POINT_FORMAT_CAPABILITIES[PointFormat(point_format)].is_extended:
        return records["return_byte"] & 0x0F
    return records["return_byte"] & 0x07


def number_of_returns(records: np.ndarray, point_format: int) -> np.ndarray:
    """Decode the number of returns from each record's return byte."""
    if POINT_FORMAT_CAPABILITIES[PointFormat(point_format)].is_extended:
        return (records["return_byte"] >> 4) & 0x0F
    return (records["return_byte"] >> 3) & 0x07


def get_las_info(filepath: Path) -> Dict[str, Any]:
    """
    Get summary information about a LAS file without loading its points.

    Parameters
    ----------
    filepath : Path
        Path to LAS file.

    Returns
    -------
    dict
        Dictionary containing file information.
    """
    filepath = Path(filepath)

    with open(filepath, "rb") as f:
        header = parse_header(f)

    info = {
        "filepath": str(filepath),
        "point_count": header.total_point_count,
        "point_format": header.point_format,
        "version": header.version,
        "bounds": {
            "x": (header.min_bounds[0], header.max_bounds[0]),
            "y": (header.min_bounds[1], header.max_bounds[1]),
            "z": (header.min_bounds[2], header.max_bounds[2]),
        },
        "scale": header.scale,
        "offset": header.offset,
        "record_length": header.point_record_length,
        "has_color": header.has_color,
        "has_gps_time": header.has_gps_time,
        "has_near_infrared": header.has_near_infrared,
        "generating_software": header.generating_software,
        "creation_date": (header.creation_year, header.creation_day_of_year),
    }

    return info


def _unpack(stream: BinaryIO, layout: struct.Struct, what: str) -> tuple:
    data = stream.read(layout.size)
    if len(data) != layout.size:
        raise HeaderParseError(
            f"Truncated LAS {what}: {len(data)} of {layout.size} bytes"
        )
    return layout.unpack(data)


def _decode_text(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("ascii", errors="replace")
