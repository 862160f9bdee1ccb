"""
LAS file writer for ScanForge.

Provides create_las_header and save_las for writing point clouds as
LAS 1.2, 1.3 or 1.4 files.
"""

import dataclasses
import datetime
import logging
from pathlib import Path
from typing import BinaryIO, Sequence, Union

import numpy as np

from scanforge import __version__
from scanforge.errors import PointCloudIOError, UnsupportedFormatError
from scanforge.io.las_reader import (
    EXTENDED_BLOCK,
    HEADER_BLOCK,
    HEADER_SIZES,
    LAS_SIGNATURE,
    POINT_RECORD_LENGTHS,
    WAVEFORM_BLOCK,
    LASHeader,
    PointFormat,
    point_dtype,
)
from scanforge.point_cloud import PointCloud

logger = logging.getLogger(__name__)

SYSTEM_IDENTIFIER = "OTHER"
GENERATING_SOFTWARE = f"ScanForge {__version__}"

# Defaults for attributes a PointCloud does not carry
DEFAULT_CLASSIFICATION = 1  # unclassified
_INT32_MIN = np.iinfo(np.int32).min
_INT32_MAX = np.iinfo(np.int32).max


def create_las_header(
    cloud: PointCloud,
    point_format: int = 3,
    version_minor: int = 3,
    scale: Union[float, Sequence[float]] = 0.01,
    offset: Union[float, Sequence[float]] = 0.0,
) -> LASHeader:
    """
    Create a LAS header describing ``cloud``.

    Parameters
    ----------
    cloud : PointCloud
        Point cloud to describe.
    point_format : int
        Point record format (0-10). Formats 6-10 need LAS 1.4.
    version_minor : int
        LAS minor version: 2, 3 or 4.
    scale : float or sequence of float
        Coordinate scale factor, shared or per axis.
    offset : float or sequence of float
        Coordinate offset, shared or per axis.

    Returns
    -------
    LASHeader
        Header with counts and bounds taken from the finite points.

    Raises
    ------
    UnsupportedFormatError
        If the version or point format is not supported.
    """
    if version_minor not in HEADER_SIZES:
        raise UnsupportedFormatError(f"Unsupported LAS version 1.{version_minor}")
    try:
        point_format = int(PointFormat(point_format))
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported LAS point format: {point_format}") from None
    _check_format_version(point_format, version_minor)

    today = datetime.date.today()

    header = LASHeader(
        file_signature=LAS_SIGNATURE,
        version_major=1,
        version_minor=version_minor,
        system_identifier=SYSTEM_IDENTIFIER,
        generating_software=GENERATING_SOFTWARE,
        creation_day_of_year=today.timetuple().tm_yday,
        creation_year=today.year,
        point_format=point_format,
        scale=_per_axis(scale),
        offset=_per_axis(offset),
    )
    return _synchronize(header, cloud.xyz[cloud.finite_mask()].astype(np.float64))


def save_las(filepath: Path, header: LASHeader, cloud: PointCloud) -> LASHeader:
    """
    Save a point cloud as a LAS file.

    Only points with finite coordinates are written. Header size, point
    offset, record length, point counts and bounds are recomputed from
    what is written; everything else comes from ``header``.

    Parameters
    ----------
    filepath : Path
        Output file path.
    header : LASHeader
        Version, point format, scale and offset to write with.
    cloud : PointCloud
        Points to write.

    Returns
    -------
    LASHeader
        The header as written.

    Raises
    ------
    UnsupportedFormatError
        If the header's version or point format is not supported.
    ValueError
        If a scale is zero or a scaled coordinate overflows int32.
    PointCloudIOError
        If the file cannot be written.
    """
    filepath = Path(filepath)

    if not header.is_valid:
        raise UnsupportedFormatError(
            f"Cannot write LAS header: signature {header.file_signature!r}, "
            f"version {header.version}"
        )
    caps = header.capabilities
    _check_format_version(header.point_format, header.version_minor)

    mask = cloud.finite_mask()
    xyz = cloud.xyz[mask].astype(np.float64)
    rgb = cloud.rgb[mask]

    header = _synchronize(header, xyz)
    records = np.zeros(len(xyz), dtype=point_dtype(header.point_format))

    raw = _scale_coordinates(xyz, header)
    records["X"] = raw[:, 0]
    records["Y"] = raw[:, 1]
    records["Z"] = raw[:, 2]

    # Return 1 of 1
    records["return_byte"] = 0x11 if caps.is_extended else 0x09
    records["classification"] = DEFAULT_CLASSIFICATION

    if caps.has_color:
        colors = rgb.astype(np.uint16) << 8
        records["red"] = colors[:, 0]
        records["green"] = colors[:, 1]
        records["blue"] = colors[:, 2]

    try:
        with open(filepath, "wb") as f:
            write_header(f, header)
            f.write(records.tobytes())
    except OSError as e:
        raise PointCloudIOError(f"Failed to write LAS file: {filepath}. Error: {e}") from e

    logger.debug(
        f"Saved {len(records)} points (LAS {header.version}, "
        f"format {header.point_format}) to {filepath}"
    )
    return header


def write_header(stream: BinaryIO, header: LASHeader) -> None:
    """Write the public header block, including the 1.3 and 1.4 blocks."""
    stream.write(
        HEADER_BLOCK.pack(
            header.file_signature,
            header.file_source_id,
            header.global_encoding,
            header.project_id,
            header.version_major,
            header.version_minor,
            header.system_identifier.encode("ascii", errors="replace"),
            header.generating_software.encode("ascii", errors="replace"),
            header.creation_day_of_year,
            header.creation_year,
            header.header_size,
            header.offset_to_point_data,
            header.number_of_vlrs,
            header.point_format,
            header.point_record_length,
            header.legacy_point_count,
            *header.legacy_points_by_return,
            *header.scale,
            *header.offset,
            header.max_bounds[0],
            header.min_bounds[0],
            header.max_bounds[1],
            header.min_bounds[1],
            header.max_bounds[2],
            header.min_bounds[2],
        )
    )

    if header.version_minor >= 3:
        stream.write(WAVEFORM_BLOCK.pack(header.waveform_data_offset))

    if header.version_minor >= 4:
        stream.write(
            EXTENDED_BLOCK.pack(
                header.evlr_offset,
                header.evlr_count,
                header.extended_point_count,
                *header.points_by_return,
            )
        )


def _synchronize(header: LASHeader, xyz: np.ndarray) -> LASHeader:
    """Return a copy of ``header`` whose derived fields describe ``xyz``."""
    n_points = len(xyz)
    header_size = HEADER_SIZES[header.version_minor]

    # Formats 6-10 only have the 64-bit counts
    legacy = n_points if header.point_format < PointFormat.FORMAT_6 else 0

    if n_points > 0:
        min_bounds = tuple(float(v) for v in xyz.min(axis=0))
        max_bounds = tuple(float(v) for v in xyz.max(axis=0))
    else:
        min_bounds = max_bounds = (0.0, 0.0, 0.0)

    return dataclasses.replace(
        header,
        header_size=header_size,
        offset_to_point_data=header_size,
        number_of_vlrs=0,
        point_record_length=POINT_RECORD_LENGTHS[header.point_format],
        legacy_point_count=legacy,
        legacy_points_by_return=[legacy, 0, 0, 0, 0],
        min_bounds=min_bounds,
        max_bounds=max_bounds,
        waveform_data_offset=0,
        evlr_offset=0,
        evlr_count=0,
        extended_point_count=n_points if header.version_minor >= 4 else 0,
        points_by_return=[n_points if header.version_minor >= 4 else 0] + [0] * 14,
    )


def _scale_coordinates(xyz: np.ndarray, header: LASHeader) -> np.ndarray:
    """Convert coordinates to the scaled int32 values stored on disk."""
    scale = np.asarray(header.scale, dtype=np.float64)
    offset = np.asarray(header.offset, dtype=np.float64)

    if np.any(scale == 0):
        raise ValueError(f"LAS scale factors must be non-zero, got {header.scale}")

    raw = np.trunc((xyz - offset) / scale)
    if raw.size and (raw.min() < _INT32_MIN or raw.max() > _INT32_MAX):
        raise ValueError(
            "Scaled coordinates exceed the int32 range; "
            "use a larger scale or an offset closer to the data"
        )
    return raw.astype(np.int32)


def _per_axis(value: Union[float, Sequence[float]]) -> tuple:
    if np.ndim(value) == 0:
        return (float(value),) * 3
    values = tuple(float(v) for v in value)
    if len(values) != 3:
        raise ValueError(f"Expected 3 per-axis values, got {len(values)}")
    return values


def _check_format_version(point_format: int, version_minor: int) -> None:
    if point_format >= PointFormat.FORMAT_6 and version_minor < 4:
        raise UnsupportedFormatError(
            f"Point format {point_format} requires LAS 1.4, got 1.{version_minor}"
        )
