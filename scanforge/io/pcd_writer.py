"""
PCD file writer for ScanForge.

Provides create_xyzrgb_header and the save functions for writing point
clouds as ascii, binary or binary_compressed PCD files.
"""

import logging
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np

from scanforge.codec import lzf
from scanforge.errors import PayloadSizeMismatch, PointCloudIOError
from scanforge.io.layout import (
    FieldDescriptor,
    encode_records,
    record_dtype,
    split_columns,
)
from scanforge.io.pcd_reader import (
    COMPRESSED_PREFIX,
    CompressedLayout,
    DataRepresentation,
    PCDHeader,
)
from scanforge.point_cloud import PointCloud

logger = logging.getLogger(__name__)

PCD_VERSION = "0.7"
DEFAULT_VIEWPOINT = "0 0 0 1 0 0 0"

# Fixed schema written by ScanForge: float positions plus a packed color
XYZRGB_FIELDS = [
    FieldDescriptor("x", 4, "F", 1),
    FieldDescriptor("y", 4, "F", 1),
    FieldDescriptor("z", 4, "F", 1),
    FieldDescriptor("rgb", 4, "U", 1),
]


def create_xyzrgb_header(
    cloud: PointCloud,
    data: Union[str, DataRepresentation] = DataRepresentation.ASCII,
) -> PCDHeader:
    """
    Create a PCD header describing ``cloud`` with the x/y/z/rgb schema.

    The cloud's width and height are kept when they describe its points
    exactly; otherwise the header describes an unorganized cloud
    (width = number of points, height = 1).

    Parameters
    ----------
    cloud : PointCloud
        Point cloud to describe.
    data : str or DataRepresentation
        "ascii", "binary" or "binary_compressed".

    Raises
    ------
    UnsupportedFormatError
        If ``data`` is not a known representation.
    """
    representation = DataRepresentation.parse(
        data.value if isinstance(data, DataRepresentation) else data
    )

    n_points = cloud.n_points
    if n_points > 0 and cloud.width * cloud.height == n_points:
        width, height = cloud.width, cloud.height
    else:
        width, height = n_points, 1

    return PCDHeader(
        version=PCD_VERSION,
        fields=list(XYZRGB_FIELDS),
        width=width,
        height=height,
        viewpoint=DEFAULT_VIEWPOINT,
        points=n_points,
        data=representation,
    )


def save_pcd(
    filepath: Path,
    header: PCDHeader,
    cloud: PointCloud,
    compressed_layout: CompressedLayout = CompressedLayout.ROW_MAJOR,
) -> None:
    """
    Save a point cloud using the representation named by ``header.data``.

    Parameters
    ----------
    filepath : Path
        Output file path.
    header : PCDHeader
        Header to write; its ``points`` must equal the cloud size.
    cloud : PointCloud
        Points to write.
    compressed_layout : CompressedLayout
        Field ordering for binary_compressed payloads.

    Raises
    ------
    PayloadSizeMismatch
        If the header's point count differs from the cloud.
    PointCloudIOError
        If the file cannot be written.
    """
    if header.data is DataRepresentation.ASCII:
        save_pcd_ascii(filepath, header, cloud)
    elif header.data is DataRepresentation.BINARY:
        save_pcd_binary(filepath, header, cloud)
    else:
        save_pcd_binary_compressed(filepath, header, cloud, compressed_layout)


def save_pcd_ascii(filepath: Path, header: PCDHeader, cloud: PointCloud) -> None:
    """Save a point cloud as an ascii PCD file."""
    records = _cloud_to_records(header, cloud)

    def write_payload(f: BinaryIO) -> None:
        names = records.dtype.names
        for record in records:
            tokens = []
            for name in names:
                value = record[name]
                if np.ndim(value) == 0:
                    tokens.append(str(value))
                else:
                    tokens.extend(str(v) for v in value)
            f.write((" ".join(tokens) + "\n").encode("ascii"))

    _write_file(filepath, header, DataRepresentation.ASCII, write_payload)


def save_pcd_binary(filepath: Path, header: PCDHeader, cloud: PointCloud) -> None:
    """Save a point cloud as a binary PCD file."""
    records = _cloud_to_records(header, cloud)

    def write_payload(f: BinaryIO) -> None:
        f.write(encode_records(records))

    _write_file(filepath, header, DataRepresentation.BINARY, write_payload)


def save_pcd_binary_compressed(
    filepath: Path,
    header: PCDHeader,
    cloud: PointCloud,
    compressed_layout: CompressedLayout = CompressedLayout.ROW_MAJOR,
) -> None:
    """Save a point cloud as a binary_compressed PCD file."""
    records = _cloud_to_records(header, cloud)

    if CompressedLayout(compressed_layout) is CompressedLayout.COLUMN_MAJOR:
        raw = split_columns(records)
    else:
        raw = encode_records(records)

    compressed = lzf.compress(raw)

    def write_payload(f: BinaryIO) -> None:
        f.write(COMPRESSED_PREFIX.pack(len(compressed), len(raw)))
        f.write(compressed)

    _write_file(filepath, header, DataRepresentation.BINARY_COMPRESSED, write_payload)


def format_header(header: PCDHeader, data: DataRepresentation) -> str:
    """Render the PCD preamble, ending with the DATA line."""
    fields = header.fields
    lines = [
        "# .PCD v0.7 - Point Cloud Data file format",
        f"VERSION {header.version or PCD_VERSION}",
        "FIELDS " + " ".join(f.name for f in fields),
        "SIZE " + " ".join(str(f.size) for f in fields),
        "TYPE " + " ".join(f.type for f in fields),
        "COUNT " + " ".join(str(f.count) for f in fields),
        f"WIDTH {header.width}",
        f"HEIGHT {header.height}",
        f"VIEWPOINT {header.viewpoint or DEFAULT_VIEWPOINT}",
        f"POINTS {header.points}",
        f"DATA {data.value}",
    ]
    return "\n".join(lines) + "\n"


def _cloud_to_records(header: PCDHeader, cloud: PointCloud) -> np.ndarray:
    """
    Fill a structured array laid out per ``header.fields``.

    x/y/z come from the positions, rgb from the packed colors, and any
    other field is zero-filled.
    """
    if header.points != cloud.n_points:
        raise PayloadSizeMismatch(
            f"Header declares {header.points} points, cloud has {cloud.n_points}"
        )

    dtype = record_dtype(header.fields)
    records = np.zeros(cloud.n_points, dtype=dtype)

    sources = {
        "x": cloud.xyz[:, 0],
        "y": cloud.xyz[:, 1],
        "z": cloud.xyz[:, 2],
    }
    packed = cloud.packed_rgb

    for f, name in zip(header.fields, dtype.names):
        if f.name in sources:
            values = sources[f.name]
        elif f.name == "rgb":
            values = packed.view("<f4") if f.type == "F" and f.size == 4 else packed
        else:
            continue

        if f.count == 1:
            records[name] = values
        else:
            records[name][:, 0] = values

    return records


def _write_file(filepath: Path, header: PCDHeader, data: DataRepresentation, write_payload) -> None:
    """Open ``filepath``, write the preamble and hand the stream to ``write_payload``."""
    filepath = Path(filepath)

    try:
        with open(filepath, "wb") as f:
            f.write(format_header(header, data).encode("ascii"))
            write_payload(f)
    except OSError as e:
        raise PointCloudIOError(f"Failed to write PCD file: {filepath}. Error: {e}") from e

    logger.debug(f"Saved {header.points} points ({data.value}) to {filepath}")
