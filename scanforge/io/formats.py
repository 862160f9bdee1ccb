"""
Format dispatch by file extension.

Routes load and save calls to the PCD or LAS codec so callers such as the
CLI do not need to know which container a path holds.
"""

from pathlib import Path
from typing import Tuple, Union

from scanforge.errors import UnsupportedFormatError
from scanforge.io.las_reader import LASHeader, load_las
from scanforge.io.las_writer import save_las
from scanforge.io.pcd_reader import CompressedLayout, PCDHeader, load_pcd
from scanforge.io.pcd_writer import save_pcd
from scanforge.point_cloud import PointCloud

Header = Union[PCDHeader, LASHeader]

# Recognised extensions, lower case
FORMAT_EXTENSIONS = {
    ".pcd": "pcd",
    ".las": "las",
}


def detect_file_format(filepath: Path) -> str:
    """Return "pcd", "las" or "unknown" based on the file extension."""
    return FORMAT_EXTENSIONS.get(Path(filepath).suffix.lower(), "unknown")


def load_point_cloud(
    filepath: Path,
    compressed_layout: CompressedLayout = CompressedLayout.ROW_MAJOR,
) -> Tuple[Header, PointCloud]:
    """
    Load a PCD or LAS file.

    Parameters
    ----------
    filepath : Path
        Path to a .pcd or .las file.
    compressed_layout : CompressedLayout
        Field ordering used for binary_compressed PCD payloads.

    Returns
    -------
    tuple
        (header, PointCloud), where header is a PCDHeader or LASHeader.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    UnsupportedFormatError
        If the extension is neither .pcd nor .las.
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    file_format = detect_file_format(filepath)
    if file_format == "pcd":
        return load_pcd(filepath, compressed_layout=compressed_layout)
    if file_format == "las":
        return load_las(filepath)

    raise UnsupportedFormatError(f"Unsupported file extension: {filepath.suffix!r}")


def save_point_cloud(
    filepath: Path,
    header: Header,
    cloud: PointCloud,
    compressed_layout: CompressedLayout = CompressedLayout.ROW_MAJOR,
) -> None:
    """
    Save a point cloud as PCD or LAS according to the file extension.

    The header must match the extension: a PCDHeader for .pcd and a
    LASHeader for .las.

    Raises
    ------
    UnsupportedFormatError
        If the extension is unknown or does not match the header type.
    """
    filepath = Path(filepath)
    file_format = detect_file_format(filepath)

    if file_format == "pcd" and isinstance(header, PCDHeader):
        save_pcd(filepath, header, cloud, compressed_layout=compressed_layout)
    elif file_format == "las" and isinstance(header, LASHeader):
        save_las(filepath, header, cloud)
    elif file_format == "unknown":
        raise UnsupportedFormatError(f"Unsupported file extension: {filepath.suffix!r}")
    else:
        raise UnsupportedFormatError(
            f"{type(header).__name__} cannot be written to a .{file_format} file"
        )
