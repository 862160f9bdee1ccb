"""
ScanForge: point cloud I/O for PCD and LAS files.

Reads and writes PCD (ascii, binary, binary_compressed) and LAS 1.2-1.4
point clouds, including the LZF codec used by compressed PCD payloads.
"""

__version__ = "1.0.0"

# Import public API
from scanforge.config import ScanForgeConfig
from scanforge.errors import (
    CompressionError,
    HeaderParseError,
    PayloadSizeMismatch,
    PointCloudIOError,
    ScanForgeError,
    UnsupportedFormatError,
)
from scanforge.io import (
    CompressedLayout,
    LASHeader,
    PCDHeader,
    create_las_header,
    create_xyzrgb_header,
    detect_file_format,
    load_las,
    load_pcd,
    load_point_cloud,
    save_las,
    save_pcd,
    save_point_cloud,
)
from scanforge.point_cloud import Point, PointCloud

__all__ = [
    "__version__",
    # Config
    "ScanForgeConfig",
    # Model
    "Point",
    "PointCloud",
    # I/O
    "PCDHeader",
    "LASHeader",
    "CompressedLayout",
    "load_point_cloud",
    "save_point_cloud",
    "detect_file_format",
    "load_pcd",
    "save_pcd",
    "create_xyzrgb_header",
    "load_las",
    "save_las",
    "create_las_header",
    # Errors
    "ScanForgeError",
    "PointCloudIOError",
    "HeaderParseError",
    "PayloadSizeMismatch",
    "CompressionError",
    "UnsupportedFormatError",
]
