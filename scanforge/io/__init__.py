"""I/O module for reading and writing point cloud files."""

from scanforge.io.formats import detect_file_format, load_point_cloud, save_point_cloud
from scanforge.io.las_reader import (
    LASHeader,
    PointFormat,
    get_las_info,
    load_las,
)
from scanforge.io.las_writer import create_las_header, save_las
from scanforge.io.pcd_reader import (
    CompressedLayout,
    DataRepresentation,
    PCDHeader,
    get_pcd_info,
    load_pcd,
)
from scanforge.io.pcd_writer import create_xyzrgb_header, save_pcd

__all__ = [
    "detect_file_format",
    "load_point_cloud",
    "save_point_cloud",
    "LASHeader",
    "PointFormat",
    "load_las",
    "get_las_info",
    "create_las_header",
    "save_las",
    "PCDHeader",
    "DataRepresentation",
    "CompressedLayout",
    "load_pcd",
    "get_pcd_info",
    "create_xyzrgb_header",
    "save_pcd",
]
