"""Reporting module for point cloud statistics and header summaries."""

from scanforge.reporting.statistics import (
    calculate_cloud_statistics,
    format_las_info,
    format_pcd_info,
    format_statistics,
)

__all__ = [
    "calculate_cloud_statistics",
    "format_statistics",
    "format_pcd_info",
    "format_las_info",
]
