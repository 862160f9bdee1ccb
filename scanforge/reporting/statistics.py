"""
Statistics and header summaries for loaded point clouds.

Calculates bounding box and centroid statistics, and formats header
information dicts as text for the CLI.
"""

from typing import Any, Dict, Sequence

import numpy as np

from scanforge.point_cloud import PointCloud


def calculate_cloud_statistics(cloud: PointCloud) -> Dict:
    """
    Calculate summary statistics for a point cloud.

    Parameters
    ----------
    cloud : PointCloud
        Loaded point cloud.

    Returns
    -------
    dict
        Dictionary with statistics:
        - 'total': Number of points
        - 'is_dense': Whether the cloud was loaded without dropping points
        - 'bbox': Dict with 'min', 'max', 'center', 'size' lists, or None
          for an empty cloud
        - 'centroid': Mean position, or None for an empty cloud
    """
    n_total = cloud.n_points

    if n_total == 0:
        return {
            "total": 0,
            "is_dense": cloud.is_dense,
            "bbox": None,
            "centroid": None,
        }

    mins, maxs = cloud.bounding_box()
    mins = mins.astype(np.float64)
    maxs = maxs.astype(np.float64)

    return {
        "total": n_total,
        "is_dense": cloud.is_dense,
        "bbox": {
            "min": _rounded(mins),
            "max": _rounded(maxs),
            "center": _rounded((mins + maxs) * 0.5),
            "size": _rounded(maxs - mins),
        },
        "centroid": _rounded(cloud.centroid),
    }


def format_statistics(stats: Dict) -> str:
    """Render the output of calculate_cloud_statistics as text."""
    if stats["total"] == 0:
        return "No points to analyze."

    bbox = stats["bbox"]
    lines = [
        "Point Cloud Statistics",
        "======================",
        f"Total Points:    {stats['total']}",
        f"Is Dense:        {_yes_no(stats['is_dense'])}",
        "",
        "Bounding Box:",
        f"  Min:           {_triple(bbox['min'])}",
        f"  Max:           {_triple(bbox['max'])}",
        f"  Center:        {_triple(bbox['center'])}",
        f"  Size:          {_triple(bbox['size'])}",
        "",
        f"Centroid:        {_triple(stats['centroid'])}",
    ]
    return "\n".join(lines)


def format_pcd_info(info: Dict[str, Any]) -> str:
    """Render the output of get_pcd_info as text."""
    title = f"File Information for: {info['filepath']}"
    lines = [
        title,
        "=" * len(title),
        f"Version:    {info['version']}",
        f"Points:     {info['point_count']}",
        f"Dimensions: {info['width']} x {info['height']}",
        f"Data Type:  {info['data']}",
        f"Fields:     {', '.join(info['fields'])}",
        f"Viewpoint:  {info['viewpoint']}",
        f"Has XYZ:    {_yes_no(info['has_xyz'])}",
        f"Has RGB:    {_yes_no(info['has_rgb'])}",
    ]
    return "\n".join(lines)


def format_las_info(info: Dict[str, Any]) -> str:
    """Render the output of get_las_info as text."""
    title = f"File Information for: {info['filepath']}"
    bounds = info["bounds"]
    mins = [bounds[axis][0] for axis in ("x", "y", "z")]
    maxs = [bounds[axis][1] for axis in ("x", "y", "z")]
    lines = [
        title,
        "=" * len(title),
        f"Version:      {info['version']}",
        f"Points:       {info['point_count']}",
        f"Point Format: {info['point_format']}",
        f"Record Size:  {info['record_length']} bytes",
        f"Has RGB:      {_yes_no(info['has_color'])}",
        f"Has GPS Time: {_yes_no(info['has_gps_time'])}",
        f"Has NIR:      {_yes_no(info['has_near_infrared'])}",
        f"Bounding Box: {_triple(mins)} to {_triple(maxs)}",
        f"Scale Factor: {_triple(info['scale'], precision=6)}",
        f"Offset:       {_triple(info['offset'])}",
        f"Software:     {info['generating_software'] or 'Not specified'}",
    ]
    return "\n".join(lines)


def _rounded(values: Sequence[float]) -> list:
    return [round(float(v), 4) for v in values]


def _triple(values: Sequence[float], precision: int = 3) -> str:
    return "(" + ", ".join(f"{float(v):.{precision}f}" for v in values) + ")"


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"
