"""Tests for scanforge.io.formats module."""

import numpy as np
import pytest
from pathlib import Path


def test_detect_file_format():
    """Test detection by extension, case-insensitive."""
    from scanforge.io.formats import detect_file_format

    assert detect_file_format(Path("scan.pcd")) == "pcd"
    assert detect_file_format(Path("scan.PCD")) == "pcd"
    assert detect_file_format("scan.las") == "las"
    assert detect_file_format(Path("dir/scan.LAS")) == "las"
    assert detect_file_format(Path("scan.laz")) == "unknown"
    assert detect_file_format(Path("scan")) == "unknown"


def test_load_point_cloud_dispatch(tmp_path, two_point_cloud):
    """Test that load_point_cloud routes to the matching reader."""
    from scanforge.io.formats import load_point_cloud
    from scanforge.io.las_reader import LASHeader
    from scanforge.io.las_writer import create_las_header, save_las
    from scanforge.io.pcd_reader import PCDHeader
    from scanforge.io.pcd_writer import create_xyzrgb_header, save_pcd

    pcd_path = tmp_path / "cloud.pcd"
    las_path = tmp_path / "cloud.las"
    save_pcd(pcd_path, create_xyzrgb_header(two_point_cloud, "binary"), two_point_cloud)
    save_las(las_path, create_las_header(two_point_cloud), two_point_cloud)

    pcd_header, pcd_cloud = load_point_cloud(pcd_path)
    las_header, las_cloud = load_point_cloud(las_path)

    assert isinstance(pcd_header, PCDHeader)
    assert isinstance(las_header, LASHeader)
    assert np.array_equal(pcd_cloud.xyz, two_point_cloud.xyz)
    assert np.allclose(las_cloud.xyz, two_point_cloud.xyz, atol=0.02)


def test_load_point_cloud_missing(tmp_path):
    """Test that a missing file raises FileNotFoundError before dispatch."""
    from scanforge.io.formats import load_point_cloud

    with pytest.raises(FileNotFoundError):
        load_point_cloud(tmp_path / "missing.xyz")


def test_load_point_cloud_unknown_extension(tmp_path):
    """Test that an unknown extension is unsupported."""
    from scanforge.errors import UnsupportedFormatError
    from scanforge.io.formats import load_point_cloud

    filepath = tmp_path / "cloud.ply"
    filepath.write_text("ply\n")

    with pytest.raises(UnsupportedFormatError, match=".ply"):
        load_point_cloud(filepath)


def test_save_point_cloud(tmp_path, two_point_cloud):
    """Test saving through the dispatcher with a matching header."""
    from scanforge.io.formats import load_point_cloud, save_point_cloud
    from scanforge.io.las_writer import create_las_header
    from scanforge.io.pcd_reader import CompressedLayout
    from scanforge.io.pcd_writer import create_xyzrgb_header

    pcd_path = tmp_path / "out.pcd"
    las_path = tmp_path / "out.las"
    save_point_cloud(
        pcd_path,
        create_xyzrgb_header(two_point_cloud, "binary_compressed"),
        two_point_cloud,
        compressed_layout=CompressedLayout.COLUMN_MAJOR,
    )
    save_point_cloud(las_path, create_las_header(two_point_cloud), two_point_cloud)

    _, pcd_cloud = load_point_cloud(pcd_path, compressed_layout="column")
    _, las_cloud = load_point_cloud(las_path)

    assert np.array_equal(pcd_cloud.rgb, two_point_cloud.rgb)
    assert np.array_equal(las_cloud.rgb, two_point_cloud.rgb)


def test_save_point_cloud_mismatch(tmp_path, two_point_cloud):
    """Test that a header of the wrong kind is rejected."""
    from scanforge.errors import UnsupportedFormatError
    from scanforge.io.formats import save_point_cloud
    from scanforge.io.las_writer import create_las_header
    from scanforge.io.pcd_writer import create_xyzrgb_header

    with pytest.raises(UnsupportedFormatError, match="LASHeader"):
        save_point_cloud(tmp_path / "out.pcd", create_las_header(two_point_cloud), two_point_cloud)

    with pytest.raises(UnsupportedFormatError, match="extension"):
        save_point_cloud(
            tmp_path / "out.xyz",
            create_xyzrgb_header(two_point_cloud, "ascii"),
            two_point_cloud,
        )
    assert not (tmp_path / "out.pcd").exists()
