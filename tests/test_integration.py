"""End-to-end integration tests for ScanForge."""

import numpy as np
import pytest


@pytest.fixture
def organized_scan(tmp_path):
    """Create an organized 40x25 PCD scan with a few invalid returns.

    Mimics a depth sensor frame: a tilted plane with a colour gradient,
    where some pixels have no return and are stored as NaN.
    """
    from scanforge.io import create_xyzrgb_header, save_pcd
    from scanforge.point_cloud import PointCloud

    width, height = 40, 25
    u, v = np.meshgrid(np.arange(width), np.arange(height))
    xyz = np.column_stack([
        u.ravel() * 0.05,
        v.ravel() * 0.05,
        1.0 + 0.01 * u.ravel() - 0.02 * v.ravel(),
    ]).astype(np.float32)
    xyz[::37] = np.nan

    rgb = np.column_stack([
        (u.ravel() * 6) % 256,
        (v.ravel() * 10) % 256,
        np.full(width * height, 90),
    ]).astype(np.uint8)

    cloud = PointCloud(xyz=xyz, rgb=rgb, width=width, height=height, is_dense=False)

    filepath = tmp_path / "frame.pcd"
    save_pcd(filepath, create_xyzrgb_header(cloud, "binary_compressed"), cloud)
    return filepath, cloud


class TestFullPipeline:
    """Convert between the formats and check nothing is lost."""

    def test_pcd_las_pcd_preserves_count(self, organized_scan, tmp_path):
        """Test CLI convert PCD -> LAS -> PCD keeps every finite point."""
        from scanforge.cli import main
        from scanforge.io import load_las, load_pcd

        source, cloud = organized_scan
        n_finite = int(cloud.finite_mask().sum())

        las_path = tmp_path / "stage" / "frame.las"
        pcd_path = tmp_path / "stage" / "frame_back.pcd"

        assert main(["convert", str(source), "-o", str(las_path), "--las-version", "2"]) == 0
        assert main(["convert", str(las_path), "-o", str(pcd_path)]) == 0

        las_header, las_cloud = load_las(las_path)
        pcd_header, pcd_cloud = load_pcd(pcd_path)

        assert las_header.total_point_count == n_finite
        assert las_cloud.n_points == n_finite
        assert pcd_header.points == n_finite
        assert pcd_cloud.n_points == n_finite

        original = cloud.xyz[cloud.finite_mask()]
        assert np.allclose(pcd_cloud.xyz, original, atol=0.02)
        assert np.array_equal(pcd_cloud.rgb, cloud.rgb[cloud.finite_mask()])

    def test_organized_shape_collapses_after_drop(self, organized_scan, tmp_path):
        """Test that a converted frame with dropped returns is written unorganized."""
        from scanforge.cli import main
        from scanforge.io import load_pcd

        source, cloud = organized_scan
        output = tmp_path / "frame_ascii.pcd"

        assert main(["convert", str(source), "-o", str(output), "--variant", "ascii"]) == 0

        header, loaded = load_pcd(output)

        # NaN returns are dropped on load, so the shape collapses to one row
        assert header.height == 1
        assert header.width == int(cloud.finite_mask().sum())
        assert loaded.is_dense

    def test_every_pcd_variant(self, organized_scan, tmp_path):
        """Test that all PCD variants decode to the same points."""
        from scanforge.io import load_pcd, save_pcd
        from scanforge.io.pcd_writer import create_xyzrgb_header

        _, cloud = organized_scan
        loaded = []
        for data in ("ascii", "binary", "binary_compressed"):
            filepath = tmp_path / f"variant_{data}.pcd"
            save_pcd(filepath, create_xyzrgb_header(cloud, data), cloud)
            header, result = load_pcd(filepath)
            assert (header.width, header.height) == (40, 25)
            loaded.append(result)

        for result in loaded[1:]:
            assert np.array_equal(result.xyz, loaded[0].xyz)
            assert np.array_equal(result.rgb, loaded[0].rgb)

    def test_laspy_round_trip(self, temp_las_rgb_file, simple_xyz, simple_rgb, tmp_path):
        """Test laspy LAS -> PCD -> LAS read back by laspy."""
        laspy = pytest.importorskip("laspy")
        from scanforge.cli import main

        pcd_path = tmp_path / "from_laspy.pcd"
        las_path = tmp_path / "to_laspy.las"

        assert main(["convert", str(temp_las_rgb_file), "-o", str(pcd_path)]) == 0
        assert main([
            "convert", str(pcd_path), "-o", str(las_path), "--las-version", "2",
        ]) == 0

        las = laspy.read(las_path)

        assert len(las.points) == len(simple_xyz)
        assert np.allclose(las.x, simple_xyz[:, 0], atol=0.02)
        assert np.array_equal(np.asarray(las.green) >> 8, simple_rgb[:, 1])


@pytest.mark.slow
def test_large_compressed_conversion(tmp_path):
    """Test a 200K point cloud through compressed PCD and LAS 1.4."""
    from scanforge.cli import main
    from scanforge.io import create_xyzrgb_header, load_las, save_pcd
    from scanforge.point_cloud import PointCloud

    rng = np.random.default_rng(0)
    n = 200_000
    xyz = (rng.integers(0, 2000, (n, 3)) * 0.01).astype(np.float32)
    rgb = rng.integers(0, 256, (n, 3), dtype=np.uint8)
    cloud = PointCloud(xyz=xyz, rgb=rgb)

    source = tmp_path / "large.pcd"
    save_pcd(source, create_xyzrgb_header(cloud, "binary_compressed"), cloud)

    output = tmp_path / "large.las"
    assert main([
        "convert", str(source), "-o", str(output),
        "--las-version", "4", "--las-format", "8",
    ]) == 0

    header, loaded = load_las(output)
    assert header.total_point_count == n
    assert np.array_equal(loaded.rgb, rgb)
