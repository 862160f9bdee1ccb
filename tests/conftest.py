"""
Shared pytest fixtures for ScanForge tests.

These fixtures provide consistent test data across all test modules.
"""

import numpy as np
import pytest
from pathlib import Path


# =============================================================================
# Synthetic Point Cloud Fixtures
# =============================================================================

@pytest.fixture
def simple_xyz() -> np.ndarray:
    """Simple 100-point random point cloud."""
    np.random.seed(42)  # Reproducible
    return np.random.uniform(0, 10, (100, 3)).astype(np.float32)


@pytest.fixture
def simple_rgb() -> np.ndarray:
    """Random 8-bit colors matching simple_xyz."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, (100, 3), dtype=np.uint8)


@pytest.fixture
def simple_cloud(simple_xyz, simple_rgb):
    """100-point colored cloud."""
    from scanforge.point_cloud import PointCloud

    return PointCloud(xyz=simple_xyz, rgb=simple_rgb)


@pytest.fixture
def two_point_cloud():
    """Two colored points with centimetre coordinates."""
    from scanforge.point_cloud import PointCloud

    xyz = np.array([[1.23, 4.56, 7.89], [-10.5, 20.25, 0.01]], dtype=np.float32)
    rgb = np.array([[255, 128, 64], [0, 10, 200]], dtype=np.uint8)
    return PointCloud(xyz=xyz, rgb=rgb)


@pytest.fixture
def large_cloud():
    """Larger cloud (10K points) on a coarse grid, so payloads compress."""
    from scanforge.point_cloud import PointCloud

    rng = np.random.default_rng(42)
    n = 10000
    xyz = rng.integers(0, 50, (n, 3)).astype(np.float32) * 0.5
    rgb = np.repeat(rng.integers(0, 256, (n // 100, 3), dtype=np.uint8), 100, axis=0)
    return PointCloud(xyz=xyz, rgb=rgb)


# =============================================================================
# PCD File Fixtures
# =============================================================================

@pytest.fixture
def write_pcd(tmp_path):
    """Factory that writes a PCD file from header lines and a payload."""

    def _write(header_lines, payload: bytes = b"", name: str = "cloud.pcd") -> Path:
        filepath = tmp_path / name
        text = "\n".join(header_lines) + "\n"
        filepath.write_bytes(text.encode("ascii") + payload)
        return filepath

    return _write


@pytest.fixture
def xyzrgb_header_lines():
    """Header lines for a 3-point x/y/z/rgb PCD file, without DATA."""
    return [
        "# .PCD v0.7 - Point Cloud Data file format",
        "VERSION 0.7",
        "FIELDS x y z rgb",
        "SIZE 4 4 4 4",
        "TYPE F F F U",
        "COUNT 1 1 1 1",
        "WIDTH 3",
        "HEIGHT 1",
        "VIEWPOINT 0 0 0 1 0 0 0",
        "POINTS 3",
    ]


# =============================================================================
# LAS File Fixtures
# =============================================================================

@pytest.fixture
def temp_las_file(tmp_path, simple_xyz) -> Path:
    """Create a LAS 1.4 format 0 file with laspy."""
    try:
        import laspy
    except ImportError:
        pytest.skip("laspy not installed")

    filepath = tmp_path / "test_cloud.las"

    las = laspy.create(point_format=0, file_version="1.4")
    las.header.scales = np.array([0.001, 0.001, 0.001])
    las.header.offsets = np.array([0.0, 0.0, 0.0])
    las.x = simple_xyz[:, 0]
    las.y = simple_xyz[:, 1]
    las.z = simple_xyz[:, 2]
    las.write(filepath)

    return filepath


@pytest.fixture
def temp_las_rgb_file(tmp_path, simple_xyz, simple_rgb) -> Path:
    """Create a LAS 1.2 format 3 file with 16-bit colors using laspy."""
    try:
        import laspy
    except ImportError:
        pytest.skip("laspy not installed")

    filepath = tmp_path / "test_cloud_rgb.las"

    las = laspy.create(point_format=3, file_version="1.2")
    las.header.scales = np.array([0.001, 0.001, 0.001])
    las.header.offsets = np.array([0.0, 0.0, 0.0])
    las.x = simple_xyz[:, 0]
    las.y = simple_xyz[:, 1]
    las.z = simple_xyz[:, 2]
    las.red = simple_rgb[:, 0].astype(np.uint16) << 8
    las.green = simple_rgb[:, 1].astype(np.uint16) << 8
    las.blue = simple_rgb[:, 2].astype(np.uint16) << 8
    las.write(filepath)

    return filepath


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def default_config():
    """Default ScanForge configuration."""
    from scanforge.config import ScanForgeConfig
    return ScanForgeConfig()


@pytest.fixture
def custom_config():
    """Custom configuration for testing overrides."""
    from scanforge.config import ScanForgeConfig
    return ScanForgeConfig(
        output_format="las",
        pcd_variant="compressed",
        pcd_compressed_layout="column",
        las_point_format=7,
        las_version_minor=4,
        las_scale=0.001,
        las_offset=100.0,
    )


# =============================================================================
# Utility Fixtures
# =============================================================================

@pytest.fixture
def output_dir(tmp_path) -> Path:
    """Create a temporary output directory."""
    out = tmp_path / "output"
    out.mkdir()
    return out


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
