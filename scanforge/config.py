"""
Configuration module for ScanForge.

Contains the ScanForgeConfig dataclass with the output settings used by
the conversion commands, and YAML load/save helpers.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

import yaml

from scanforge.io.pcd_reader import CompressedLayout, DataRepresentation

# CLI/config names for the PCD data representations
PCD_VARIANTS: Dict[str, DataRepresentation] = {
    "ascii": DataRepresentation.ASCII,
    "binary": DataRepresentation.BINARY,
    "compressed": DataRepresentation.BINARY_COMPRESSED,
}

OUTPUT_FORMATS = ("pcd", "las")


@dataclass
class ScanForgeConfig:
    """Configuration for point cloud conversion.

    Parameters
    ----------
    output_format : str
        Output container when it cannot be taken from the file name:
        "pcd" or "las".
    pcd_variant : str
        PCD data representation: "ascii", "binary" or "compressed".
    pcd_compressed_layout : str
        Field ordering of binary_compressed payloads: "row" or "column".
    las_point_format : int
        LAS point record format (0-10).
    las_version_minor : int
        LAS minor version (2, 3 or 4).
    las_scale : float
        Coordinate scale factor for LAS output.
    las_offset : float
        Coordinate offset for LAS output.
    verbose : bool
        Enable debug logging.
    """

    # Output
    output_format: str = "pcd"
    verbose: bool = False

    # PCD
    pcd_variant: str = "binary"
    pcd_compressed_layout: str = "row"

    # LAS
    las_point_format: int = 3
    las_version_minor: int = 3
    las_scale: float = 0.01
    las_offset: float = 0.0

    def __post_init__(self):
        """Validate option values."""
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"output_format must be one of {OUTPUT_FORMATS}, got {self.output_format!r}"
            )
        if self.pcd_variant not in PCD_VARIANTS:
            raise ValueError(
                f"pcd_variant must be one of {tuple(PCD_VARIANTS)}, got {self.pcd_variant!r}"
            )
        try:
            CompressedLayout(self.pcd_compressed_layout)
        except ValueError:
            raise ValueError(
                f"pcd_compressed_layout must be 'row' or 'column', "
                f"got {self.pcd_compressed_layout!r}"
            ) from None
        if not 0 <= int(self.las_point_format) <= 10:
            raise ValueError(f"las_point_format must be 0-10, got {self.las_point_format}")
        if int(self.las_version_minor) not in (2, 3, 4):
            raise ValueError(f"las_version_minor must be 2, 3 or 4, got {self.las_version_minor}")
        if float(self.las_scale) <= 0:
            raise ValueError(f"las_scale must be positive, got {self.las_scale}")

    @property
    def pcd_data(self) -> DataRepresentation:
        """PCD data representation selected by ``pcd_variant``."""
        return PCD_VARIANTS[self.pcd_variant]

    @property
    def compressed_layout(self) -> CompressedLayout:
        return CompressedLayout(self.pcd_compressed_layout)


def load_config(yaml_path: Path) -> ScanForgeConfig:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    yaml_path : Path
        Path to YAML configuration file.

    Returns
    -------
    ScanForgeConfig
        Configuration object with values from file.

    Raises
    ------
    FileNotFoundError
        If the YAML file does not exist.
    ValueError
        If the YAML file contains invalid configuration.
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return ScanForgeConfig()

    if not isinstance(data, dict):
        raise ValueError(f"Configuration must be a mapping, got {type(data).__name__}")

    config_dict = _flatten_config(data)

    known = {f.name for f in fields(ScanForgeConfig)}
    unknown = sorted(set(config_dict) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")

    return ScanForgeConfig(**config_dict)


def save_config(config: ScanForgeConfig, yaml_path: Path) -> None:
    """
    Save configuration to YAML file.

    Parameters
    ----------
    config : ScanForgeConfig
        Configuration object to save.
    yaml_path : Path
        Path to output YAML file.
    """
    yaml_path = Path(yaml_path)

    # Convert to nested dictionary structure for readability
    data = _unflatten_config(config)

    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with open(yaml_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _flatten_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten nested YAML structure to flat config dict."""
    result = {}

    # Section keys are stored with the section name as prefix
    prefixes = {
        "output": "",
        "pcd": "pcd_",
        "las": "las_",
    }

    for key, value in data.items():
        if key in prefixes and isinstance(value, dict):
            prefix = prefixes[key]
            for k, v in value.items():
                if key == "output" and k == "format":
                    result["output_format"] = v
                elif prefix and not k.startswith(prefix):
                    result[f"{prefix}{k}"] = v
                else:
                    result[k] = v
        else:
            result[key] = value

    return result


def _unflatten_config(config: ScanForgeConfig) -> Dict[str, Any]:
    """Convert flat config to nested structure for YAML output."""
    return {
        "output": {
            "format": config.output_format,
            "verbose": config.verbose,
        },
        "pcd": {
            "variant": config.pcd_variant,
            "compressed_layout": config.pcd_compressed_layout,
        },
        "las": {
            "point_format": config.las_point_format,
            "version_minor": config.las_version_minor,
            "scale": config.las_scale,
            "offset": config.las_offset,
        },
    }
