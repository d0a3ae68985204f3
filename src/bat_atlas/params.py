"""
Run parameters for the metrics and point-export paths.

Defaults reproduce the constants of the BigQuery reporting queries, so a run
without configs/params.yml yields output comparable with the published CSV.
Values in params.yml override defaults key by key.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from bat_atlas.io_utils import read_yaml

# Nested schemes only: a point's fine cell must lie inside its coarse cell
SUPPORTED_SCHEMES = ("s2",)

# Finest level each scheme supports
MAX_LEVELS = {"s2": 30}


class ConfigError(Exception):
    """Raised when run parameters are invalid."""
    pass


@dataclass(frozen=True)
class MetricsParams:
    """Admission window, binning and suppression settings for the metrics path."""
    year_min: int = 1960
    year_max: int = 2026
    block_width: int = 5
    min_records_per_bin: int = 10
    unidentified_pattern: str = "nidentified"

    def __post_init__(self):
        if self.year_min > self.year_max:
            raise ConfigError(f"year_min {self.year_min} is after year_max {self.year_max}")
        if self.block_width < 1:
            raise ConfigError(f"block_width must be >= 1, got {self.block_width}")
        if self.min_records_per_bin < 1:
            raise ConfigError(
                f"min_records_per_bin must be >= 1, got {self.min_records_per_bin}"
            )
        if not self.unidentified_pattern:
            raise ConfigError("unidentified_pattern must be a non-empty string")


@dataclass(frozen=True)
class SpatialParams:
    """Cell scheme and the two resolution levels (coarse for bins, fine for points)."""
    scheme: str = "s2"
    coarse_level: int = 10
    fine_level: int = 12

    def __post_init__(self):
        if self.scheme not in SUPPORTED_SCHEMES:
            raise ConfigError(
                f"Unknown cell scheme: {self.scheme}. Available: {list(SUPPORTED_SCHEMES)}"
            )
        max_level = MAX_LEVELS[self.scheme]
        for name in ("coarse_level", "fine_level"):
            level = getattr(self, name)
            if not 0 <= level <= max_level:
                raise ConfigError(
                    f"{name}={level} outside [0, {max_level}] for scheme {self.scheme}"
                )
        if self.coarse_level > self.fine_level:
            raise ConfigError(
                f"coarse_level {self.coarse_level} is finer than fine_level {self.fine_level}"
            )


@dataclass(frozen=True)
class ExportParams:
    """Cleaning rules for the point-level export."""
    unidentified_label: str = "Unidentified Bat"
    remarks_boilerplate: Tuple[str, ...] = ("Metadata", "BCT", "CVI")
    species_info_base_url: str = "https://www.gbif.org/species/"
    remarks_top_n: int = 20


@dataclass(frozen=True)
class RunParams:
    """All parameter groups for one pipeline run."""
    metrics: MetricsParams = field(default_factory=MetricsParams)
    spatial: SpatialParams = field(default_factory=SpatialParams)
    export: ExportParams = field(default_factory=ExportParams)
    input: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict form, used for logging and config digests."""
        return asdict(self)


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(section).__name__}")
    return section


def _build(cls, section: Dict[str, Any], name: str):
    known = set(cls.__dataclass_fields__)
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {sorted(unknown)}")
    try:
        return cls(**section)
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section: {e}") from e


def params_from_dict(config: Dict[str, Any]) -> RunParams:
    """
    Build RunParams from a parsed params.yml mapping.
    
    Missing sections and keys fall back to the defaults above.
    
    Raises:
        ConfigError: On unknown keys or invalid values
    """
    export_section = dict(_section(config, "point_export"))
    if "remarks_boilerplate" in export_section:
        export_section["remarks_boilerplate"] = tuple(export_section["remarks_boilerplate"])
    
    return RunParams(
        metrics=_build(MetricsParams, _section(config, "metrics"), "metrics"),
        spatial=_build(SpatialParams, _section(config, "spatial_index"), "spatial_index"),
        export=_build(ExportParams, export_section, "point_export"),
        input=dict(_section(config, "input")),
    )


def load_params(path: Optional[Union[str, Path]] = None) -> RunParams:
    """
    Load run parameters from params.yml.
    
    Args:
        path: Path to a params file. Defaults to configs/params.yml.
    
    Returns:
        RunParams (defaults if the default file does not exist)
    """
    if path is None:
        from bat_atlas.paths import PARAMS_FILE
        
        if not PARAMS_FILE.exists():
            return RunParams()
        path = PARAMS_FILE
    
    return params_from_dict(read_yaml(path))
