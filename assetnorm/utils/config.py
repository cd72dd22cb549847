"""
Configuration management for asset conversion.

Provides the per-conversion configuration (LOD sources, global transform,
auto-centering, resampling and compression parameters) and JSON helpers.
"""

import json
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List
from pathlib import Path

import numpy as np

from ..core.constants import (
    DEFAULT_RESAMPLE_FPS,
    DEFAULT_COMPRESSION_TOLERANCE,
)
from ..core.errors import ConfigError


def _identity_rows() -> List[List[float]]:
    return np.eye(4).tolist()


@dataclass
class ConversionConfig:
    """
    Configuration for one asset conversion.

    Attributes:
        num_lods: Number of LOD tiers to load
        lod_sources: Source identifier per LOD tier; entry 0 may be None to
            mean "the input itself"
        transform: Global 4x4 transform (column-vector convention) as nested lists
        auto_center: Recenter the model on its aggregate LOD-0 bounding box
        resample_fps: Fixed frame rate animation channels are resampled to
        compression_tolerance: Residual tolerance of keyframe compression
        generate_normals: Compute smooth normals for meshes without them
        generate_tangents: Compute tangent frames for textured meshes without them
        verbose: Show progress bars
    """

    num_lods: int = 1
    lod_sources: List[Optional[str]] = field(default_factory=lambda: [None])
    transform: List[List[float]] = field(default_factory=_identity_rows)
    auto_center: bool = False

    resample_fps: int = DEFAULT_RESAMPLE_FPS
    compression_tolerance: float = DEFAULT_COMPRESSION_TOLERANCE

    generate_normals: bool = True
    generate_tangents: bool = False

    verbose: bool = False

    # Additional fields
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if required fields are missing or malformed."""
        if self.num_lods < 1:
            raise ConfigError(f"num_lods must be at least 1, got {self.num_lods}")
        if len(self.lod_sources) < self.num_lods:
            raise ConfigError(
                f"Expected {self.num_lods} LOD sources, got {len(self.lod_sources)}"
            )
        for lod in range(1, self.num_lods):
            if not self.lod_sources[lod]:
                raise ConfigError(f"Missing source identifier for LOD {lod}")
        if np.asarray(self.transform, dtype=np.float64).shape != (4, 4):
            raise ConfigError("transform must be a 4x4 matrix")
        if self.resample_fps <= 0:
            raise ConfigError(f"resample_fps must be positive, got {self.resample_fps}")

    @property
    def transform_matrix(self) -> np.ndarray:
        return np.asarray(self.transform, dtype=np.float64)

    def lod_source(self, lod: int, input_name: str) -> str:
        """Source identifier of an LOD tier; LOD 0 defaults to the input."""
        source = self.lod_sources[lod] if lod < len(self.lod_sources) else None
        if lod == 0 and not source:
            return input_name
        return source

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ConversionConfig':
        """
        Create config from dictionary.

        Unknown keys are kept in `extra`. When num_lods > 1 the
        lod_sources list is required.
        """
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        known_kwargs = {k: v for k, v in config_dict.items() if k in known_fields and k != 'extra'}
        extra_kwargs = {k: v for k, v in config_dict.items() if k not in known_fields}
        extra_kwargs.update(config_dict.get('extra', {}))

        if known_kwargs.get('num_lods', 1) > 1 and 'lod_sources' not in known_kwargs:
            raise ConfigError("lod_sources is required when num_lods > 1")
        if 'transform' in known_kwargs:
            known_kwargs['transform'] = np.asarray(known_kwargs['transform'], dtype=np.float64).tolist()

        try:
            config = cls(**known_kwargs)
        except TypeError as e:
            raise ConfigError(f"Malformed conversion config: {e}") from e
        config.extra = extra_kwargs
        return config

    def update(self, **kwargs) -> 'ConversionConfig':
        """Return a new config with updated values."""
        config_dict = self.to_dict()
        config_dict.update(kwargs)
        return ConversionConfig.from_dict(config_dict)


def load_config(filepath: str) -> ConversionConfig:
    """
    Load configuration from JSON file.

    Args:
        filepath: Path to JSON config file

    Returns:
        ConversionConfig object

    Raises:
        ConfigError: If the document is not valid JSON or misses required fields
    """
    filepath = Path(filepath)
    with open(filepath, 'r') as f:
        try:
            config_dict = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Cannot parse {filepath}: {e}") from e
    if not isinstance(config_dict, dict):
        raise ConfigError(f"{filepath} must contain a JSON object")
    return ConversionConfig.from_dict(config_dict)


def save_config(config: ConversionConfig, filepath: str) -> None:
    """
    Save configuration to JSON file.

    Args:
        config: Config object to save
        filepath: Output file path
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)
