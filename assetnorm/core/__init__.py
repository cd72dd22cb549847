"""
Core module for assetnorm.

Contains:
- Constants: Centralized default values and numeric limits
- Errors: Exception hierarchy of the conversion pipeline
- Types: Data model shared by every stage
"""

from .constants import (
    # Numeric constants
    DEFAULT_EPS_NORM,
    # Animation defaults
    DEFAULT_RESAMPLE_FPS,
    DEFAULT_TICKS_PER_SECOND,
    DEFAULT_COMPRESSION_TOLERANCE,
    # Skinning defaults
    MIN_BINDING_WEIGHT,
    MAX_BINDINGS_PER_VERTEX,
    MAX_PACKED_JOINTS,
    # Geometry defaults
    MAX_TEXCOORD_CHANNELS,
    MAX_INDEX_16_BIT,
    TANGENT_QUAT_BITS,
)

from .errors import (
    AssetConversionError,
    SourceNotFoundError,
    SkeletonError,
    UnsupportedFormatError,
    ConfigError,
    ConversionError,
)

from .types import (
    DEFAULT_DTYPE,
    JointBinding,
    Joint,
    KeyFrameSet,
    AnimationAction,
    MeshLod,
    CanonicalMesh,
    NodeTransform,
    Material,
    AABB,
)

__all__ = [
    # Constants
    "DEFAULT_EPS_NORM",
    "DEFAULT_RESAMPLE_FPS",
    "DEFAULT_TICKS_PER_SECOND",
    "DEFAULT_COMPRESSION_TOLERANCE",
    "MIN_BINDING_WEIGHT",
    "MAX_BINDINGS_PER_VERTEX",
    "MAX_PACKED_JOINTS",
    "MAX_TEXCOORD_CHANNELS",
    "MAX_INDEX_16_BIT",
    "TANGENT_QUAT_BITS",
    # Errors
    "AssetConversionError",
    "SourceNotFoundError",
    "SkeletonError",
    "UnsupportedFormatError",
    "ConfigError",
    "ConversionError",
    # Types
    "DEFAULT_DTYPE",
    "JointBinding",
    "Joint",
    "KeyFrameSet",
    "AnimationAction",
    "MeshLod",
    "CanonicalMesh",
    "NodeTransform",
    "Material",
    "AABB",
]
