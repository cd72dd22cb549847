"""
Centralized constants for assetnorm.

This module defines the default values and numeric limits shared by the
skeleton, animation and geometry stages. Using these constants keeps the
stages consistent with each other and makes it easy to adjust defaults
globally.

Usage:
    from assetnorm.core.constants import DEFAULT_RESAMPLE_FPS

    def resample(..., fps: int = DEFAULT_RESAMPLE_FPS):
        ...
"""

# =============================================================================
# Numeric Constants
# =============================================================================

# Epsilon for normalization operations
DEFAULT_EPS_NORM: float = 1e-12


# =============================================================================
# Animation Defaults
# =============================================================================

# Fixed frame rate every animation channel is resampled to
DEFAULT_RESAMPLE_FPS: int = 25

# Ticks per second assumed when the source animation does not declare one
DEFAULT_TICKS_PER_SECOND: float = 25.0

# Per-component residual below which a resampled keyframe is redundant
DEFAULT_COMPRESSION_TOLERANCE: float = 1e-3


# =============================================================================
# Skinning Defaults
# =============================================================================

# Bone weights below half of one 8-bit step are dropped at import
MIN_BINDING_WEIGHT: float = 0.5 / 255

# Number of (joint, weight) pairs packed per vertex
MAX_BINDINGS_PER_VERTEX: int = 4

# Joint indices are packed as unsigned bytes
MAX_PACKED_JOINTS: int = 256


# =============================================================================
# Geometry Defaults
# =============================================================================

# Number of texture coordinate channels carried through import
MAX_TEXCOORD_CHANNELS: int = 8

# Largest vertex index that still fits a 16-bit index buffer
MAX_INDEX_16_BIT: int = 0xFFFF

# Bits used when biasing the tangent-frame quaternion away from w == 0
TANGENT_QUAT_BITS: int = 8


# =============================================================================
# Packed Ranges
# =============================================================================

INT16_MIN: int = -32768
INT16_MAX: int = 32767
UINT16_RANGE: float = 65535.0
UINT8_RANGE: float = 255.0
