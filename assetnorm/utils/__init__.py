"""
Utility functions for assetnorm.

Includes quaternion and dual quaternion operations, bounding boxes, and
configuration management.
"""

from .quaternion import (
    quaternion_multiply,
    quaternion_conjugate,
    quaternion_to_matrix,
    matrix_to_quaternion,
    quaternion_from_axis_angle,
    quaternion_slerp,
    normalize_quaternion,
)
from .dual_quaternion import (
    dq_from_rotation_translation,
    dq_translation,
    dq_multiply,
    dq_inverse,
    dq_sclerp,
    matrix_to_dq,
    dq_to_matrix,
)
from .bounds import AABB, union_all
from .config import ConversionConfig, load_config, save_config

__all__ = [
    # Quaternion operations
    "quaternion_multiply",
    "quaternion_conjugate",
    "quaternion_to_matrix",
    "matrix_to_quaternion",
    "quaternion_from_axis_angle",
    "quaternion_slerp",
    "normalize_quaternion",
    # Dual quaternion operations
    "dq_from_rotation_translation",
    "dq_translation",
    "dq_multiply",
    "dq_inverse",
    "dq_sclerp",
    "matrix_to_dq",
    "dq_to_matrix",
    # Bounds
    "AABB",
    "union_all",
    # Config
    "ConversionConfig",
    "load_config",
    "save_config",
]
