"""
Skeleton construction and pruning.

Contains:
- Builder: joint hierarchy with dual-quaternion bind poses
- Pruning: removal of unreferenced joints and materials
"""

from .builder import (
    build_skeleton,
    flatten_hierarchy,
    finalize_joints,
    joint_index_by_name,
    validate_hierarchy,
)
from .pruning import (
    build_remap,
    remove_unused_joints,
    remove_unused_materials,
)

__all__ = [
    # Builder
    "build_skeleton",
    "flatten_hierarchy",
    "finalize_joints",
    "joint_index_by_name",
    "validate_hierarchy",
    # Pruning
    "build_remap",
    "remove_unused_joints",
    "remove_unused_materials",
]
