"""
Raw scene containers filled by interchange-format importers.
"""

from .raw import (
    RawNode,
    RawBone,
    RawMesh,
    RawChannel,
    RawAnimation,
    RawMaterial,
    RawScene,
)

__all__ = [
    "RawNode",
    "RawBone",
    "RawMesh",
    "RawChannel",
    "RawAnimation",
    "RawMaterial",
    "RawScene",
]
