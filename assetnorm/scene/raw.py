"""
Raw scene structures consumed by the converter.

These mirror what a third-party interchange importer produces after
triangulation: a node tree with parent-relative transforms, meshes with
bones and per-vertex attribute arrays, animation channels with sparse
timestamped keys and a material table. Importers live outside this
package; they only need to fill these containers.

Quaternions are [w, x, y, z]; matrices are 4x4 column-vector transforms.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np


@dataclass
class RawNode:
    """Scene graph node."""
    name: str
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))    # parent-relative
    children: List['RawNode'] = field(default_factory=list)
    mesh_indices: List[int] = field(default_factory=list)

    def walk(self) -> Iterator[Tuple['RawNode', Optional['RawNode']]]:
        """Pre-order traversal yielding (node, parent)."""
        stack: List[Tuple[RawNode, Optional[RawNode]]] = [(self, None)]
        while stack:
            node, parent = stack.pop()
            yield node, parent
            for child in reversed(node.children):
                stack.append((child, node))


@dataclass
class RawBone:
    """
    Bone attached to a mesh.

    offset_matrix maps mesh-space vertices into the bone's local space at
    bind time. weights holds (vertex_id, weight) pairs.
    """
    name: str
    offset_matrix: np.ndarray = field(default_factory=lambda: np.eye(4))
    weights: List[Tuple[int, float]] = field(default_factory=list)


@dataclass
class RawMesh:
    """Triangulated mesh as delivered by an importer."""
    name: str
    material_index: int
    positions: np.ndarray                                   # (V, 3)
    faces: np.ndarray                                       # (F, 3)
    normals: Optional[np.ndarray] = None
    tangents: Optional[np.ndarray] = None
    binormals: Optional[np.ndarray] = None
    texcoords: List[Optional[np.ndarray]] = field(default_factory=list)   # up to 8 x (V, 2|3)
    colors: List[Optional[np.ndarray]] = field(default_factory=list)      # [diffuse, specular] (V, 4)
    bones: List[RawBone] = field(default_factory=list)


@dataclass
class RawChannel:
    """
    Animation channel of one node.

    Keys are (time_in_ticks, value); positions and scales are (3,)
    values, rotations (4,) [w, x, y, z].
    """
    node_name: str
    position_keys: List[Tuple[float, np.ndarray]] = field(default_factory=list)
    rotation_keys: List[Tuple[float, np.ndarray]] = field(default_factory=list)
    scaling_keys: List[Tuple[float, np.ndarray]] = field(default_factory=list)


@dataclass
class RawAnimation:
    """Animation clip with its native tick rate."""
    name: str
    duration: float                                         # in ticks
    ticks_per_second: float
    channels: List[RawChannel] = field(default_factory=list)


@dataclass
class RawMaterial:
    """Material entry: texture slot names and scalar parameters."""
    name: str
    textures: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RawScene:
    """Everything an importer returns for one source file."""
    root: RawNode
    meshes: List[RawMesh] = field(default_factory=list)
    materials: List[RawMaterial] = field(default_factory=list)
    animations: List[RawAnimation] = field(default_factory=list)
