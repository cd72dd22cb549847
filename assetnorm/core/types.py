"""
Data model for the normalization pipeline.

Skeleton and animation records hold torch tensors in [w, x, y, z] quaternion
convention; mesh attribute streams hold numpy arrays. Collections correlated
by index (joints and their keyframe sets, vertex bindings and joints, meshes
and materials) are always replaced wholesale, never partially, so that the
parallel arrays stay consistent.

Conventions:
    - 4x4 matrices act on column vectors, translation in m[:3, 3]
    - "apply A then B" is B @ A
    - Joint parent index -1 means no parent
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import torch

from .constants import MAX_TEXCOORD_CHANNELS
from ..utils.bounds import AABB

# Working precision for quaternion math
DEFAULT_DTYPE = torch.float64

# (joint index, weight)
JointBinding = Tuple[int, float]


def identity_real() -> torch.Tensor:
    return torch.tensor([1.0, 0.0, 0.0, 0.0], dtype=DEFAULT_DTYPE)


def zero_dual() -> torch.Tensor:
    return torch.zeros(4, dtype=DEFAULT_DTYPE)


# =============================================================================
# Skeleton
# =============================================================================

@dataclass
class Joint:
    """
    One joint of the skeleton.

    Attributes:
        name: Unique joint name
        parent: Parent joint index, -1 for the root
        bind_real, bind_dual: Unit dual quaternion of the model-space bind pose
        bind_scale: Uniform bind scale
        local_real, local_dual, local_scale: Bind transform relative to the parent
        inverse_origin_real, inverse_origin_dual, inverse_origin_scale:
            Inverse of the model-space bind pose, filled when joints are finalized
    """
    name: str
    parent: int = -1
    bind_real: torch.Tensor = field(default_factory=identity_real)
    bind_dual: torch.Tensor = field(default_factory=zero_dual)
    bind_scale: float = 1.0
    local_real: torch.Tensor = field(default_factory=identity_real)
    local_dual: torch.Tensor = field(default_factory=zero_dual)
    local_scale: float = 1.0
    inverse_origin_real: torch.Tensor = field(default_factory=identity_real)
    inverse_origin_dual: torch.Tensor = field(default_factory=zero_dual)
    inverse_origin_scale: float = 1.0

    @property
    def is_root(self) -> bool:
        return self.parent < 0


@dataclass
class KeyFrameSet:
    """
    Keyframes of one joint on the shared model timeline.

    frame_id is strictly increasing; bind_real / bind_dual are (K, 4) and
    bind_scale is (K,).
    """
    frame_id: List[int] = field(default_factory=list)
    bind_real: torch.Tensor = field(default_factory=lambda: torch.zeros(0, 4, dtype=DEFAULT_DTYPE))
    bind_dual: torch.Tensor = field(default_factory=lambda: torch.zeros(0, 4, dtype=DEFAULT_DTYPE))
    bind_scale: torch.Tensor = field(default_factory=lambda: torch.zeros(0, dtype=DEFAULT_DTYPE))

    def __len__(self) -> int:
        return len(self.frame_id)

    @classmethod
    def from_samples(
        cls,
        frame_ids: Sequence[int],
        reals: Sequence[torch.Tensor],
        duals: Sequence[torch.Tensor],
        scales: Sequence[float]
    ) -> 'KeyFrameSet':
        """Stack per-sample values into a keyframe set."""
        if len(frame_ids) == 0:
            return cls()
        return cls(
            frame_id=[int(f) for f in frame_ids],
            bind_real=torch.stack([r.to(DEFAULT_DTYPE) for r in reals]),
            bind_dual=torch.stack([d.to(DEFAULT_DTYPE) for d in duals]),
            bind_scale=torch.tensor([float(s) for s in scales], dtype=DEFAULT_DTYPE),
        )

    def extended(self, other: 'KeyFrameSet', frame_offset: int = 0) -> 'KeyFrameSet':
        """Return a new set with other's samples appended, shifted by frame_offset."""
        return KeyFrameSet(
            frame_id=self.frame_id + [f + frame_offset for f in other.frame_id],
            bind_real=torch.cat([self.bind_real, other.bind_real]),
            bind_dual=torch.cat([self.bind_dual, other.bind_dual]),
            bind_scale=torch.cat([self.bind_scale, other.bind_scale]),
        )

    def without(self, index: int) -> 'KeyFrameSet':
        """Return a new set with the sample at index removed."""
        keep = [i for i in range(len(self)) if i != index]
        return KeyFrameSet(
            frame_id=[self.frame_id[i] for i in keep],
            bind_real=self.bind_real[keep],
            bind_dual=self.bind_dual[keep],
            bind_scale=self.bind_scale[keep],
        )


@dataclass
class AnimationAction:
    """Named half-open frame range [start_frame, end_frame) on the shared timeline."""
    name: str
    start_frame: int
    end_frame: int

    @property
    def num_frames(self) -> int:
        return self.end_frame - self.start_frame


# =============================================================================
# Geometry
# =============================================================================

@dataclass
class MeshLod:
    """Floating-point geometry of one mesh at one LOD tier."""
    positions: np.ndarray                                   # (V, 3)
    indices: np.ndarray                                     # (I,) uint32
    normals: Optional[np.ndarray] = None                    # (V, 3)
    tangents: Optional[np.ndarray] = None                   # (V, 3)
    binormals: Optional[np.ndarray] = None                  # (V, 3)
    texcoords: List[Optional[np.ndarray]] = field(
        default_factory=lambda: [None] * MAX_TEXCOORD_CHANNELS)  # (V, 2) each
    diffuse: Optional[np.ndarray] = None                    # (V, 4) RGBA in [0, 1]
    specular: Optional[np.ndarray] = None                   # (V, 4) RGBA in [0, 1]
    joint_bindings: Optional[List[List[JointBinding]]] = None

    @property
    def num_vertices(self) -> int:
        return int(self.positions.shape[0])

    @property
    def num_indices(self) -> int:
        return int(self.indices.shape[0])

    @property
    def has_tangent_frame(self) -> bool:
        return self.tangents is not None or self.binormals is not None


@dataclass
class CanonicalMesh:
    """
    One mesh with all of its LOD tiers.

    pos_bb and tc_bb are computed from LOD 0 and reused as the quantization
    domain of every LOD.
    """
    name: str
    material_id: int
    lods: List[MeshLod]
    pos_bb: Optional[AABB] = None
    tc_bb: Optional[AABB] = None

    @property
    def has_normal(self) -> bool:
        return any(lod.normals is not None for lod in self.lods)

    @property
    def has_tangent_frame(self) -> bool:
        return any(lod.has_tangent_frame for lod in self.lods)

    @property
    def has_texcoord(self) -> bool:
        return any(lod.texcoords[0] is not None for lod in self.lods)

    @property
    def has_diffuse(self) -> bool:
        return any(lod.diffuse is not None for lod in self.lods)

    @property
    def has_specular(self) -> bool:
        return any(lod.specular is not None for lod in self.lods)

    @property
    def has_bindings(self) -> bool:
        return any(lod.joint_bindings is not None for lod in self.lods)

    def with_material(self, material_id: int) -> 'CanonicalMesh':
        return replace(self, material_id=material_id)


@dataclass
class NodeTransform:
    """Static placement of a mesh-bearing node at every LOD."""
    name: str
    mesh_indices: List[int]
    lod_transforms: List[Optional[np.ndarray]]              # (4, 4) each


@dataclass
class Material:
    """Material table entry."""
    name: str
    texture_slots: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
