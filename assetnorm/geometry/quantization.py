"""
Packed vertex attribute encoders.

Every encoder maps float attribute arrays to the compact little-endian
per-vertex layout of one vertex element:

- position:       4 x int16, normalized to the submesh bounding box, w = 32767
- normal:         4 x uint8, xyz remapped from [-1, 1], 4th byte 0
- tangent frame:  4 x uint8 quaternion (x, y, z, w), handedness in its sign
- texcoord:       2 x int16, normalized to the mesh texcoord box
- color:          4 x uint8 R, G, B, A (an ABGR dword)
- blend weights:  4 x uint8 weights renormalized over the kept bindings
- blend indices:  4 x uint8 joint ids

Encoders truncate toward zero like an integer cast, so `x * 255 + 0.5`
rounds to nearest for non-negative inputs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple
import logging

import numpy as np
import torch

from ..core.constants import (
    DEFAULT_EPS_NORM,
    INT16_MAX,
    INT16_MIN,
    MAX_INDEX_16_BIT,
    MAX_BINDINGS_PER_VERTEX,
    MAX_PACKED_JOINTS,
    TANGENT_QUAT_BITS,
    UINT16_RANGE,
    UINT8_RANGE,
)
from ..core.errors import UnsupportedFormatError
from ..core.types import JointBinding, DEFAULT_DTYPE
from ..utils.bounds import AABB
from ..utils.quaternion import matrix_to_quaternion

logger = logging.getLogger(__name__)


# =============================================================================
# Vertex Elements
# =============================================================================

class VertexUsage(Enum):
    POSITION = 'position'
    NORMAL = 'normal'
    TANGENT = 'tangent'
    DIFFUSE = 'diffuse'
    SPECULAR = 'specular'
    TEXCOORD = 'texcoord'
    BLEND_WEIGHT = 'blend_weight'
    BLEND_INDEX = 'blend_index'


class VertexFormat(Enum):
    """Per-vertex storage format: (numpy dtype, component count)."""
    SIGNED_ABGR16 = ('<i2', 4)
    SIGNED_GR16 = ('<i2', 2)
    ABGR8 = ('u1', 4)
    ABGR8UI = ('u1', 4)
    ABGR32F = ('<f4', 4)
    GR32F = ('<f4', 2)

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value[0])

    @property
    def components(self) -> int:
        return self.value[1]

    @property
    def size(self) -> int:
        """Bytes per vertex."""
        return self.dtype.itemsize * self.components


# Formats the merger can encode for each usage
SUPPORTED_FORMATS = {
    VertexUsage.POSITION: VertexFormat.SIGNED_ABGR16,
    VertexUsage.NORMAL: VertexFormat.ABGR8,
    VertexUsage.TANGENT: VertexFormat.ABGR8,
    VertexUsage.DIFFUSE: VertexFormat.ABGR8,
    VertexUsage.SPECULAR: VertexFormat.ABGR8,
    VertexUsage.TEXCOORD: VertexFormat.SIGNED_GR16,
    VertexUsage.BLEND_WEIGHT: VertexFormat.ABGR8,
    VertexUsage.BLEND_INDEX: VertexFormat.ABGR8UI,
}


@dataclass(frozen=True)
class VertexElement:
    """One vertex stream: what it holds and how it is stored."""
    usage: VertexUsage
    format: VertexFormat

    def __post_init__(self):
        if SUPPORTED_FORMATS.get(self.usage) is not self.format:
            raise UnsupportedFormatError(
                f"No encoder for {self.usage.value} stored as {self.format.name}"
            )

    @property
    def size(self) -> int:
        return self.format.size


# =============================================================================
# Encoders
# =============================================================================

def _to_int16(normalized: np.ndarray) -> np.ndarray:
    """Map [0, 1] to int16 with truncation and clamping."""
    return np.clip(np.trunc(normalized * UINT16_RANGE + INT16_MIN), INT16_MIN, INT16_MAX).astype('<i2')


def _to_uint8(normalized: np.ndarray) -> np.ndarray:
    """Map [0, 1] to uint8 rounding to nearest."""
    return np.clip(np.trunc(normalized * UINT8_RANGE + 0.5), 0, 255).astype(np.uint8)


def _safe_extent(extent: np.ndarray) -> np.ndarray:
    return np.where(extent > 0, extent, 1.0)


def quantize_positions(positions: np.ndarray, bb: AABB) -> np.ndarray:
    """
    Quantize positions to signed 16-bit relative to a bounding box.

    Axes where the box has no extent quantize to the box center.

    Args:
        positions: (V, 3) positions inside bb
        bb: Quantization domain

    Returns:
        (V, 4) int16 with w = 32767
    """
    positions = np.asarray(positions, dtype=np.float64)
    normalized = (positions - bb.center) / _safe_extent(bb.half_size) * 0.5 + 0.5
    packed = np.empty((positions.shape[0], 4), dtype='<i2')
    packed[:, :3] = _to_int16(normalized)
    packed[:, 3] = INT16_MAX
    return packed


def dequantize_positions(packed: np.ndarray, bb: AABB) -> np.ndarray:
    """Inverse of quantize_positions, (V, 3) float64."""
    xyz = np.asarray(packed, dtype=np.float64)[:, :3]
    return ((xyz - INT16_MIN) / UINT16_RANGE * 2 - 1) * bb.half_size + bb.center


def quantize_texcoords(texcoords: np.ndarray, bb: AABB) -> np.ndarray:
    """
    Quantize texture coordinates to signed 16-bit relative to a box.

    Returns:
        (V, 2) int16
    """
    uv = np.asarray(texcoords, dtype=np.float64)[:, :2]
    normalized = (uv - bb.center[:2]) / _safe_extent(bb.half_size[:2]) * 0.5 + 0.5
    return _to_int16(normalized)


def dequantize_texcoords(packed: np.ndarray, bb: AABB) -> np.ndarray:
    """Inverse of quantize_texcoords, (V, 2) float64."""
    uv = np.asarray(packed, dtype=np.float64)
    return ((uv - INT16_MIN) / UINT16_RANGE * 2 - 1) * bb.half_size[:2] + bb.center[:2]


def pack_normals(normals: np.ndarray) -> np.ndarray:
    """
    Pack normals as x | y << 8 | z << 16.

    Returns:
        (V, 4) uint8 with the 4th byte 0
    """
    normals = np.asarray(normals, dtype=np.float64)
    unit = normals / np.maximum(np.linalg.norm(normals, axis=-1, keepdims=True), DEFAULT_EPS_NORM)
    packed = np.zeros((normals.shape[0], 4), dtype=np.uint8)
    packed[:, :3] = _to_uint8(unit * 0.5 + 0.5)
    return packed


def unpack_normals(packed: np.ndarray) -> np.ndarray:
    """Inverse of pack_normals, (V, 3) float64 (not renormalized)."""
    return np.asarray(packed, dtype=np.float64)[:, :3] / UINT8_RANGE * 2 - 1


def tangent_frame_to_quaternion(
    tangents: torch.Tensor,
    binormals: torch.Tensor,
    normals: torch.Tensor,
    bits: int = TANGENT_QUAT_BITS
) -> torch.Tensor:
    """
    Encode tangent frames as quaternions.

    The frame (t, k * b, n) with k = sign(dot(b, cross(n, t))) is a proper
    rotation; its quaternion is taken with w >= 0 and w is pushed to at least
    1 / (2^(bits-1) - 1) so that its sign survives quantization. The whole
    quaternion is negated for left-handed frames (k = -1).

    Args:
        tangents, binormals, normals: Unit vectors (V, 3)
        bits: Bits per component of the packed encoding

    Returns:
        (V, 4) quaternions [w, x, y, z]; w < 0 marks a mirrored frame
    """
    k = torch.where(
        (binormals * torch.linalg.cross(normals, tangents)).sum(dim=-1, keepdim=True) < 0,
        -torch.ones_like(tangents[..., :1]),
        torch.ones_like(tangents[..., :1]),
    )
    frame = torch.stack([tangents, k * binormals, normals], dim=-1)
    q = matrix_to_quaternion(frame)
    q = torch.where(q[..., :1] < 0, -q, q)

    if bits > 0:
        bias = 1.0 / ((1 << (bits - 1)) - 1)
        factor = (1.0 - bias * bias) ** 0.5
        biased = torch.cat([torch.full_like(q[..., :1], bias), q[..., 1:] * factor], dim=-1)
        q = torch.where(q[..., :1] < bias, biased, q)

    return q * k


def pack_tangent_quaternions(quaternions: torch.Tensor) -> np.ndarray:
    """
    Pack [w, x, y, z] quaternions as bytes x, y, z, w.

    Returns:
        (V, 4) uint8
    """
    q = quaternions.detach().cpu().numpy().astype(np.float64)
    xyzw = np.concatenate([q[:, 1:], q[:, :1]], axis=1)
    return _to_uint8(xyzw * 0.5 + 0.5)


def pack_tangent_frames(tangents: np.ndarray, binormals: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Encode and pack tangent frames given as numpy arrays."""
    t, b, n = (torch.as_tensor(np.asarray(a, dtype=np.float64), dtype=DEFAULT_DTYPE)
               for a in (tangents, binormals, normals))
    quats = tangent_frame_to_quaternion(t, b, n)
    return pack_tangent_quaternions(quats)


def pack_colors(colors: np.ndarray) -> np.ndarray:
    """
    Pack RGBA colors in [0, 1] as bytes R, G, B, A.

    Returns:
        (V, 4) uint8
    """
    rgba = np.clip(np.asarray(colors, dtype=np.float64)[:, :4], 0.0, 1.0)
    return _to_uint8(rgba)


def pack_skin_bindings(
    bindings: Sequence[Sequence[JointBinding]],
    max_bindings: int = MAX_BINDINGS_PER_VERTEX
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pack per-vertex joint bindings.

    The first max_bindings entries of each (descending-sorted) list are kept
    and their weights renormalized to sum to one. Unused slots are zero.

    Args:
        bindings: Per-vertex lists of (joint index, weight)
        max_bindings: Slots per vertex

    Returns:
        weights: (V, max_bindings) uint8
        joints: (V, max_bindings) uint8

    Raises:
        UnsupportedFormatError: If a joint index does not fit a byte
    """
    num_vertices = len(bindings)
    joints = np.zeros((num_vertices, max_bindings), dtype=np.int64)
    weights = np.zeros((num_vertices, max_bindings), dtype=np.float64)
    for vi, vertex in enumerate(bindings):
        kept = list(vertex)[:max_bindings]
        for slot, (joint_id, weight) in enumerate(kept):
            joints[vi, slot] = joint_id
            weights[vi, slot] = weight

    if num_vertices and joints.max() >= MAX_PACKED_JOINTS:
        raise UnsupportedFormatError(
            f"Joint index {int(joints.max())} does not fit an 8-bit blend index"
        )

    total = weights.sum(axis=1, keepdims=True)
    normalized = weights / np.where(total > 0, total, 1.0)
    return _to_uint8(normalized), joints.astype(np.uint8)


def index_format_for(max_index: int) -> np.dtype:
    """Narrowest index dtype able to address max_index."""
    return np.dtype('<u2') if max_index <= MAX_INDEX_16_BIT else np.dtype('<u4')
