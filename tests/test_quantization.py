"""
Tests for packed vertex attribute encoders and bounding boxes.
"""

import math

import numpy as np
import pytest
import torch

from assetnorm.core.errors import UnsupportedFormatError
from assetnorm.geometry.quantization import (
    VertexElement,
    VertexFormat,
    VertexUsage,
    dequantize_positions,
    dequantize_texcoords,
    index_format_for,
    pack_colors,
    pack_normals,
    pack_skin_bindings,
    pack_tangent_frames,
    quantize_positions,
    quantize_texcoords,
    tangent_frame_to_quaternion,
    unpack_normals,
)
from assetnorm.utils.bounds import AABB, union_all


def vectors(*rows):
    return torch.tensor(rows, dtype=torch.float64)


# =============================================================================
# Bounding Box Tests
# =============================================================================

class TestAABB:
    """Tests for bounding boxes."""

    def test_from_points(self):
        """Box spans the point extremes."""
        bb = AABB.from_points(np.array([[0.0, -1.0, 2.0], [3.0, 1.0, 2.0]]))
        assert np.allclose(bb.min, [0.0, -1.0, 2.0])
        assert np.allclose(bb.center, [1.5, 0.0, 2.0])
        assert np.allclose(bb.half_size, [1.5, 1.0, 0.0])

    def test_2d_points(self):
        """Texture coordinates get a zero z extent."""
        bb = AABB.from_points(np.array([[0.0, 0.0], [1.0, 2.0]]))
        assert np.allclose(bb.max, [1.0, 2.0, 0.0])

    def test_empty(self):
        """No points give a degenerate box at the origin."""
        bb = AABB.from_points(np.zeros((0, 3)))
        assert np.allclose(bb.size, 0.0)

    def test_transform(self):
        """A rotated box is re-bounded from its corners."""
        bb = AABB(np.array([0.0, 0.0, 0.0]), np.array([2.0, 1.0, 1.0]))
        rotate_z = np.array([
            [0.0, -1.0, 0.0, 0.0],
            [1.0, 0.0, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])
        out = bb.transform(rotate_z)
        assert np.allclose(out.min, [-1.0, 0.0, 0.0])
        assert np.allclose(out.max, [0.0, 2.0, 1.0])

    def test_union_all(self):
        """Union covers every box; no boxes give None."""
        a = AABB(np.zeros(3), np.ones(3))
        b = AABB(np.array([-1.0, 0.5, 0.0]), np.array([0.0, 3.0, 0.5]))
        out = union_all([a, b])
        assert np.allclose(out.min, [-1.0, 0.0, 0.0])
        assert np.allclose(out.max, [1.0, 3.0, 1.0])
        assert union_all([]) is None


# =============================================================================
# Vertex Element Tests
# =============================================================================

class TestVertexElement:
    """Tests for vertex element declarations."""

    def test_sizes(self):
        """Element sizes follow their storage format."""
        assert VertexElement(VertexUsage.POSITION, VertexFormat.SIGNED_ABGR16).size == 8
        assert VertexElement(VertexUsage.TEXCOORD, VertexFormat.SIGNED_GR16).size == 4
        assert VertexElement(VertexUsage.BLEND_INDEX, VertexFormat.ABGR8UI).size == 4

    def test_unsupported_combination(self):
        """Usage/format pairs without an encoder are rejected."""
        with pytest.raises(UnsupportedFormatError):
            VertexElement(VertexUsage.POSITION, VertexFormat.ABGR32F)

    def test_index_format(self):
        """16-bit indices are used while the max index fits."""
        assert index_format_for(0xFFFF) == np.dtype('<u2')
        assert index_format_for(0x10000) == np.dtype('<u4')


# =============================================================================
# Position and Texcoord Tests
# =============================================================================

class TestPositions:
    """Tests for 16-bit position quantization."""

    def test_box_corners(self):
        """Box minimum and maximum map to the int16 extremes."""
        bb = AABB(np.array([-1.0, 0.0, 2.0]), np.array([1.0, 4.0, 3.0]))
        packed = quantize_positions(np.stack([bb.min, bb.max]), bb)
        assert packed.dtype == np.dtype('<i2')
        assert packed[0].tolist() == [-32768, -32768, -32768, 32767]
        assert packed[1].tolist() == [32767, 32767, 32767, 32767]

    def test_round_trip_error(self):
        """Dequantized positions are within one step of the originals."""
        rng = np.random.default_rng(0)
        positions = rng.uniform(-5.0, 5.0, size=(200, 3))
        bb = AABB.from_points(positions)
        restored = dequantize_positions(quantize_positions(positions, bb), bb)
        step = bb.size / 65535.0
        assert np.all(np.abs(restored - positions) <= step + 1e-12)

    def test_zero_extent(self):
        """Flat axes quantize to the center without dividing by zero."""
        positions = np.array([[0.0, 1.0, 5.0], [2.0, 1.0, 5.0]])
        bb = AABB.from_points(positions)
        packed = quantize_positions(positions, bb)
        assert packed[:, 1].tolist() == [0, 0]
        assert np.allclose(dequantize_positions(packed, bb)[:, 1:], [[1.0, 5.0], [1.0, 5.0]])

    def test_texcoords(self):
        """Texture coordinates quantize against the texcoord box."""
        uv = np.array([[0.0, 0.0], [1.0, 0.5], [0.5, 1.0]])
        bb = AABB.from_points(uv)
        packed = quantize_texcoords(uv, bb)
        assert packed.shape == (3, 2)
        assert packed[0].tolist() == [-32768, -32768]
        assert np.allclose(dequantize_texcoords(packed, bb), uv, atol=1.0 / 65535)


# =============================================================================
# Direction and Tangent Frame Tests
# =============================================================================

class TestNormals:
    """Tests for 8-bit normal packing."""

    def test_up_normal(self):
        """+z packs to (128, 128, 255) with a zero 4th byte."""
        assert pack_normals(np.array([[0.0, 0.0, 1.0]]))[0].tolist() == [128, 128, 255, 0]

    def test_unnormalized_input(self):
        """Inputs are normalized before packing."""
        assert pack_normals(np.array([[0.0, 0.0, 4.0]]))[0].tolist() == [128, 128, 255, 0]

    def test_round_trip(self):
        """Unpacked normals are close to the originals."""
        normals = np.array([[1.0, 0.0, 0.0], [0.0, -1.0, 0.0], [0.6, 0.0, 0.8]])
        assert np.allclose(unpack_normals(pack_normals(normals)), normals, atol=1.0 / 127)


class TestTangentFrames:
    """Tests for tangent frame quaternion encoding."""

    def test_identity_frame(self):
        """The canonical frame packs to (128, 128, 128, 255)."""
        packed = pack_tangent_frames([[1.0, 0.0, 0.0]], [[0.0, 1.0, 0.0]], [[0.0, 0.0, 1.0]])
        assert packed[0].tolist() == [128, 128, 128, 255]

    def test_mirrored_frame(self):
        """A flipped binormal negates the quaternion."""
        q = tangent_frame_to_quaternion(vectors([1.0, 0.0, 0.0]), vectors([0.0, -1.0, 0.0]), vectors([0.0, 0.0, 1.0]))
        assert q[0, 0] < 0
        packed = pack_tangent_frames([[1.0, 0.0, 0.0]], [[0.0, -1.0, 0.0]], [[0.0, 0.0, 1.0]])
        assert packed[0].tolist() == [128, 128, 128, 0]

    def test_half_turn_is_biased(self):
        """A quaternion with w = 0 keeps a small positive w."""
        q = tangent_frame_to_quaternion(vectors([-1.0, 0.0, 0.0]), vectors([0.0, -1.0, 0.0]), vectors([0.0, 0.0, 1.0]))
        assert q[0, 0].item() == pytest.approx(1.0 / 127)
        assert q[0].norm().item() == pytest.approx(1.0)

    def test_handedness_from_sign(self):
        """Sign of w gives the handedness of a rotated frame."""
        angle = 0.7
        t = vectors([math.cos(angle), math.sin(angle), 0.0])
        b = vectors([-math.sin(angle), math.cos(angle), 0.0])
        n = vectors([0.0, 0.0, 1.0])
        assert tangent_frame_to_quaternion(t, b, n)[0, 0] > 0
        assert tangent_frame_to_quaternion(t, -b, n)[0, 0] < 0


# =============================================================================
# Color and Skin Tests
# =============================================================================

class TestColors:
    """Tests for 8-bit color packing."""

    def test_pack(self):
        """Channels round to nearest."""
        assert pack_colors(np.array([[1.0, 0.0, 0.5, 1.0]]))[0].tolist() == [255, 0, 128, 255]

    def test_clamped(self):
        """Out-of-range values are clamped."""
        assert pack_colors(np.array([[2.0, -1.0, 0.0, 0.0]]))[0].tolist() == [255, 0, 0, 0]


class TestSkinBindings:
    """Tests for blend weight and index packing."""

    def test_keeps_four_and_renormalizes(self):
        """Only the four strongest bindings survive, renormalized."""
        weights, joints = pack_skin_bindings([[(5, 0.4), (2, 0.3), (7, 0.1), (1, 0.1), (3, 0.1)]])
        assert weights[0].tolist() == [113, 85, 28, 28]
        assert joints[0].tolist() == [5, 2, 7, 1]

    def test_unused_slots_zero(self):
        """Vertices with fewer bindings pad with zero."""
        weights, joints = pack_skin_bindings([[(3, 1.0)], []])
        assert weights.tolist() == [[255, 0, 0, 0], [0, 0, 0, 0]]
        assert joints.tolist() == [[3, 0, 0, 0], [0, 0, 0, 0]]

    def test_joint_index_overflow(self):
        """Joint indices must fit a byte."""
        with pytest.raises(UnsupportedFormatError):
            pack_skin_bindings([[(256, 1.0)]])
