"""
Tests for quaternion operations.

Quaternions are (w, x, y, z) = w + xi + yj + zk, batched over leading
dimensions.
"""

import math

import pytest
import torch

from assetnorm.utils.quaternion import (
    identity_quaternion,
    matrix_to_quaternion,
    normalize_quaternion,
    quaternion_conjugate,
    quaternion_dot,
    quaternion_from_axis_angle,
    quaternion_multiply,
    quaternion_slerp,
    quaternion_to_matrix,
    rotate_vector,
)


def z_rotation(angle):
    return quaternion_from_axis_angle(torch.tensor([0.0, 0.0, 1.0], dtype=torch.float64), angle)


# =============================================================================
# Normalization and Conjugate Tests
# =============================================================================

class TestNormalizeQuaternion:
    """Tests for quaternion normalization."""

    def test_unit_quaternion_unchanged(self, identity_quaternion):
        """Unit quaternion is unchanged by normalization."""
        assert torch.allclose(normalize_quaternion(identity_quaternion), identity_quaternion)

    def test_batched_normalization(self):
        """Batched normalization produces unit norms."""
        q = torch.randn(10, 4, dtype=torch.float64)
        norms = torch.norm(normalize_quaternion(q), dim=-1)
        assert torch.allclose(norms, torch.ones(10, dtype=torch.float64))

    def test_numerical_stability_small(self):
        """Handles tiny quaternions without NaN."""
        q = torch.tensor([1e-20, 0.0, 0.0, 0.0])
        assert not torch.isnan(normalize_quaternion(q)).any()


class TestConjugate:
    """Tests for quaternion conjugate."""

    def test_negates_vector_part(self):
        """Conjugate negates x, y, z and keeps w."""
        q = torch.tensor([1.0, 2.0, 3.0, 4.0])
        assert torch.equal(quaternion_conjugate(q), torch.tensor([1.0, -2.0, -3.0, -4.0]))

    def test_does_not_modify_input(self):
        """Input tensor is left untouched."""
        q = torch.tensor([1.0, 2.0, 3.0, 4.0])
        quaternion_conjugate(q)
        assert torch.equal(q, torch.tensor([1.0, 2.0, 3.0, 4.0]))

    def test_unit_product_is_identity(self, identity_quaternion):
        """q * conj(q) = identity for unit q."""
        q = normalize_quaternion(torch.tensor([0.3, -0.2, 0.8, 0.4], dtype=torch.float64))
        assert torch.allclose(quaternion_multiply(q, quaternion_conjugate(q)), identity_quaternion)


# =============================================================================
# Multiplication Tests
# =============================================================================

class TestMultiply:
    """Tests for the Hamilton product."""

    def test_identity_is_neutral(self, identity_quaternion):
        """Multiplying by identity leaves q unchanged."""
        q = normalize_quaternion(torch.tensor([0.5, 0.1, -0.4, 0.2], dtype=torch.float64))
        assert torch.allclose(quaternion_multiply(identity_quaternion, q), q)
        assert torch.allclose(quaternion_multiply(q, identity_quaternion), q)

    def test_basis_products(self):
        """i * j = k."""
        i = torch.tensor([0.0, 1.0, 0.0, 0.0])
        j = torch.tensor([0.0, 0.0, 1.0, 0.0])
        k = torch.tensor([0.0, 0.0, 0.0, 1.0])
        assert torch.allclose(quaternion_multiply(i, j), k)

    def test_composition_matches_matrices(self):
        """R(q1 * q2) = R(q1) @ R(q2)."""
        q1 = normalize_quaternion(torch.tensor([0.9, 0.1, 0.3, -0.2], dtype=torch.float64))
        q2 = normalize_quaternion(torch.tensor([0.4, -0.6, 0.2, 0.5], dtype=torch.float64))
        lhs = quaternion_to_matrix(quaternion_multiply(q1, q2))
        rhs = quaternion_to_matrix(q1) @ quaternion_to_matrix(q2)
        assert torch.allclose(lhs, rhs)

    def test_dot(self, identity_quaternion):
        """Dot of a unit quaternion with itself is one."""
        assert torch.isclose(quaternion_dot(identity_quaternion, identity_quaternion), torch.tensor(1.0, dtype=torch.float64))


# =============================================================================
# Conversion Tests
# =============================================================================

class TestMatrixConversion:
    """Tests for quaternion <-> rotation matrix conversion."""

    def test_identity_matrix(self, identity_quaternion):
        """Identity quaternion gives the identity matrix."""
        assert torch.allclose(quaternion_to_matrix(identity_quaternion), torch.eye(3, dtype=torch.float64))

    def test_z_rotation_matrix(self):
        """90 degrees about z maps x to y."""
        R = quaternion_to_matrix(z_rotation(math.pi / 2))
        x = torch.tensor([1.0, 0.0, 0.0], dtype=torch.float64)
        assert torch.allclose(R @ x, torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64), atol=1e-12)

    @pytest.mark.parametrize("angle", [0.1, 1.0, math.pi / 2, 3.0])
    def test_round_trip(self, angle):
        """matrix_to_quaternion inverts quaternion_to_matrix up to sign."""
        axis = torch.tensor([1.0, -2.0, 0.5], dtype=torch.float64)
        q = quaternion_from_axis_angle(axis, angle)
        q2 = matrix_to_quaternion(quaternion_to_matrix(q))
        assert torch.allclose(q2, q, atol=1e-10) or torch.allclose(q2, -q, atol=1e-10)

    def test_batched_round_trip(self):
        """Batched matrices convert independently."""
        q = normalize_quaternion(torch.randn(16, 4, dtype=torch.float64))
        R = quaternion_to_matrix(q)
        assert torch.allclose(quaternion_to_matrix(matrix_to_quaternion(R)), R, atol=1e-10)


# =============================================================================
# Interpolation Tests
# =============================================================================

class TestSlerp:
    """Tests for spherical linear interpolation."""

    def test_endpoints(self):
        """t = 0 and t = 1 reproduce the endpoints."""
        q0, q1 = z_rotation(0.0), z_rotation(1.0)
        assert torch.allclose(quaternion_slerp(q0, q1, 0.0), q0)
        assert torch.allclose(quaternion_slerp(q0, q1, 1.0), q1)

    def test_midpoint_halves_angle(self):
        """Midpoint of 0 and 90 degrees is 45 degrees."""
        mid = quaternion_slerp(z_rotation(0.0), z_rotation(math.pi / 2), 0.5)
        assert torch.allclose(mid, z_rotation(math.pi / 4))

    def test_shortest_path(self):
        """Negated end quaternion gives the same interpolation."""
        q0, q1 = z_rotation(0.0), z_rotation(math.pi / 2)
        assert torch.allclose(quaternion_slerp(q0, q1, 0.3), quaternion_slerp(q0, -q1, 0.3))

    def test_batched_parameter(self):
        """Per-sample interpolation parameters of shape (N, 1)."""
        q0 = z_rotation(0.0).expand(3, 4)
        q1 = z_rotation(math.pi / 2).expand(3, 4)
        t = torch.tensor([[0.0], [0.5], [1.0]], dtype=torch.float64)
        out = quaternion_slerp(q0, q1, t)
        assert torch.allclose(out[1], z_rotation(math.pi / 4))
        assert torch.allclose(out[2], z_rotation(math.pi / 2))


class TestUtilities:
    """Tests for identity and vector rotation."""

    def test_identity_batch(self):
        """identity_quaternion returns (B, 4) identities."""
        q = identity_quaternion(3, dtype=torch.float64)
        assert q.shape == (3, 4)
        assert torch.all(q[:, 0] == 1.0)

    def test_rotate_vector(self):
        """Rotating x by 90 degrees about z gives y."""
        v = torch.tensor([1.0, 0.0, 0.0], dtype=torch.float64)
        out = rotate_vector(v, z_rotation(math.pi / 2))
        assert torch.allclose(out, torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64), atol=1e-12)
