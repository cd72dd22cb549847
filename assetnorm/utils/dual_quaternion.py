"""
Dual quaternion operations for rigid bind poses and keyframes.

A unit dual quaternion is a pair (real, dual) of quaternions with

    real = rotation
    dual = 0.5 * t * real

where t = (0, tx, ty, tz) is the translation as a pure quaternion. The
product of dual quaternions composes rigid motions in the same order as
the Hamilton product of their real parts.

Mirrored (negative determinant) bases cannot be represented by a rotation;
matrix_to_dq negates the third basis axis and records the mirror in the
sign of real.w (negative means mirrored). dq_to_matrix undoes it.

All operations accept (..., 4) tensors for both parts.
"""

from typing import Tuple, Union
import numpy as np
import torch

from .quaternion import (
    identity_quaternion,
    normalize_quaternion,
    quaternion_conjugate,
    quaternion_dot,
    quaternion_multiply,
    quaternion_to_matrix,
    matrix_to_quaternion,
    rotate_vector,
)

DualQuaternion = Tuple[torch.Tensor, torch.Tensor]


def dq_from_rotation_translation(
    real: torch.Tensor,
    translation: torch.Tensor
) -> torch.Tensor:
    """
    Build the dual part of a unit dual quaternion.

    Args:
        real: Rotation quaternion (..., 4) as [w, x, y, z]
        translation: Translation (..., 3)

    Returns:
        Dual part (..., 4) = 0.5 * (0, t) * real
    """
    t_quat = torch.cat([torch.zeros_like(translation[..., :1]), translation], dim=-1)
    return 0.5 * quaternion_multiply(t_quat, real)


def dq_translation(real: torch.Tensor, dual: torch.Tensor) -> torch.Tensor:
    """
    Extract the translation (..., 3) from a unit dual quaternion.
    """
    return 2.0 * quaternion_multiply(dual, quaternion_conjugate(real))[..., 1:]


def dq_multiply(
    real1: torch.Tensor, dual1: torch.Tensor,
    real2: torch.Tensor, dual2: torch.Tensor
) -> DualQuaternion:
    """
    Multiply two dual quaternions: (r1 + e d1)(r2 + e d2).

    The result applies the second motion first, then the first.
    """
    real = quaternion_multiply(real1, real2)
    dual = quaternion_multiply(real1, dual2) + quaternion_multiply(dual1, real2)
    return real, dual


def dq_inverse(real: torch.Tensor, dual: torch.Tensor) -> DualQuaternion:
    """
    Inverse of a unit dual quaternion: conjugate both parts.
    """
    return quaternion_conjugate(real), quaternion_conjugate(dual)


def dq_normalize(real: torch.Tensor, dual: torch.Tensor) -> DualQuaternion:
    """
    Project onto unit dual quaternions.

    The real part is normalized and the dual part is made orthogonal to it.
    """
    norm = real.norm(dim=-1, keepdim=True).clamp(min=1e-12)
    real = real / norm
    dual = dual / norm
    dual = dual - quaternion_dot(real, dual).unsqueeze(-1) * real
    return real, dual


def dq_transform_point(real: torch.Tensor, dual: torch.Tensor, points: torch.Tensor) -> torch.Tensor:
    """
    Apply the rigid motion to points (..., 3).
    """
    return rotate_vector(points, real) + dq_translation(real, dual)


def dq_power(real: torch.Tensor, dual: torch.Tensor, t: Union[float, torch.Tensor]) -> DualQuaternion:
    """
    Raise a unit dual quaternion to a real power through its screw parameters.

    Motions without rotation (|sin(θ/2)| ~ 0) scale the translation linearly.

    Args:
        real: Real part (..., 4), expected with w >= 0 for the shortest screw
        dual: Dual part (..., 4)
        t: Exponent

    Returns:
        (real, dual) of the motion scaled to fraction t of its screw
    """
    if not isinstance(t, torch.Tensor):
        t = torch.tensor(t, dtype=real.dtype, device=real.device)

    w = real[..., :1].clamp(-1.0, 1.0)
    vec = real[..., 1:]
    dual_w = dual[..., :1]
    dual_vec = dual[..., 1:]

    sin_half = vec.norm(dim=-1, keepdim=True)
    pure_translation = sin_half < 1e-6
    safe_sin = torch.where(pure_translation, torch.ones_like(sin_half), sin_half)

    # Screw parameters: angle, axis direction, pitch and moment
    half_angle = torch.atan2(sin_half, w)
    axis = vec / safe_sin
    pitch = -2.0 * dual_w / safe_sin
    moment = (dual_vec - axis * pitch * 0.5 * w) / safe_sin

    new_half = half_angle * t
    new_pitch = pitch * t
    sin_new = torch.sin(new_half)
    cos_new = torch.cos(new_half)

    screw_real = torch.cat([cos_new, axis * sin_new], dim=-1)
    screw_dual = torch.cat([
        -0.5 * new_pitch * sin_new,
        sin_new * moment + 0.5 * new_pitch * cos_new * axis,
    ], dim=-1)

    # Translation-only branch: identity rotation, scaled translation
    linear_real = identity_quaternion(device=real.device, dtype=real.dtype)[0].expand_as(real)
    linear_dual = torch.cat([torch.zeros_like(dual_w), dual_vec * t], dim=-1)

    out_real = torch.where(pure_translation, linear_real, screw_real)
    out_dual = torch.where(pure_translation, linear_dual, screw_dual)
    return out_real, out_dual


def dq_sclerp(
    real0: torch.Tensor, dual0: torch.Tensor,
    real1: torch.Tensor, dual1: torch.Tensor,
    t: Union[float, torch.Tensor]
) -> DualQuaternion:
    """
    Screw linear interpolation (ScLERP) of two unit dual quaternions.

    DQ(t) = DQ0 * (DQ0^-1 * DQ1)^t

    The end pose is negated when dot(real0, real1) < 0 so the shortest
    screw is taken.

    Args:
        real0, dual0: Start pose (..., 4)
        real1, dual1: End pose (..., 4)
        t: Interpolation parameter in [0, 1]

    Returns:
        Interpolated (real, dual)
    """
    dot = (real0 * real1).sum(dim=-1, keepdim=True)
    real1 = torch.where(dot < 0, -real1, real1)
    dual1 = torch.where(dot < 0, -dual1, dual1)

    inv_real, inv_dual = dq_inverse(real0, dual0)
    diff_real, diff_dual = dq_multiply(inv_real, inv_dual, real1, dual1)

    # Keep the relative real part unit length despite accumulated error
    norm = diff_real.norm(dim=-1, keepdim=True)
    diff_real = torch.where(norm > 1, diff_real / norm, diff_real)

    step_real, step_dual = dq_power(diff_real, diff_dual, t)
    return dq_multiply(real0, dual0, step_real, step_dual)


# =============================================================================
# Matrix Conversion
# =============================================================================

def _as_tensor(matrix: Union[np.ndarray, torch.Tensor], dtype: torch.dtype) -> torch.Tensor:
    if isinstance(matrix, torch.Tensor):
        return matrix.to(dtype)
    return torch.as_tensor(np.asarray(matrix), dtype=dtype)


def decompose_matrix(
    matrix: Union[np.ndarray, torch.Tensor],
    dtype: torch.dtype = torch.float64
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, bool]:
    """
    Decompose a 4x4 transform into scale, rotation and translation.

    A mirrored basis (negative triple product of the basis vectors) is made
    proper by negating its third axis before the rotation is extracted.

    Args:
        matrix: (4, 4) column-vector transformation matrix
        dtype: Working dtype

    Returns:
        scale: (3,) per-axis scale
        quaternion: (4,) rotation [w, x, y, z]
        translation: (3,)
        mirrored: True if the third axis was negated
    """
    m = _as_tensor(matrix, dtype)
    basis = m[:3, :3].clone()

    mirrored = bool(torch.dot(torch.linalg.cross(basis[:, 0], basis[:, 1]), basis[:, 2]) < 0)
    if mirrored:
        basis[:, 2] = -basis[:, 2]

    scale = basis.norm(dim=0)
    rotation = basis / scale.clamp(min=1e-12)
    quaternion = matrix_to_quaternion(rotation)
    translation = m[:3, 3].clone()

    return scale, quaternion, translation, mirrored


def matrix_to_dq(
    matrix: Union[np.ndarray, torch.Tensor],
    dtype: torch.dtype = torch.float64
) -> Tuple[torch.Tensor, torch.Tensor, float]:
    """
    Convert a 4x4 bind matrix to a dual quaternion plus uniform scale.

    The sign of the result is canonicalized so that real.w is non-negative
    for proper bases and negative for mirrored ones. Only the first scale
    component is kept; anisotropic scale is dropped.

    Args:
        matrix: (4, 4) column-vector transformation matrix
        dtype: Working dtype

    Returns:
        real: (4,) rotation part
        dual: (4,) translation part
        scale: Uniform scale
    """
    scale, real, translation, mirrored = decompose_matrix(matrix, dtype)
    dual = dq_from_rotation_translation(real, translation)

    flip = -1.0 if mirrored else 1.0
    w_sign = -1.0 if bool(torch.signbit(real[0])) else 1.0
    if flip * w_sign < 0:
        real = -real
        dual = -dual

    return real, dual, float(scale[0])


def dq_to_matrix(
    real: torch.Tensor,
    dual: torch.Tensor,
    scale: float = 1.0
) -> torch.Tensor:
    """
    Rebuild the 4x4 matrix of a dual quaternion produced by matrix_to_dq.

    A negative real.w restores the mirrored third axis.

    Args:
        real: (4,) rotation part
        dual: (4,) translation part
        scale: Uniform scale

    Returns:
        (4, 4) column-vector transformation matrix
    """
    rotation = quaternion_to_matrix(normalize_quaternion(real))
    if bool(torch.signbit(real[0])):
        rotation[:, 2] = -rotation[:, 2]

    m = torch.eye(4, dtype=real.dtype, device=real.device)
    m[:3, :3] = rotation * scale
    m[:3, 3] = dq_translation(real, dual)
    return m


def is_uniform_scale(scale: torch.Tensor, rel_tol: float = 1e-4) -> bool:
    """True if all per-axis scale components agree within rel_tol."""
    ref = scale.abs().max().clamp(min=1e-12)
    return bool(((scale - scale[0]).abs() / ref).max() <= rel_tol)
