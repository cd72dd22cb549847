"""
Quaternion operations for bind poses and keyframes.

Quaternions are represented as (w, x, y, z) where w is the scalar part
and (x, y, z) is the vector part. This follows the convention:
    q = w + xi + yj + zk

Products are Hamilton products, so q1 * q2 applies q2 first and q1 second
when rotating column vectors.

All operations support batched inputs with shape (..., 4).
"""

from typing import Union
import torch
import torch.nn.functional as F


def normalize_quaternion(q: torch.Tensor, eps: float = 1e-12) -> torch.Tensor:
    """
    Normalize quaternion to unit length.

    Args:
        q: Quaternion tensor of shape (..., 4) as [w, x, y, z]
        eps: Small constant for numerical stability

    Returns:
        Normalized quaternion of shape (..., 4)
    """
    return F.normalize(q, p=2, dim=-1, eps=eps)


def quaternion_conjugate(q: torch.Tensor) -> torch.Tensor:
    """
    Compute quaternion conjugate: q* = w - xi - yj - zk

    Args:
        q: Quaternion tensor of shape (..., 4) as [w, x, y, z]

    Returns:
        Conjugate quaternion of shape (..., 4)
    """
    conj = q.clone()
    conj[..., 1:] = -conj[..., 1:]
    return conj


def quaternion_multiply(q1: torch.Tensor, q2: torch.Tensor) -> torch.Tensor:
    """
    Compute the Hamilton product q1 * q2.

    Args:
        q1: First quaternion of shape (..., 4) as [w, x, y, z]
        q2: Second quaternion of shape (..., 4) as [w, x, y, z]

    Returns:
        Product quaternion of shape (..., 4)
    """
    w1, x1, y1, z1 = q1.unbind(dim=-1)
    w2, x2, y2, z2 = q2.unbind(dim=-1)

    w = w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2
    x = w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2
    y = w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2
    z = w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2

    return torch.stack([w, x, y, z], dim=-1)


def quaternion_dot(q1: torch.Tensor, q2: torch.Tensor) -> torch.Tensor:
    """4D dot product of shape (...)."""
    return (q1 * q2).sum(dim=-1)


def quaternion_to_matrix(q: torch.Tensor) -> torch.Tensor:
    """
    Convert unit quaternion to 3x3 rotation matrix.

    Args:
        q: Unit quaternion of shape (..., 4) as [w, x, y, z]

    Returns:
        Rotation matrix of shape (..., 3, 3)
    """
    q = normalize_quaternion(q)
    w, x, y, z = q.unbind(dim=-1)

    r00 = 1 - 2 * (y * y + z * z)
    r01 = 2 * (x * y - z * w)
    r02 = 2 * (x * z + y * w)

    r10 = 2 * (x * y + z * w)
    r11 = 1 - 2 * (x * x + z * z)
    r12 = 2 * (y * z - x * w)

    r20 = 2 * (x * z - y * w)
    r21 = 2 * (y * z + x * w)
    r22 = 1 - 2 * (x * x + y * y)

    return torch.stack([
        torch.stack([r00, r01, r02], dim=-1),
        torch.stack([r10, r11, r12], dim=-1),
        torch.stack([r20, r21, r22], dim=-1),
    ], dim=-2)


def matrix_to_quaternion(R: torch.Tensor) -> torch.Tensor:
    """
    Convert 3x3 rotation matrix to unit quaternion.

    Uses the Shepperd method for numerical stability.

    Args:
        R: Rotation matrix of shape (..., 3, 3)

    Returns:
        Unit quaternion of shape (..., 4) as [w, x, y, z]
    """
    batch_shape = R.shape[:-2]
    R = R.reshape(-1, 3, 3)
    B = R.shape[0]

    trace = R[:, 0, 0] + R[:, 1, 1] + R[:, 2, 2]

    q = torch.zeros(B, 4, device=R.device, dtype=R.dtype)

    # Case 1: trace > 0
    mask1 = trace > 0
    s1 = torch.sqrt(trace[mask1] + 1.0) * 2
    q[mask1, 0] = 0.25 * s1
    q[mask1, 1] = (R[mask1, 2, 1] - R[mask1, 1, 2]) / s1
    q[mask1, 2] = (R[mask1, 0, 2] - R[mask1, 2, 0]) / s1
    q[mask1, 3] = (R[mask1, 1, 0] - R[mask1, 0, 1]) / s1

    # Case 2: R[0,0] is largest diagonal
    mask2 = (~mask1) & (R[:, 0, 0] > R[:, 1, 1]) & (R[:, 0, 0] > R[:, 2, 2])
    s2 = torch.sqrt(1.0 + R[mask2, 0, 0] - R[mask2, 1, 1] - R[mask2, 2, 2]) * 2
    q[mask2, 0] = (R[mask2, 2, 1] - R[mask2, 1, 2]) / s2
    q[mask2, 1] = 0.25 * s2
    q[mask2, 2] = (R[mask2, 0, 1] + R[mask2, 1, 0]) / s2
    q[mask2, 3] = (R[mask2, 0, 2] + R[mask2, 2, 0]) / s2

    # Case 3: R[1,1] is largest diagonal
    mask3 = (~mask1) & (~mask2) & (R[:, 1, 1] > R[:, 2, 2])
    s3 = torch.sqrt(1.0 + R[mask3, 1, 1] - R[mask3, 0, 0] - R[mask3, 2, 2]) * 2
    q[mask3, 0] = (R[mask3, 0, 2] - R[mask3, 2, 0]) / s3
    q[mask3, 1] = (R[mask3, 0, 1] + R[mask3, 1, 0]) / s3
    q[mask3, 2] = 0.25 * s3
    q[mask3, 3] = (R[mask3, 1, 2] + R[mask3, 2, 1]) / s3

    # Case 4: R[2,2] is largest diagonal
    mask4 = (~mask1) & (~mask2) & (~mask3)
    s4 = torch.sqrt(1.0 + R[mask4, 2, 2] - R[mask4, 0, 0] - R[mask4, 1, 1]) * 2
    q[mask4, 0] = (R[mask4, 1, 0] - R[mask4, 0, 1]) / s4
    q[mask4, 1] = (R[mask4, 0, 2] + R[mask4, 2, 0]) / s4
    q[mask4, 2] = (R[mask4, 1, 2] + R[mask4, 2, 1]) / s4
    q[mask4, 3] = 0.25 * s4

    q = q.reshape(*batch_shape, 4)
    return normalize_quaternion(q)


def quaternion_slerp(
    q0: torch.Tensor,
    q1: torch.Tensor,
    t: Union[float, torch.Tensor]
) -> torch.Tensor:
    """
    Spherical linear interpolation between two quaternions.

    q(t) = sin((1-t)θ)/sin(θ) * q0 + sin(tθ)/sin(θ) * q1

    The shorter arc is taken: q1 is negated when dot(q0, q1) < 0.

    Args:
        q0: Start quaternion of shape (..., 4)
        q1: End quaternion of shape (..., 4)
        t: Interpolation parameter in [0, 1], scalar or tensor

    Returns:
        Interpolated unit quaternion of shape (..., 4)
    """
    q0 = normalize_quaternion(q0)
    q1 = normalize_quaternion(q1)

    dot = (q0 * q1).sum(dim=-1, keepdim=True)
    q1 = torch.where(dot < 0, -q1, q1)
    dot = torch.clamp(torch.abs(dot), -1.0, 1.0)

    theta = torch.acos(dot)

    if not isinstance(t, torch.Tensor):
        t = torch.tensor(t, device=q0.device, dtype=q0.dtype)

    sin_theta = torch.sin(theta)
    small_angle_mask = sin_theta.abs() < 1e-6
    safe_sin = torch.where(small_angle_mask, torch.ones_like(sin_theta), sin_theta)

    s0 = torch.sin((1 - t) * theta) / safe_sin
    s1 = torch.sin(t * theta) / safe_sin

    # Nearly parallel: fall back to linear interpolation
    s0 = torch.where(small_angle_mask, 1 - t, s0)
    s1 = torch.where(small_angle_mask, t, s1)

    return normalize_quaternion(s0 * q0 + s1 * q1)


def identity_quaternion(
    batch_size: int = 1,
    device: torch.device = None,
    dtype: torch.dtype = None
) -> torch.Tensor:
    """
    Create identity quaternions (no rotation) of shape (batch_size, 4).
    """
    q = torch.zeros(batch_size, 4, device=device, dtype=dtype)
    q[:, 0] = 1.0
    return q


def rotate_vector(v: torch.Tensor, q: torch.Tensor) -> torch.Tensor:
    """
    Rotate 3D vectors by unit quaternions: v' = q * v * q^{-1}

    Args:
        v: Vector(s) of shape (..., 3)
        q: Unit quaternion(s) of shape (..., 4)

    Returns:
        Rotated vector(s) of shape (..., 3)
    """
    v_quat = torch.zeros(*v.shape[:-1], 4, device=v.device, dtype=v.dtype)
    v_quat[..., 1:] = v

    result = quaternion_multiply(quaternion_multiply(q, v_quat), quaternion_conjugate(q))
    return result[..., 1:]


def quaternion_from_axis_angle(axis: torch.Tensor, angle: float) -> torch.Tensor:
    """
    Create a quaternion from a rotation axis of shape (3,) and an angle in radians.
    """
    axis = F.normalize(axis, p=2, dim=-1)
    half = torch.as_tensor(angle / 2, dtype=axis.dtype)
    return torch.cat([torch.cos(half).reshape(1), axis * torch.sin(half)])
