"""
Keyframe compression by redundancy elimination.

A keyframe is redundant when interpolating its two neighbours reproduces it:
the ScLERP of the outer dual quaternions (and the lerp of the outer scales)
at the middle frame's relative time must match the stored sample within a
tolerance. A pass is greedy and cascading: after a removal the same base
index is retried against the next surviving sample. Passes repeat until one
removes nothing, so a compressed set is left unchanged by compressing again.
"""

from typing import List
import logging

import torch

from ..core.constants import DEFAULT_COMPRESSION_TOLERANCE
from ..core.types import KeyFrameSet
from ..utils.dual_quaternion import dq_inverse, dq_multiply, dq_sclerp
from ..utils.quaternion import identity_quaternion, quaternion_dot

logger = logging.getLogger(__name__)


def keyframe_residual(
    true_real: torch.Tensor, true_dual: torch.Tensor,
    est_real: torch.Tensor, est_dual: torch.Tensor
) -> torch.Tensor:
    """
    Residual between a stored keyframe and its estimate.

    The difference inverse(true) * estimate is compared against the identity
    dual quaternion.

    Returns:
        (8,) absolute deviations of the difference's real and dual parts
    """
    inv_real, inv_dual = dq_inverse(true_real, true_dual)
    diff_real, diff_dual = dq_multiply(inv_real, inv_dual, est_real, est_dual)
    identity = identity_quaternion(device=diff_real.device, dtype=diff_real.dtype)[0]
    return torch.cat([(diff_real - identity).abs(), diff_dual.abs()], dim=-1)


def is_predictable(
    kf: KeyFrameSet,
    index: int,
    tolerance: float = DEFAULT_COMPRESSION_TOLERANCE
) -> bool:
    """
    Check whether sample index is reproduced by interpolating its neighbours.

    Args:
        kf: Keyframe set
        index: Middle sample, with index - 1 and index + 1 present
        tolerance: Per-component tolerance

    Returns:
        True if the sample can be dropped
    """
    f0, f1, f2 = kf.frame_id[index - 1], kf.frame_id[index], kf.frame_id[index + 1]
    factor = (f1 - f0) / (f2 - f0)

    est_real, est_dual = dq_sclerp(
        kf.bind_real[index - 1], kf.bind_dual[index - 1],
        kf.bind_real[index + 1], kf.bind_dual[index + 1],
        factor,
    )
    est_scale = kf.bind_scale[index - 1] + (kf.bind_scale[index + 1] - kf.bind_scale[index - 1]) * factor

    true_real = kf.bind_real[index]
    true_dual = kf.bind_dual[index]
    if quaternion_dot(true_real, est_real) < 0:
        est_real = -est_real
        est_dual = -est_dual

    residual = keyframe_residual(true_real, true_dual, est_real, est_dual)
    scale_residual = (est_scale - kf.bind_scale[index]).abs()
    return bool((residual < tolerance).all()) and bool(scale_residual < tolerance)


def compression_pass(
    kf: KeyFrameSet,
    tolerance: float = DEFAULT_COMPRESSION_TOLERANCE
) -> List[int]:
    """
    One greedy cascading pass over a keyframe set.

    Each removed sample was tested against the closest kept sample before it
    and the sample directly after it.

    Returns:
        Indices of the samples that survive the pass, in order
    """
    keep: List[int] = list(range(len(kf)))
    base = 0
    while base < len(keep) - 2:
        window = kf_window(kf, keep[base], keep[base + 1], keep[base + 2])
        if is_predictable(window, 1, tolerance):
            del keep[base + 1]
        else:
            base += 1
    return keep


def compress_keyframes(
    kf: KeyFrameSet,
    tolerance: float = DEFAULT_COMPRESSION_TOLERANCE
) -> KeyFrameSet:
    """
    Remove keyframes that are reproduced by interpolating their neighbours.

    The first and last keyframes always survive, and sets with fewer than
    three keyframes are returned unchanged. Passes repeat until nothing more
    can be removed.

    Args:
        kf: Keyframe set with strictly increasing frame ids
        tolerance: Per-component tolerance of the residual

    Returns:
        New keyframe set holding the surviving samples
    """
    if len(kf) < 3:
        return kf

    current = kf
    passes = 0
    while True:
        keep = compression_pass(current, tolerance)
        passes += 1
        if len(keep) == len(current):
            break
        current = kf_subset(current, keep)
        if len(current) < 3:
            break

    if len(current) < len(kf):
        logger.debug(f"Compressed keyframes {len(kf)} -> {len(current)} in {passes} passes")
    return kf_subset(current, list(range(len(current))))


def kf_subset(kf: KeyFrameSet, index: List[int]) -> KeyFrameSet:
    """Keyframe set holding the samples at index, in order."""
    return KeyFrameSet(
        frame_id=[kf.frame_id[i] for i in index],
        bind_real=kf.bind_real[index],
        bind_dual=kf.bind_dual[index],
        bind_scale=kf.bind_scale[index],
    )


def kf_window(kf: KeyFrameSet, i0: int, i1: int, i2: int) -> KeyFrameSet:
    """Three-sample view of a keyframe set."""
    return kf_subset(kf, [i0, i1, i2])
