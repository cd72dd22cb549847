"""
Animation resampling onto a uniform timeline.

Source channels carry sparse keys at arbitrary tick timestamps. Each joint
channel is resampled independently to a fixed frame rate:

- scale:       linear interpolation of the bracketing scale keys
- rotation:    slerp of the bracketing rotation keys
- translation: ScLERP of dual quaternions built from each bracket's own
               rotation key and position key

Queries are non-decreasing in time during a pass, so every channel keeps a
BracketCursor that resumes scanning from the previous bracket.

All actions of a model share one timeline; each action occupies the frame
range [start_frame, end_frame) right after the previous one.
"""

from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
import logging
import math

import numpy as np
import torch
from tqdm import tqdm

from ..core.constants import (
    DEFAULT_RESAMPLE_FPS,
    DEFAULT_TICKS_PER_SECOND,
    DEFAULT_COMPRESSION_TOLERANCE,
)
from ..core.types import AnimationAction, Joint, KeyFrameSet, DEFAULT_DTYPE
from ..scene.raw import RawAnimation, RawChannel
from ..utils.dual_quaternion import dq_from_rotation_translation, dq_sclerp
from ..utils.quaternion import normalize_quaternion, quaternion_slerp
from .compression import compress_keyframes

logger = logging.getLogger(__name__)


class ActionTable(NamedTuple):
    """Resampled animation of a whole model."""
    keyframe_sets: List[KeyFrameSet]     # one per joint, on the shared timeline
    actions: List[AnimationAction]
    num_frames: int
    frame_rate: int


class BracketCursor:
    """
    Amortized bracket search over key timestamps.

    The upper index of the last bracket is kept between calls, so a sweep
    of non-decreasing query times costs O(1) per query on average.
    """

    def __init__(self, times: Sequence[float]):
        if len(times) == 0:
            raise ValueError("BracketCursor needs at least one key")
        self.times = [float(t) for t in times]
        self.upper = 0

    def locate(self, time: float) -> Tuple[int, int, float]:
        """
        Find the keys bracketing a query time.

        Args:
            time: Query time, not smaller than the previous query

        Returns:
            (lower, upper, fraction) with fraction clamped to [0, 1]; a
            single-key track yields (0, 0, 0.0) and times outside the keys
            clamp to the first or last pair
        """
        times = self.times
        n = len(times)
        if n == 1:
            self.upper = 0
            return 0, 0, 0.0

        i = self.upper
        while i < n and times[i] < time:
            i += 1

        if i == 0:
            lower, upper = 0, 1
        elif i >= n - 1:
            lower, upper = n - 2, n - 1
        else:
            lower, upper = i - 1, i
        self.upper = upper

        diff = times[upper] - times[lower]
        fraction = 0.0 if diff == 0 else (time - times[lower]) / diff
        return lower, upper, min(max(fraction, 0.0), 1.0)


def _key_values(keys: List[Tuple[float, np.ndarray]], width: int) -> torch.Tensor:
    return torch.as_tensor(
        np.asarray([np.asarray(value, dtype=np.float64)[:width] for _, value in keys]),
        dtype=DEFAULT_DTYPE,
    ).reshape(len(keys), width)


def _sweep(cursor: BracketCursor, times: Sequence[float]) -> Tuple[List[int], List[int], torch.Tensor]:
    lowers, uppers, fractions = [], [], []
    for time in times:
        lower, upper, fraction = cursor.locate(time)
        lowers.append(lower)
        uppers.append(upper)
        fractions.append(fraction)
    return lowers, uppers, torch.tensor(fractions, dtype=DEFAULT_DTYPE).unsqueeze(-1)


def resample_channel(
    channel: RawChannel,
    frame_count: int,
    fps_scale: float,
    start_frame: int = 0
) -> KeyFrameSet:
    """
    Resample one joint channel to frames [start_frame, start_frame + frame_count).

    Frame i is sampled at tick time i * fps_scale. Missing tracks keep their
    identity default (scale 1, identity rotation, zero translation).

    The dual part is the ScLERP of (rot[pos_lower], pos[pos_lower]) and
    (rot[rot_upper], pos[pos_upper]), where pos_lower/pos_upper bracket the
    position track and rot_upper is the upper rotation bracket, while the
    real part is the slerp of the rotation track. Downstream data depends on
    this exact curve shape.

    Args:
        channel: Source channel
        frame_count: Number of output frames
        fps_scale: Source ticks per output frame
        start_frame: First output frame id

    Returns:
        KeyFrameSet with one sample per output frame, real.w >= 0
    """
    frame_ids = list(range(start_frame, start_frame + frame_count))
    times = [i * fps_scale for i in frame_ids]
    n = len(frame_ids)

    scale = torch.ones(n, dtype=DEFAULT_DTYPE)
    real = torch.zeros(n, 4, dtype=DEFAULT_DTYPE)
    real[:, 0] = 1.0
    dual = torch.zeros(n, 4, dtype=DEFAULT_DTYPE)

    if channel.scaling_keys:
        values = _key_values(channel.scaling_keys, 3)[:, 0]
        cursor = BracketCursor([t for t, _ in channel.scaling_keys])
        lower, upper, fraction = _sweep(cursor, times)
        fraction = fraction.squeeze(-1)
        scale = values[lower] + (values[upper] - values[lower]) * fraction

    rotations: Optional[torch.Tensor] = None
    rot_uppers: List[int] = [0] * n
    if channel.rotation_keys:
        rotations = normalize_quaternion(_key_values(channel.rotation_keys, 4))
        cursor = BracketCursor([t for t, _ in channel.rotation_keys])
        lower, rot_uppers, fraction = _sweep(cursor, times)
        real = quaternion_slerp(rotations[lower], rotations[rot_uppers], fraction)

    if channel.position_keys:
        positions = _key_values(channel.position_keys, 3)
        cursor = BracketCursor([t for t, _ in channel.position_keys])
        lower, upper, fraction = _sweep(cursor, times)

        if rotations is None:
            rot_lower = torch.zeros(n, 4, dtype=DEFAULT_DTYPE)
            rot_lower[:, 0] = 1.0
            rot_upper = rot_lower.clone()
        else:
            last = rotations.shape[0] - 1
            rot_lower = rotations[[min(i, last) for i in lower]]
            rot_upper = rotations[rot_uppers]

        dual_lower = dq_from_rotation_translation(rot_lower, positions[lower])
        dual_upper = dq_from_rotation_translation(rot_upper, positions[upper])
        _, dual = dq_sclerp(rot_lower, dual_lower, rot_upper, dual_upper, fraction)

    # Keep w >= 0 for shortest-arc continuity between frames
    negative = torch.signbit(real[:, :1])
    real = torch.where(negative, -real, real)
    dual = torch.where(negative, -dual, dual)

    return KeyFrameSet(
        frame_id=frame_ids,
        bind_real=real,
        bind_dual=dual,
        bind_scale=scale,
    )


def action_frame_count(animation: RawAnimation, fps: int) -> Tuple[int, float]:
    """
    Frame count and ticks-per-frame of an animation at the target rate.

    Returns:
        (frame_count, fps_scale) with frame_count >= 1
    """
    ticks_per_second = animation.ticks_per_second
    if ticks_per_second <= 0:
        ticks_per_second = DEFAULT_TICKS_PER_SECOND
    duration = animation.duration / ticks_per_second
    frame_count = max(1, int(math.ceil(duration * fps - 1e-6)))
    return frame_count, ticks_per_second / fps


def default_keyframes(joint: Joint) -> KeyFrameSet:
    """One-sample set holding the joint's parent-relative bind pose."""
    return KeyFrameSet.from_samples([0], [joint.local_real], [joint.local_dual], [joint.local_scale])


def build_actions(
    animations: List[RawAnimation],
    joints: List[Joint],
    fps: int = DEFAULT_RESAMPLE_FPS,
    tolerance: float = DEFAULT_COMPRESSION_TOLERANCE,
    verbose: bool = False
) -> ActionTable:
    """
    Resample and compress every animation of a model onto one timeline.

    Channels targeting nodes that are not joints are ignored. Joints without
    a channel in an action get a one-sample set with their parent-relative
    bind pose at the action's first frame.

    Args:
        animations: Source animations, laid out in order
        joints: Skeleton joints
        fps: Target frame rate
        tolerance: Keyframe compression tolerance
        verbose: Show a progress bar

    Returns:
        ActionTable with per-joint keyframe sets and the action ranges
    """
    name_to_joint: Dict[str, int] = {joint.name: i for i, joint in enumerate(joints)}
    keyframe_sets = [KeyFrameSet() for _ in joints]
    actions: List[AnimationAction] = []
    frame_offset = 0

    for animation in tqdm(animations, desc='Resampling', disable=not verbose):
        frame_count, fps_scale = action_frame_count(animation, fps)

        resampled: Dict[int, KeyFrameSet] = {}
        for channel in animation.channels:
            joint_id = name_to_joint.get(channel.node_name)
            if joint_id is None:
                logger.debug(f"Channel '{channel.node_name}' does not target a joint, skipping")
                continue
            resampled[joint_id] = resample_channel(channel, frame_count, fps_scale)

        for joint_id, joint in enumerate(joints):
            if joint_id not in resampled:
                resampled[joint_id] = default_keyframes(joint)

        actions.append(AnimationAction(
            name=animation.name,
            start_frame=frame_offset,
            end_frame=frame_offset + frame_count,
        ))

        for joint_id in sorted(resampled):
            merged = keyframe_sets[joint_id].extended(resampled[joint_id], frame_offset)
            keyframe_sets[joint_id] = compress_keyframes(merged, tolerance)

        frame_offset += frame_count

    total_keys = sum(len(kf) for kf in keyframe_sets)
    logger.info(f"Resampled {len(actions)} actions: {frame_offset} frames, {total_keys} keys kept")
    return ActionTable(
        keyframe_sets=keyframe_sets,
        actions=actions,
        num_frames=frame_offset,
        frame_rate=fps,
    )
