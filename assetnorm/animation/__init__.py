"""
Animation resampling and keyframe compression.
"""

from .compression import compress_keyframes, compression_pass, is_predictable, keyframe_residual
from .resampler import (
    ActionTable,
    BracketCursor,
    action_frame_count,
    build_actions,
    resample_channel,
)

__all__ = [
    # Compression
    "compress_keyframes",
    "compression_pass",
    "is_predictable",
    "keyframe_residual",
    # Resampling
    "ActionTable",
    "BracketCursor",
    "action_frame_count",
    "build_actions",
    "resample_channel",
]
