"""
Size Model
Container-size arithmetic for deriving and correcting video bitrates
"""

import math
from typing import NamedTuple, Optional

BYTES_PER_MB = 1024 * 1024
BYTES_PER_KB = 1024

# Overshoot ratios below this are treated as this, so every correction is a real cut
OVERSHOOT_RATIO_FLOOR = 1.05


class BitrateEstimate(NamedTuple):
    bps: int
    clamped: bool

    @property
    def kbps(self) -> int:
        return self.bps // 1000


def mb_to_bytes(size_mb: float) -> float:
    return size_mb * BYTES_PER_MB


def bytes_to_mb(size_bytes: float) -> float:
    return size_bytes / BYTES_PER_MB


def derive_video_bitrate(target_size_bytes: float, duration_seconds: float,
                         audio_bitrate_kbps: int, overhead_bytes: float,
                         floor_kbps: Optional[int] = None) -> BitrateEstimate:
    """
    Compute the video bitrate that fills the target size.

    Args:
        target_size_bytes: Size budget for the whole container
        duration_seconds: Media duration, must be positive
        audio_bitrate_kbps: Audio bitrate reserved out of the budget
        overhead_bytes: Container/metadata reserve
        floor_kbps: Optional video floor; results below it are clamped

    Returns:
        BitrateEstimate with the bitrate in bits per second and whether it was clamped
    """
    if duration_seconds <= 0:
        raise ValueError(f"Duration must be positive, got {duration_seconds}")

    audio_bytes = audio_bitrate_kbps * 1000 * duration_seconds / 8
    video_bytes = target_size_bytes - audio_bytes - overhead_bytes
    bps = math.floor(video_bytes * 8 / duration_seconds)

    if floor_kbps is not None and bps < floor_kbps * 1000:
        return BitrateEstimate(floor_kbps * 1000, True)
    return BitrateEstimate(bps, False)


def overshoot_ratio(achieved_size_mb: float, target_size_mb: float) -> float:
    return max(achieved_size_mb / target_size_mb, OVERSHOOT_RATIO_FLOOR)


def reduce_on_overshoot(current_bitrate_kbps: int, achieved_size_mb: float,
                        target_size_mb: float, damping_factor: float = 1.0) -> int:
    """Scale the bitrate down in proportion to how far the last encode overshot"""
    ratio = overshoot_ratio(achieved_size_mb, target_size_mb)
    return math.floor(current_bitrate_kbps / ratio * damping_factor)


def minimum_achievable_bytes(video_floor_kbps: int, audio_floor_kbps: int,
                             duration_seconds: float) -> float:
    return (video_floor_kbps * 1000 + audio_floor_kbps * 1000) * duration_seconds / 8


def rescue_is_feasible(video_floor_kbps: int, audio_floor_kbps: int,
                       duration_seconds: float, target_size_mb: float) -> bool:
    """False when even floor bitrates over the full duration exceed the target"""
    minimum_mb = bytes_to_mb(minimum_achievable_bytes(video_floor_kbps, audio_floor_kbps, duration_seconds))
    return minimum_mb <= target_size_mb
