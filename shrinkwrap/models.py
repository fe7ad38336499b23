"""
Data Model for the Rate-Control Engine
Encode requests/outcomes, per-file rate state, split plans and session records
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Tier(Enum):
    """Strategy level a RateState is currently operating at"""
    PRIMARY = "primary"
    RESCUE_PRIMARY_RES = "rescue-primary-res"
    RESCUE_DOWNSCALED = "rescue-downscaled"
    LAST_RESORT = "last-resort"


class StatusKind(Enum):
    """Terminal status tag of one processed input or segment"""
    COPIED = "Copied"
    OPTIMIZED = "Optimized"
    RESCUED_PRIMARY_RES = "Rescued-PrimaryRes"
    RESCUED_DOWNSCALED = "Rescued-Downscaled"
    RESCUED_LAST_RESORT = "Rescued-LastResort"
    SPLIT = "Split"

    MISSING_INPUT = "Missing Input"
    EMPTY_INPUT = "Empty Input"
    PROBE_FAILED = "Duration Fail"
    COPY_FAILED = "Copy Fail"
    ENCODE_FAILED = "Encode Fail"
    EXHAUSTED = "All Attempts Failed"
    SPLIT_FAILED = "Split Fail"
    SPLIT_INCOMPLETE = "Split Incomplete"

    @property
    def is_success(self) -> bool:
        return self in _SUCCESS_STATUSES


_SUCCESS_STATUSES = frozenset({
    StatusKind.COPIED,
    StatusKind.OPTIMIZED,
    StatusKind.RESCUED_PRIMARY_RES,
    StatusKind.RESCUED_DOWNSCALED,
    StatusKind.RESCUED_LAST_RESORT,
    StatusKind.SPLIT,
})


@dataclass(frozen=True)
class VideoSpec:
    """Video rate control: a bitrate target or a constant-quality level, never both"""
    bitrate_kbps: Optional[int] = None
    quality: Optional[int] = None

    def __post_init__(self):
        if (self.bitrate_kbps is None) == (self.quality is None):
            raise ValueError("VideoSpec needs exactly one of bitrate_kbps or quality")

    @property
    def is_constant_quality(self) -> bool:
        return self.quality is not None


@dataclass(frozen=True)
class AudioSpec:
    bitrate_kbps: Optional[int] = None
    copy: bool = False
    normalize: bool = False

    def __post_init__(self):
        if self.copy == (self.bitrate_kbps is not None):
            raise ValueError("AudioSpec needs either bitrate_kbps or copy=True")


@dataclass(frozen=True)
class EncodeJob:
    """
    Immutable request for one encoder invocation.

    pass_number is 1 or 2 for the two halves of a two-pass encode and None for
    a single-pass encode. stats_key ties both passes of one attempt together;
    the encoder adapter decides where the statistics actually live.
    """
    input_path: str
    output_path: str
    max_width: int
    video: VideoSpec
    audio: AudioSpec
    pass_number: Optional[int] = None
    preset: str = "slow"
    stats_key: Optional[str] = None

    def __post_init__(self):
        if self.pass_number not in (None, 1, 2):
            raise ValueError(f"Invalid pass number: {self.pass_number}")
        if self.pass_number is not None and self.video.is_constant_quality:
            raise ValueError("Two-pass encoding requires a bitrate target")
        if self.pass_number is not None and not self.stats_key:
            raise ValueError("Two-pass encoding requires a stats_key")


@dataclass(frozen=True)
class EncodeOutcome:
    exit_status: int
    size_bytes: int = 0
    error_detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0 and self.size_bytes > 0


@dataclass
class RateState:
    """
    Mutable rate-control state for one file or segment.

    Owned by the controller processing that file; never shared between jobs.
    """
    video_kbps: int
    audio_kbps: int
    max_width: int
    tier: Tier = Tier.PRIMARY
    attempts: int = 0

    def enter_tier(self, tier: Tier, max_width: int) -> None:
        self.tier = tier
        self.max_width = max_width
        self.attempts = 0

    def respects_floors(self, video_floor_kbps: int, audio_floor_kbps: int) -> bool:
        if self.tier is Tier.LAST_RESORT:
            return True
        return self.video_kbps >= video_floor_kbps and self.audio_kbps >= audio_floor_kbps


@dataclass(frozen=True)
class SplitPart:
    path: str
    part_suffix: str


@dataclass(frozen=True)
class SplitPlan:
    cut_point: float
    from_keyframe: bool
    parts: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class SessionRecord:
    """One row of the session summary. None means unavailable / not computed."""
    name: str
    original_size: Optional[int]
    final_size: Optional[int]
    reduction_percent: Optional[float]
    status: StatusKind
