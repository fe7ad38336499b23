"""
Retry Loop
Repeated encode -> measure -> adjust cycles within a single resolution/quality tier
"""

import os
import shutil
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .config_manager import RateControlSettings
from .encoder import Encoder, run_two_pass
from .models import AudioSpec, EncodeJob, EncodeOutcome, RateState, VideoSpec
from .size_model import bytes_to_mb, reduce_on_overshoot
from .temp_file_manager import TempFileManager

logger = logging.getLogger(__name__)


class LoopStop(Enum):
    """Why a tier stopped"""
    SUCCESS = "success"
    ENCODE_FAILED = "encode_failed"
    FLOOR_REACHED = "floor_reached"
    RETRIES_EXHAUSTED = "retries_exhausted"


@dataclass
class TierResult:
    stop: LoopStop
    state: RateState
    size_bytes: int = 0
    error_detail: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.stop is LoopStop.SUCCESS


class RetryLoop:
    """Drives one tier until success, floor violation, encoder failure or retry exhaustion"""

    def __init__(self, encoder: Encoder, settings: RateControlSettings, temp_files: TempFileManager):
        self.encoder = encoder
        self.settings = settings
        self.temp_files = temp_files

    def _build_job(self, input_path: str, temp_output: str, state: RateState) -> EncodeJob:
        return EncodeJob(
            input_path=input_path,
            output_path=temp_output,
            max_width=state.max_width,
            video=VideoSpec(bitrate_kbps=state.video_kbps),
            audio=AudioSpec(bitrate_kbps=state.audio_kbps, normalize=self.settings.normalize_audio),
            preset=self.settings.preset,
        )

    def _attempt(self, job: EncodeJob) -> EncodeOutcome:
        return run_two_pass(self.encoder, job)

    def promote(self, temp_output: str, output_path: str):
        """Move a passing encode into its final location"""
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        shutil.move(temp_output, output_path)
        self.temp_files.unregister(temp_output)

    def run(self, input_path: str, output_path: str, state: RateState, threshold_mb: float,
            damping: float = 1.0, allow_audio_step_down: bool = False) -> TierResult:
        """
        Encode until the result fits under threshold_mb.

        Args:
            input_path: Source file or segment
            output_path: Final location for a passing encode
            state: Rate state for this tier; mutated in place
            threshold_mb: Pass/fail size for this tier
            damping: Extra multiplier applied on each overshoot correction
            allow_audio_step_down: Lower audio once video is pinned at its floor

        Returns:
            TierResult describing why the tier stopped
        """
        settings = self.settings
        label = state.tier.value
        stem = Path(output_path).stem

        while state.attempts < settings.max_retries:
            state.attempts += 1
            logger.info(f"[{label}] Attempt {state.attempts}/{settings.max_retries}: "
                        f"Video ~{state.video_kbps}kbps, Audio {state.audio_kbps}kbps, "
                        f"width <= {state.max_width}")

            temp_output = self.temp_files.new_path(stem)
            outcome = self._attempt(self._build_job(input_path, temp_output, state))

            if not outcome.succeeded:
                logger.error(f"[{label}] Encoding failed (attempt {state.attempts}, "
                             f"exit {outcome.exit_status}): {outcome.error_detail or 'empty output'}")
                self.temp_files.discard(temp_output)
                return TierResult(LoopStop.ENCODE_FAILED, state, error_detail=outcome.error_detail)

            size_mb = bytes_to_mb(outcome.size_bytes)
            logger.info(f"[{label}] Result: {size_mb:.3f}MB (limit {threshold_mb}MB)")

            if size_mb <= threshold_mb:
                self.promote(temp_output, output_path)
                return TierResult(LoopStop.SUCCESS, state, size_bytes=outcome.size_bytes)

            self.temp_files.discard(temp_output)

            new_video_kbps = reduce_on_overshoot(state.video_kbps, size_mb, threshold_mb, damping)
            if new_video_kbps >= settings.video_floor_kbps:
                logger.info(f"[{label}] Overshoot, reducing video bitrate {state.video_kbps} -> {new_video_kbps}kbps")
                state.video_kbps = new_video_kbps
                continue

            state.video_kbps = settings.video_floor_kbps
            if allow_audio_step_down and state.audio_kbps > settings.audio_floor_kbps:
                state.audio_kbps = max(state.audio_kbps - settings.audio_step_kbps, settings.audio_floor_kbps)
                logger.info(f"[{label}] Video bitrate at floor, reducing audio to {state.audio_kbps}kbps")
                continue

            logger.warning(f"[{label}] All bitrates at floor without fitting {threshold_mb}MB")
            return TierResult(LoopStop.FLOOR_REACHED, state)

        logger.warning(f"[{label}] Max retries ({settings.max_retries}) exhausted")
        return TierResult(LoopStop.RETRIES_EXHAUSTED, state)
