"""
Rescue Controller
Fallback tiers for files the primary retry loop could not fit:
same-resolution restart at the audio floor, downscaled retries, then one constant-quality shot
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config_manager import RateControlSettings
from .encoder import Encoder
from .models import AudioSpec, EncodeJob, RateState, StatusKind, Tier, VideoSpec
from .retry_loop import LoopStop, RetryLoop
from .size_model import bytes_to_mb, derive_video_bitrate
from .temp_file_manager import TempFileManager

logger = logging.getLogger(__name__)


@dataclass
class RescueResult:
    success: bool
    status: Optional[StatusKind] = None
    size_bytes: int = 0
    final_tier: Optional[Tier] = None


class RescueController:
    def __init__(self, encoder: Encoder, settings: RateControlSettings, temp_files: TempFileManager,
                 retry_loop: Optional[RetryLoop] = None):
        self.encoder = encoder
        self.settings = settings
        self.temp_files = temp_files
        self.retry_loop = retry_loop or RetryLoop(encoder, settings, temp_files)

    def rescue(self, input_path: str, output_path: str, duration: float) -> RescueResult:
        """Walk phase A, phase B and the last-resort pass until one fits the target"""
        settings = self.settings
        logger.info(f"[Rescue] Bitrate constraints unsatisfiable at full resolution for {input_path}. "
                    f"Engaging fallback...")

        state = self._phase_a_state(duration)
        result = self.retry_loop.run(input_path, output_path, state, settings.target_size_mb)
        if result.success:
            logger.info(f"[Rescue] Success at native resolution: {bytes_to_mb(result.size_bytes):.3f}MB")
            return RescueResult(True, StatusKind.RESCUED_PRIMARY_RES, result.size_bytes, Tier.RESCUE_PRIMARY_RES)
        if result.stop is LoopStop.ENCODE_FAILED:
            logger.warning("[Rescue] Encoder failed at native resolution, moving to downscale")

        state.enter_tier(Tier.RESCUE_DOWNSCALED, settings.secondary_max_width)
        state.video_kbps = max(state.video_kbps, settings.video_floor_kbps)
        logger.info(f"[Rescue] Phase B: downscaling to width <= {settings.secondary_max_width} "
                    f"starting at {state.video_kbps}kbps")
        result = self.retry_loop.run(input_path, output_path, state, settings.target_size_mb,
                                     damping=settings.downscale_damping)
        if result.success:
            logger.info(f"[Rescue] Success after downscale: {bytes_to_mb(result.size_bytes):.3f}MB")
            return RescueResult(True, StatusKind.RESCUED_DOWNSCALED, result.size_bytes, Tier.RESCUE_DOWNSCALED)

        return self._last_resort(input_path, output_path, state)

    def _phase_a_state(self, duration: float) -> RateState:
        settings = self.settings
        estimate = derive_video_bitrate(settings.target_size_bytes, duration, settings.audio_floor_kbps,
                                        settings.overhead_bytes, floor_kbps=settings.video_floor_kbps)
        if estimate.clamped:
            logger.info(f"[Rescue] Calculated bitrate violates floor. Clamping to minimum "
                        f"({settings.video_floor_kbps} kbps).")
        return RateState(
            video_kbps=estimate.kbps,
            audio_kbps=settings.audio_floor_kbps,
            max_width=settings.primary_max_width,
            tier=Tier.RESCUE_PRIMARY_RES,
        )

    def _last_resort(self, input_path: str, output_path: str, state: RateState) -> RescueResult:
        settings = self.settings
        state.enter_tier(Tier.LAST_RESORT, settings.secondary_max_width)
        state.audio_kbps = settings.audio_floor_kbps
        state.attempts = 1

        temp_output = self.temp_files.new_path(f"{Path(output_path).stem}_cq")
        job = EncodeJob(
            input_path=input_path,
            output_path=temp_output,
            max_width=state.max_width,
            video=VideoSpec(quality=settings.last_resort_quality),
            audio=AudioSpec(bitrate_kbps=state.audio_kbps, normalize=settings.normalize_audio),
            preset=settings.preset,
        )
        logger.info(f"[Rescue] Last resort: constant quality {settings.last_resort_quality} "
                    f"at width <= {state.max_width}")
        outcome = self.encoder.encode(job)

        if outcome.succeeded and bytes_to_mb(outcome.size_bytes) <= settings.target_size_mb:
            self.retry_loop.promote(temp_output, output_path)
            logger.info(f"[Rescue] Last resort landed at {bytes_to_mb(outcome.size_bytes):.3f}MB")
            return RescueResult(True, StatusKind.RESCUED_LAST_RESORT, outcome.size_bytes, Tier.LAST_RESORT)

        self.temp_files.discard(temp_output)
        if not outcome.succeeded:
            logger.error(f"[Rescue] Last resort encode failed: {outcome.error_detail or 'empty output'}")
        else:
            logger.warning(f"[Rescue] Last resort overshot: {bytes_to_mb(outcome.size_bytes):.3f}MB > "
                           f"{settings.target_size_mb}MB")
        logger.warning("[Rescue] Failed all attempts.")
        return RescueResult(False, final_tier=Tier.LAST_RESORT)
