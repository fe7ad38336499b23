"""
Video Optimizer
Per-file entry point of the size-fitting waterfall:
copy short-circuit, primary bitrate tier, rescue tiers and temporal splitting
"""

import os
import shutil
import logging
from typing import Optional

from .config_manager import RateControlSettings
from .encoder import Encoder, ProbeError
from .models import RateState, StatusKind
from .rescue_controller import RescueController
from .retry_loop import LoopStop, RetryLoop
from .session_report import SessionReport
from .size_model import bytes_to_mb, derive_video_bitrate, minimum_achievable_bytes, rescue_is_feasible
from .split_controller import SplitController
from .temp_file_manager import TempFileManager
from .utils.naming import base_name_for, display_name, output_path as build_output_path

logger = logging.getLogger(__name__)


class VideoOptimizer:
    """
    Fits one input (and, recursively, its split parts) under the size ceiling.

    Every terminal outcome is appended to the shared SessionReport; the
    return value of optimize() only says whether the whole subtree succeeded.
    """

    def __init__(self, encoder: Encoder, settings: RateControlSettings, report: SessionReport,
                 output_dir: str, temp_files: TempFileManager):
        self.encoder = encoder
        self.settings = settings
        self.report = report
        self.output_dir = output_dir
        self.temp_files = temp_files

        self.retry_loop = RetryLoop(encoder, settings, temp_files)
        self.rescue_controller = RescueController(encoder, settings, temp_files, self.retry_loop)
        self.split_controller = SplitController(encoder, settings, report, temp_files, self)

    def optimize(self, input_path: str, base_name: Optional[str] = None, part_suffix: str = "") -> bool:
        """
        Run the full pipeline on one file or split part.

        Args:
            input_path: File to fit under the ceiling
            base_name: Sanitised stem of the top-level input; derived from input_path when None
            part_suffix: '_PART_n' chain for split parts, empty for top-level inputs

        Returns:
            True when every record produced for this input is a success
        """
        settings = self.settings
        base_name = base_name or base_name_for(input_path)
        name = display_name(input_path, base_name, part_suffix)
        output = build_output_path(self.output_dir, base_name, part_suffix)

        logger.info(f"Processing: {name}")

        if not os.path.isfile(input_path):
            logger.error(f"Input file not found: {input_path}")
            self.report.add(name, None, None, StatusKind.MISSING_INPUT)
            return False

        original_size = self.encoder.file_size(input_path)
        if original_size <= 0:
            logger.error(f"Input file is empty: {input_path}")
            self.report.add(name, 0, None, StatusKind.EMPTY_INPUT)
            return False

        if original_size < settings.max_size_bytes:
            return self._copy_unmodified(input_path, output, name, original_size)

        try:
            duration = self.encoder.probe(input_path)
        except ProbeError as e:
            logger.error(f"Could not determine duration of {name}: {e}")
            self.report.add(name, original_size, None, StatusKind.PROBE_FAILED)
            return False
        if duration <= 0:
            logger.error(f"Invalid duration for {name}: {duration}")
            self.report.add(name, original_size, None, StatusKind.PROBE_FAILED)
            return False

        logger.info(f"{name}: {bytes_to_mb(original_size):.3f}MB, {duration:.2f}s")

        if not self._fits_at_floors(duration):
            return self.split_controller.split(input_path, base_name, part_suffix, duration,
                                               original_size, rescue_attempted=False)

        result = self._run_primary(input_path, output, duration)
        if result.success:
            self.report.add(name, original_size, result.size_bytes, StatusKind.OPTIMIZED)
            return True
        if result.stop is LoopStop.ENCODE_FAILED:
            self.report.add(name, original_size, None, StatusKind.ENCODE_FAILED)
            return False

        return self.rescue_then_split(input_path, base_name, part_suffix, duration, original_size)

    def _copy_unmodified(self, input_path: str, output: str, name: str, original_size: int) -> bool:
        logger.info(f"{name} is already under {self.settings.max_size_mb}MB, copying")
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            shutil.copy2(input_path, output)
        except OSError as e:
            logger.error(f"Failed to copy {input_path} to {output}: {e}")
            self.report.add(name, original_size, None, StatusKind.COPY_FAILED)
            return False
        self.report.add(name, original_size, self.encoder.file_size(output), StatusKind.COPIED)
        return True

    def _run_primary(self, input_path: str, output: str, duration: float):
        settings = self.settings
        estimate = derive_video_bitrate(settings.target_size_bytes, duration, settings.initial_audio_kbps,
                                        settings.overhead_bytes, floor_kbps=settings.video_floor_kbps)
        if estimate.clamped:
            logger.warning(f"Calculated video bitrate is below {settings.video_floor_kbps}kbps, "
                           f"starting at the floor")
        state = RateState(
            video_kbps=estimate.kbps,
            audio_kbps=settings.initial_audio_kbps,
            max_width=settings.primary_max_width,
        )
        return self.retry_loop.run(input_path, output, state, settings.max_size_mb, allow_audio_step_down=True)

    def _fits_at_floors(self, duration: float) -> bool:
        """Whether floor video and floor audio for the full duration can meet the target"""
        settings = self.settings
        if rescue_is_feasible(settings.video_floor_kbps, settings.audio_floor_kbps, duration,
                              settings.target_size_mb):
            return True
        minimum_mb = bytes_to_mb(minimum_achievable_bytes(settings.video_floor_kbps,
                                                          settings.audio_floor_kbps, duration))
        logger.info(f"Minimum size at floor bitrates ({minimum_mb:.2f}MB) exceeds target "
                    f"{settings.target_size_mb}MB, splitting without encoding")
        return False

    def rescue_then_split(self, input_path: str, base_name: str, part_suffix: str, duration: float,
                          original_size: int) -> bool:
        """Rescue tiers first; split only if every rescue phase fails"""
        name = display_name(input_path, base_name, part_suffix)
        output = build_output_path(self.output_dir, base_name, part_suffix)

        result = self.rescue_controller.rescue(input_path, output, duration)
        if result.success:
            self.report.add(name, original_size, result.size_bytes, result.status)
            return True
        return self.split_controller.split(input_path, base_name, part_suffix, duration,
                                           original_size, rescue_attempted=True)
