"""
Split Controller
Temporal bisection of inputs that cannot fit the target at floor bitrates
"""

import logging
from typing import TYPE_CHECKING, List

from .config_manager import RateControlSettings
from .encoder import Encoder
from .models import SplitPart, SplitPlan, StatusKind
from .session_report import SessionReport
from .temp_file_manager import TempFileManager
from .utils.naming import display_name, part_suffix as make_part_suffix

if TYPE_CHECKING:
    from .video_optimizer import VideoOptimizer

logger = logging.getLogger(__name__)


class SplitController:
    """
    Cuts an input in two at a keyframe near the middle and sends each half
    back through the optimizer. Recursion depth is bounded by the minimum
    split duration.
    """

    def __init__(self, encoder: Encoder, settings: RateControlSettings, report: SessionReport,
                 temp_files: TempFileManager, optimizer: 'VideoOptimizer'):
        self.encoder = encoder
        self.settings = settings
        self.report = report
        self.temp_files = temp_files
        self.optimizer = optimizer

    def choose_cut_point(self, input_path: str, duration: float):
        """
        Nearest keyframe at or before the midpoint, or the midpoint itself.

        Returns:
            Tuple of (cut point in seconds, whether it came from a keyframe)
        """
        midpoint = duration / 2
        keyframe = self.encoder.nearest_keyframe_before(input_path, midpoint)
        if keyframe is not None and keyframe > self.settings.min_keyframe_offset:
            logger.info(f"[Split] Using keyframe at {keyframe:.3f}s (midpoint {midpoint:.3f}s)")
            return keyframe, True

        if keyframe is None:
            logger.warning(f"[Split] No keyframe found before {midpoint:.3f}s, cutting at midpoint")
        else:
            logger.warning(f"[Split] Keyframe at {keyframe:.3f}s is too close to the start, cutting at midpoint")
        return midpoint, False

    def plan_split(self, input_path: str, duration: float, base_name: str, parent_suffix: str) -> SplitPlan:
        cut_point, from_keyframe = self.choose_cut_point(input_path, duration)
        parts = []
        for index in (1, 2):
            suffix = make_part_suffix(parent_suffix, index)
            parts.append(SplitPart(path=self.temp_files.new_path(f"{base_name}{suffix}"), part_suffix=suffix))
        return SplitPlan(cut_point=cut_point, from_keyframe=from_keyframe, parts=tuple(parts))

    def _cut_parts(self, input_path: str, plan: SplitPlan) -> bool:
        first, second = plan.parts
        if not self.encoder.cut(input_path, 0.0, plan.cut_point, first.path):
            logger.error(f"[Split] Failed to cut first part of {input_path}")
            return False
        if not self.encoder.cut(input_path, plan.cut_point, None, second.path):
            logger.error(f"[Split] Failed to cut second part of {input_path}")
            return False

        for part in plan.parts:
            if self.encoder.file_size(part.path) <= 0:
                logger.error(f"[Split] Part {part.part_suffix} of {input_path} is empty")
                return False
        return True

    def split(self, input_path: str, base_name: str, parent_suffix: str, duration: float,
              original_size: int, rescue_attempted: bool) -> bool:
        """
        Split input_path in two and optimize both halves.

        Both halves are always processed; the parent is recorded after its
        children as Split when both succeed and Split Incomplete otherwise.

        Returns:
            True if every leaf under this node succeeded
        """
        name = display_name(input_path, base_name, parent_suffix)

        if duration < self.settings.split_min_duration:
            if not rescue_attempted:
                logger.info(f"[Split] {name} is too short to split ({duration:.1f}s), trying rescue instead")
                return self.optimizer.rescue_then_split(input_path, base_name, parent_suffix,
                                                        duration, original_size)
            logger.error(f"[Split] {name} is too short to split ({duration:.1f}s < "
                         f"{self.settings.split_min_duration}s) and rescue already failed")
            self.report.add(name, original_size, None, StatusKind.EXHAUSTED)
            return False

        plan = self.plan_split(input_path, duration, base_name, parent_suffix)
        part_paths: List[str] = [part.path for part in plan.parts]
        logger.info(f"[Split] Splitting {name} at {plan.cut_point:.3f}s")

        if not self._cut_parts(input_path, plan):
            self.report.add(name, original_size, None, StatusKind.SPLIT_FAILED)
            self.temp_files.discard(*part_paths)
            return False

        try:
            results = [
                self.optimizer.optimize(part.path, base_name=base_name, part_suffix=part.part_suffix)
                for part in plan.parts
            ]
        finally:
            self.temp_files.discard(*part_paths)

        success = all(results)
        status = StatusKind.SPLIT if success else StatusKind.SPLIT_INCOMPLETE
        self.report.add(name, original_size, None, status)
        if not success:
            logger.warning(f"[Split] {name}: {results.count(False)} of {len(results)} parts failed")
        return success
