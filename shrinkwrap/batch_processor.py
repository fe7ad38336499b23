"""
Batch Processor
Discovers input files, runs the optimizer on each (sequentially or on worker
threads), writes the session summary and prints the console report.
"""

import os
import glob
import time
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config_manager import ConfigManager
from .encoder import Encoder
from .error_handler import ErrorHandler
from .ffmpeg_utils import FFmpegEncoder
from .models import StatusKind
from .session_report import SessionReport
from .temp_file_manager import TempFileManager
from .utils.naming import base_name_for, display_name, is_optimized_artifact
from .video_optimizer import VideoOptimizer

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = '*.mp4'

EncoderFactory = Callable[[str, bool], Encoder]


def default_encoder_factory(config: ConfigManager) -> EncoderFactory:
    """FFmpegEncoder per job, sharing the encoder section of the config"""
    def factory(temp_dir: str, show_progress: bool) -> Encoder:
        settings = dict(config.get('shrinkwrap.encoder', {}) or {})
        settings['show_progress'] = bool(settings.get('show_progress', True)) and show_progress
        encoder = FFmpegEncoder(settings, temp_dir=temp_dir)
        encoder.keep_pass_logs = not config.get('shrinkwrap.cleanup', True)
        return encoder
    return factory


def collect_inputs(paths: Optional[Iterable[str]] = None, cwd: Optional[str] = None) -> List[str]:
    """
    Expand CLI arguments into the list of files to process.

    No arguments means every *.mp4 in the working directory. Directories
    expand to their *.mp4 files and glob patterns are expanded. Files this
    tool produced are skipped. Paths that do not exist are kept so they are
    reported as missing.
    """
    cwd = cwd or os.getcwd()
    if not paths:
        paths = [os.path.join(cwd, DEFAULT_PATTERN)]

    collected: List[str] = []
    for entry in paths:
        if os.path.isdir(entry):
            matches = sorted(glob.glob(os.path.join(entry, DEFAULT_PATTERN)))
        elif any(char in entry for char in '*?['):
            matches = sorted(glob.glob(entry))
        else:
            matches = [entry]

        for match in matches:
            if is_optimized_artifact(match):
                logger.info(f"Skipping already optimized file: {match}")
                continue
            if match not in collected:
                collected.append(match)
    return collected


class BatchProcessor:
    """Runs the optimizer over a batch of files and reports the session"""

    def __init__(self, config: ConfigManager, encoder_factory: Optional[EncoderFactory] = None):
        self.config = config
        self.settings = config.get_rate_control_settings()
        self.output_dir = config.get_output_dir()
        self.temp_root = config.get_temp_dir()
        self.cleanup = bool(config.get('shrinkwrap.cleanup', True))
        self.jobs = max(1, int(config.get('shrinkwrap.parallel_jobs', 1) or 1))
        self.summary_file = str(config.get('shrinkwrap.summary_file', 'optimization_summary.txt'))
        self.encoder_factory = encoder_factory or default_encoder_factory(config)

        self.report = SessionReport()
        self.error_handler = ErrorHandler()
        self._failed_with_exception = set()

    @property
    def summary_path(self) -> str:
        return os.path.join(self.output_dir, self.summary_file)

    def _process_one(self, input_path: str, job_index: int) -> bool:
        temp_files = TempFileManager(self.temp_root, job_index=job_index, keep_files=not self.cleanup)
        encoder = self.encoder_factory(str(temp_files.directory), self.jobs == 1)
        optimizer = VideoOptimizer(encoder, self.settings, self.report, self.output_dir, temp_files)
        try:
            return optimizer.optimize(input_path)
        except Exception as e:
            # One broken file must not stop the batch
            self.error_handler.handle_error(e, input_path, context="optimize")
            name = display_name(input_path, base_name_for(input_path))
            self._failed_with_exception.add(name)
            self.report.add(name, None, None, StatusKind.ENCODE_FAILED)
            return False
        finally:
            temp_files.cleanup()

    def run(self, files: List[str]) -> Dict[str, Any]:
        """
        Process every file and write the summary.

        Returns:
            Dictionary with processed/successful/failed record counts,
            the number of inputs and the summary path
        """
        start_time = time.time()
        os.makedirs(self.output_dir, exist_ok=True)

        if not files:
            logger.warning("No input files found")
        else:
            logger.info(f"Processing {len(files)} file(s) with {self.jobs} job(s)")

        if self.jobs > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=self.jobs) as executor:
                futures = {
                    executor.submit(self._process_one, path, index): path
                    for index, path in enumerate(files)
                }
                for future in as_completed(futures):
                    logger.debug(f"Finished {futures[future]}: {future.result()}")
        else:
            for index, path in enumerate(files):
                self._process_one(path, index)

        for record in self.report:
            if record.name not in self._failed_with_exception:
                self.error_handler.record_failure(record)

        summary_path = self.report.write_summary(self.summary_path)
        counts = self.report.counts()
        self.error_handler.log_batch_summary(counts['processed'], counts['successful'])
        self._print_summary(len(files), counts, time.time() - start_time, summary_path)

        stats = dict(counts)
        stats['inputs'] = len(files)
        stats['summary_path'] = str(summary_path)
        return stats

    def _print_summary(self, input_count: int, counts: Dict[str, int], elapsed: float, summary_path):
        print(f"\n{'='*60}")
        print(f"🎬 Optimization Complete!")
        print(f"⏱️  Total time: {elapsed:.1f} seconds")
        print(f"📁 Inputs: {input_count}")
        print(f"🧾 Records: {counts['processed']}")
        print(f"✅ Successful: {counts['successful']}")
        print(f"❌ Failed: {counts['failed']}")

        top_failures = self.error_handler.get_top_failures()
        if top_failures:
            print(f"\n⚠️  Top failures:")
            for failure in top_failures:
                print(f"   • {failure['category']}: {failure['count']} ({failure['sample_message']})")

        print(f"\n📄 Summary: {summary_path}")
        print(f"📂 Output: {self.output_dir}")
        print(f"{'='*60}")
