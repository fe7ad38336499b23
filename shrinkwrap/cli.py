"""
Command Line Interface for shrinkwrap
Argument parsing, configuration bootstrap and batch execution
"""

import argparse
import os
import sys
import traceback
from typing import Any, Dict, List, Optional

from .batch_processor import BatchProcessor, collect_inputs
from .config_manager import ConfigManager, ConfigurationError
from .encoder import EncoderUnavailableError
from .ffmpeg_utils import check_dependencies
from .logger_setup import get_package_base_dir, setup_logging

logger = None  # Will be initialized after logging setup

EXIT_OK = 0
EXIT_SETUP_ERROR = 1


class ShrinkwrapCLI:
    def __init__(self):
        self.config: Optional[ConfigManager] = None
        self.processor: Optional[BatchProcessor] = None

    def main(self, argv: Optional[List[str]] = None) -> int:
        """Main entry point; returns the process exit status"""
        global logger
        args = self._parse_arguments(argv)

        effective_level = 'DEBUG' if args.debug else args.log_level
        logger = setup_logging(config_path=self._logging_config_path(args.config_dir),
                               log_level=effective_level)

        try:
            self._initialize_components(args)
            check_dependencies(self.config.get('shrinkwrap.encoder.ffmpeg_path', 'ffmpeg'),
                               self.config.get('shrinkwrap.encoder.ffprobe_path', 'ffprobe'))
        except (ConfigurationError, EncoderUnavailableError) as e:
            logger.error(str(e))
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_SETUP_ERROR

        try:
            files = collect_inputs(args.files)
            self.processor.run(files)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return EXIT_SETUP_ERROR
        except Exception as e:
            logger.error(f"Unexpected error: {e}")
            logger.debug(traceback.format_exc())
            return EXIT_SETUP_ERROR
        return EXIT_OK

    @staticmethod
    def _logging_config_path(config_dir: str) -> Optional[str]:
        candidate = os.path.join(config_dir, 'logging.yaml')
        return candidate if os.path.exists(candidate) else None

    def _parse_arguments(self, argv: Optional[List[str]] = None) -> argparse.Namespace:
        parser = argparse.ArgumentParser(
            prog='shrinkwrap',
            description="Fit videos under a target file size with adaptive bitrate, "
                        "downscale, constant-quality and splitting fallbacks",
            epilog="Examples:\n"
                   "  %(prog)s                       # every *.mp4 in the current directory\n"
                   "  %(prog)s clip.mp4 -t 7.8\n"
                   "  %(prog)s \"videos/*.mp4\" -o out/ -j 2\n",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('files', nargs='*', help='Input files, directories or glob patterns (default: *.mp4)')
        parser.add_argument('-p', '--preset', help='Encoder preset (default: slow)')
        parser.add_argument('-t', '--target-size', type=float, metavar='MB',
                            help='Target size in MB used by rescue tiers, at most the ceiling (default: 9.8)')
        parser.add_argument('--max-size', type=float, metavar='MB',
                            help='Size ceiling in MB; smaller inputs are copied as-is (default: 10.0)')
        parser.add_argument('-v', '--video-floor', type=int, metavar='KBPS',
                            help='Minimum video bitrate (default: 500)')
        parser.add_argument('-a', '--audio-floor', type=int, metavar='KBPS',
                            help='Minimum audio bitrate (default: 64)')
        parser.add_argument('-r', '--retries', type=int, metavar='N',
                            help='Attempts per tier (default: 3)')
        parser.add_argument('-n', '--no-cleanup', action='store_true',
                            help='Keep temporary segments and pass logs')
        parser.add_argument('-o', '--output-dir', help='Output directory (default: ./optimized)')
        parser.add_argument('-s', '--summary-file', help='Summary file name (default: optimization_summary.txt)')
        parser.add_argument('-j', '--jobs', type=int, metavar='N',
                            help='Files processed in parallel (default: 1)')

        default_config_dir = os.path.join(get_package_base_dir(), 'config')
        parser.add_argument('--config-dir', default=default_config_dir,
                            help='Configuration directory (default: packaged defaults)')
        parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            default=None, help='Override logging level (default: WARNING to console, DEBUG to file)')
        parser.add_argument('--debug', action='store_true',
                            help='Enable verbose debug output in console and logs')
        return parser.parse_args(argv)

    def _extract_config_overrides(self, args: argparse.Namespace) -> Dict[str, Any]:
        overrides = {
            'shrinkwrap.encoder.preset': args.preset,
            'shrinkwrap.target_size_mb': args.target_size,
            'shrinkwrap.max_size_mb': args.max_size,
            'shrinkwrap.bitrate.video_floor_kbps': args.video_floor,
            'shrinkwrap.bitrate.audio_floor_kbps': args.audio_floor,
            'shrinkwrap.max_retries': args.retries,
            'shrinkwrap.output_dir': args.output_dir,
            'shrinkwrap.summary_file': args.summary_file,
            'shrinkwrap.parallel_jobs': args.jobs,
        }
        if args.no_cleanup:
            overrides['shrinkwrap.cleanup'] = False
        return {key: value for key, value in overrides.items() if value is not None}

    def _initialize_components(self, args: argparse.Namespace):
        self.config = ConfigManager(args.config_dir)
        overrides = self._extract_config_overrides(args)
        if overrides:
            self.config.update_from_args(overrides)
            logger.debug(f"Applied CLI config overrides: {overrides}")

        if not self.config.validate_config():
            raise ConfigurationError("Invalid configuration, see log for details")

        self.processor = BatchProcessor(self.config)


def main(argv: Optional[List[str]] = None):
    sys.exit(ShrinkwrapCLI().main(argv))


if __name__ == '__main__':
    main()
