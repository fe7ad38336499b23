"""shrinkwrap package root.

Fits videos under a target file size by driving ffmpeg through bitrate
retries, downscaling, a constant-quality rescue and temporal splitting.
"""

__version__ = "1.0.0"

from .cli import main as cli_main  # noqa: F401
from .video_optimizer import VideoOptimizer  # noqa: F401
from .session_report import SessionReport  # noqa: F401
