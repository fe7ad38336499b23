"""
FFmpeg Utilities Module
FFmpeg/FFprobe backed implementation of the Encoder capability
Builds encode commands, runs them with progress tracking and probes media
"""

import os
import json
import glob
import shutil
import subprocess
import threading
import logging
from typing import Dict, Any, List, Optional

from tqdm import tqdm

from .encoder import Encoder, EncoderUnavailableError, ProbeError
from .models import EncodeJob, EncodeOutcome

logger = logging.getLogger(__name__)

# Trailing part of stderr kept in EncodeOutcome.error_detail
ERROR_DETAIL_CHARS = 500


def check_dependencies(ffmpeg_path: str = 'ffmpeg', ffprobe_path: str = 'ffprobe'):
    """Verify the runtime environment has the encoder binaries"""
    for cmd in (ffmpeg_path, ffprobe_path):
        if shutil.which(cmd) is None:
            raise EncoderUnavailableError(f"Dependency missing: {cmd}. Install it.")


def parse_time_to_seconds(time_str: str) -> Optional[float]:
    """Parse FFmpeg's HH:MM:SS.ms progress timestamps"""
    parts = time_str.split(':')
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = float(parts[0]), float(parts[1]), float(parts[2])
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


class FFmpegEncoder(Encoder):
    """Encoder backed by the ffmpeg and ffprobe command line tools"""

    def __init__(self, settings: Optional[Dict[str, Any]] = None, temp_dir: Optional[str] = None):
        settings = settings or {}
        self.ffmpeg = settings.get('ffmpeg_path', 'ffmpeg')
        self.ffprobe = settings.get('ffprobe_path', 'ffprobe')
        self.video_codec = settings.get('video_codec', 'libx265')
        self.audio_codec = settings.get('audio_codec', 'aac')
        self.audio_channels = int(settings.get('audio_channels', 2))
        self.timeout = settings.get('timeout_seconds')
        self.show_progress = bool(settings.get('show_progress', True))
        self.temp_dir = temp_dir or os.path.join(os.getcwd(), '.shrinkwrap_tmp')
        self.keep_pass_logs = False
        self._durations: Dict[str, Optional[float]] = {}

    # ===== Probing =====

    def probe(self, path: str) -> float:
        cmd = [self.ffprobe, '-v', 'error', '-show_entries', 'format=duration',
               '-of', 'default=noprint_wrappers=1:nokey=1', path]
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=30
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProbeError(f"ffprobe could not run on {path}: {e}") from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed for {path}: {result.stderr.strip()[-ERROR_DETAIL_CHARS:]}")

        duration_str = result.stdout.strip()
        try:
            duration = float(duration_str)
        except ValueError:
            raise ProbeError(f"Invalid duration returned for {path}: {duration_str!r}") from None
        if duration <= 0:
            raise ProbeError(f"Non-positive duration for {path}: {duration}")
        self._durations[path] = duration
        return duration

    def nearest_keyframe_before(self, path: str, time_seconds: float) -> Optional[float]:
        """Scan video packets up to just past time_seconds and return the last keyframe at or before it"""
        cmd = [self.ffprobe, '-v', 'error', '-select_streams', 'v:0',
               '-read_intervals', f"%+{time_seconds + 1.0:.3f}",
               '-show_entries', 'packet=pts_time,flags', '-of', 'json', path]
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=120
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Keyframe search failed for {path}: {e}")
            return None

        if result.returncode != 0:
            logger.warning(f"Keyframe search failed for {path}: {result.stderr.strip()[:200]}")
            return None

        try:
            packets = json.loads(result.stdout or '{}').get('packets', [])
        except json.JSONDecodeError:
            logger.warning(f"Unparseable keyframe data for {path}")
            return None

        best = None
        for packet in packets:
            if 'K' not in packet.get('flags', ''):
                continue
            try:
                pts = float(packet.get('pts_time'))
            except (TypeError, ValueError):
                continue
            if pts <= time_seconds and (best is None or pts > best):
                best = pts
        return best

    # ===== Command building =====

    def _scale_filter(self, max_width: int) -> str:
        return f"scale='min({max_width},iw)':-2"

    def _pass_log_base(self, stats_key: str) -> str:
        return os.path.join(self.temp_dir, f"ffmpeg2pass_{stats_key}")

    def _two_pass_args(self, pass_number: int, log_base: str) -> List[str]:
        if self.video_codec == 'libx265':
            return ['-x265-params', f"pass={pass_number}:stats={log_base}.log"]
        return ['-pass', str(pass_number), '-passlogfile', log_base]

    def _audio_args(self, job: EncodeJob) -> List[str]:
        if job.audio.copy:
            args = ['-c:a', 'copy']
        else:
            args = ['-c:a', self.audio_codec, '-b:a', f"{job.audio.bitrate_kbps}k",
                    '-ac', str(self.audio_channels)]
        if job.audio.normalize and not job.audio.copy:
            args.extend(['-af', 'loudnorm=I=-16:TP=-1.5:LRA=11'])
        return args

    def build_command(self, job: EncodeJob) -> List[str]:
        """Build the ffmpeg command line for one pass (or a single-pass encode)"""
        cmd = [self.ffmpeg, '-y', '-i', job.input_path, '-c:v', self.video_codec]

        if job.video.is_constant_quality:
            cmd.extend(['-crf', str(job.video.quality)])
        else:
            cmd.extend(['-b:v', f"{job.video.bitrate_kbps}k"])

        cmd.extend(['-preset', job.preset])

        if job.pass_number is not None:
            cmd.extend(self._two_pass_args(job.pass_number, self._pass_log_base(job.stats_key)))

        cmd.extend(['-vf', self._scale_filter(job.max_width)])

        if job.pass_number == 1:
            # Analysis pass: video only, discard output
            cmd.extend(['-an', '-f', 'null', os.devnull])
            return cmd

        cmd.extend(self._audio_args(job))
        cmd.extend(['-map_metadata', '0', '-movflags', '+faststart', job.output_path])
        return cmd

    # ===== Execution =====

    def encode(self, job: EncodeJob) -> EncodeOutcome:
        if job.pass_number is not None:
            os.makedirs(self.temp_dir, exist_ok=True)
        cmd = self.build_command(job)
        description = {1: "Analyzing", 2: "Encoding"}.get(job.pass_number, "Encoding (CQ)")

        duration = self._progress_duration(job.input_path) if self.show_progress else None
        returncode, stderr_tail = self.execute_with_progress(cmd, duration, description)

        if job.pass_number == 2 and not self.keep_pass_logs:
            self.cleanup_pass_logs(job.stats_key)

        if returncode != 0:
            return EncodeOutcome(exit_status=returncode, size_bytes=0, error_detail=stderr_tail)
        if job.pass_number == 1:
            return EncodeOutcome(exit_status=0)
        return EncodeOutcome(exit_status=0, size_bytes=self.file_size(job.output_path))

    def _progress_duration(self, path: str) -> Optional[float]:
        # probe() caches, so each input is probed at most once
        if path in self._durations:
            return self._durations[path]
        try:
            return self.probe(path)
        except ProbeError:
            self._durations[path] = None
            return None

    def execute_with_progress(self, cmd: List[str], duration: Optional[float] = None,
                              description: str = "Processing"):
        """
        Execute an FFmpeg command, showing a tqdm bar when the duration is known

        Returns:
            Tuple of (return code, last part of stderr)
        """
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")
        stderr_lines: List[str] = []
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                encoding='utf-8',
                errors='replace'
            )
        except OSError as e:
            logger.error(f"FFmpeg execution failed: {e}")
            return 127, str(e)

        progress_bar = None
        if duration and duration > 5:
            progress_bar = tqdm(total=100, desc=description, unit="%", leave=False)

        timed_out = threading.Event()
        watchdog = None
        if self.timeout:
            def _kill():
                timed_out.set()
                process.kill()
            watchdog = threading.Timer(float(self.timeout), _kill)
            watchdog.daemon = True
            watchdog.start()

        try:
            for line in process.stderr:
                stderr_lines.append(line)
                if len(stderr_lines) > 50:
                    stderr_lines.pop(0)
                if progress_bar is not None and 'time=' in line:
                    current = parse_time_to_seconds(line.split('time=')[1].split()[0])
                    if current is not None:
                        progress_bar.n = min(int(current / duration * 100), 100)
                        progress_bar.refresh()
            process.wait()
        finally:
            if watchdog is not None:
                watchdog.cancel()
            if progress_bar is not None:
                progress_bar.close()

        if timed_out.is_set():
            logger.error(f"FFmpeg command timed out after {self.timeout}s")
            return -1, "timed out"

        stderr_tail = ''.join(stderr_lines)[-ERROR_DETAIL_CHARS:]
        if process.returncode != 0:
            logger.debug(f"FFmpeg exited with {process.returncode}: {stderr_tail}")
        return process.returncode, stderr_tail

    def cleanup_pass_logs(self, stats_key: Optional[str]):
        """Remove every statistics file written for stats_key"""
        if not stats_key:
            return
        for log_path in glob.glob(f"{self._pass_log_base(stats_key)}*"):
            try:
                os.remove(log_path)
            except OSError as e:
                logger.debug(f"Could not remove {log_path}: {e}")

    def cut(self, path: str, start_seconds: float, end_seconds: Optional[float],
            output_path: str) -> bool:
        cmd = [self.ffmpeg, '-y', '-i', path]
        if start_seconds > 0:
            cmd.extend(['-ss', f"{start_seconds:.3f}"])
        if end_seconds is not None:
            cmd.extend(['-t', f"{end_seconds - start_seconds:.3f}"])
        cmd.extend(['-c', 'copy', '-avoid_negative_ts', '1', output_path])

        logger.debug(f"FFmpeg cut command: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=self.timeout or 600
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f"Failed to cut segment from {path}: {e}")
            return False

        if result.returncode != 0:
            logger.error(f"Failed to cut segment from {path}: {result.stderr.strip()[-ERROR_DETAIL_CHARS:]}")
            return False
        return True
