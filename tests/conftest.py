"""Shared fixtures: an in-process encoder that models output sizes with sparse files."""

import os
from typing import Callable, Dict, List, Optional

import pytest

from shrinkwrap.config_manager import RateControlSettings
from shrinkwrap.encoder import Encoder, ProbeError
from shrinkwrap.models import EncodeJob, EncodeOutcome
from shrinkwrap.session_report import SessionReport
from shrinkwrap.size_model import BYTES_PER_MB
from shrinkwrap.temp_file_manager import TempFileManager


def write_sparse(path, size_bytes: int):
    os.makedirs(os.path.dirname(os.path.abspath(str(path))), exist_ok=True)
    with open(path, 'wb') as handle:
        handle.truncate(int(size_bytes))


class FakeEncoder(Encoder):
    """
    Encoder double.

    Bitrate encodes produce (video + audio) kbps * duration bytes scaled by
    compressibility; constant-quality encodes produce cq_size_bytes. Cuts
    split the source size and duration proportionally.
    """

    def __init__(self, compressibility: float = 1.0, cq_size_bytes: Optional[int] = None,
                 fail_when: Optional[Callable[[EncodeJob], bool]] = None,
                 keyframe_for: Optional[Callable[[str, float], Optional[float]]] = None,
                 fail_cut: bool = False):
        self.compressibility = compressibility
        self.cq_size_bytes = cq_size_bytes
        self.fail_when = fail_when or (lambda job: False)
        self.keyframe_for = keyframe_for or (lambda path, time_seconds: None)
        self.fail_cut = fail_cut
        self.durations: Dict[str, float] = {}
        self.jobs: List[EncodeJob] = []
        self.cuts: List[tuple] = []

    def add_video(self, path, size_bytes: int, duration: Optional[float]) -> str:
        write_sparse(path, size_bytes)
        if duration is not None:
            self.durations[str(path)] = duration
        return str(path)

    @property
    def final_jobs(self) -> List[EncodeJob]:
        """Jobs that produce a file (pass 2 and single-pass)"""
        return [job for job in self.jobs if job.pass_number != 1]

    def probe(self, path: str) -> float:
        if path not in self.durations:
            raise ProbeError(f"no duration for {path}")
        return self.durations[path]

    def encode(self, job: EncodeJob) -> EncodeOutcome:
        self.jobs.append(job)
        if self.fail_when(job):
            return EncodeOutcome(exit_status=1, error_detail="simulated failure")
        if job.pass_number == 1:
            return EncodeOutcome(exit_status=0)

        if job.video.is_constant_quality:
            size = self.cq_size_bytes if self.cq_size_bytes is not None else BYTES_PER_MB
        else:
            duration = self.durations[job.input_path]
            kbps = job.video.bitrate_kbps + job.audio.bitrate_kbps
            size = int(kbps * 1000 * duration / 8 * self.compressibility)
        write_sparse(job.output_path, size)
        return EncodeOutcome(exit_status=0, size_bytes=size)

    def nearest_keyframe_before(self, path: str, time_seconds: float) -> Optional[float]:
        return self.keyframe_for(path, time_seconds)

    def cut(self, path: str, start_seconds: float, end_seconds: Optional[float],
            output_path: str) -> bool:
        self.cuts.append((path, start_seconds, end_seconds, output_path))
        if self.fail_cut:
            return False
        total = self.durations[path]
        end = total if end_seconds is None else end_seconds
        part_duration = end - start_seconds
        write_sparse(output_path, int(self.file_size(path) * part_duration / total))
        self.durations[output_path] = part_duration
        return True


@pytest.fixture
def settings():
    return RateControlSettings()


@pytest.fixture
def report():
    return SessionReport()


@pytest.fixture
def temp_files(tmp_path):
    return TempFileManager(tmp_path / "tmp")


@pytest.fixture
def output_dir(tmp_path):
    path = tmp_path / "optimized"
    path.mkdir()
    return str(path)


@pytest.fixture
def fake_encoder():
    return FakeEncoder()
