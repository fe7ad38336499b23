"""
Encoder Capability
The boundary between the rate-control engine and whatever actually encodes video
"""

import os
import uuid
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

from .models import EncodeJob, EncodeOutcome

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """Raised when a file's duration cannot be read"""


class EncoderUnavailableError(Exception):
    """Raised when the encoder binaries cannot be found"""


class Encoder(ABC):
    """Operations the optimizer needs from an encoder backend"""

    @abstractmethod
    def probe(self, path: str) -> float:
        """Return the duration in seconds, raising ProbeError when unreadable"""

    @abstractmethod
    def encode(self, job: EncodeJob) -> EncodeOutcome:
        """Run one encoder invocation described by job"""

    @abstractmethod
    def nearest_keyframe_before(self, path: str, time_seconds: float) -> Optional[float]:
        """Timestamp of the last keyframe at or before time_seconds, or None"""

    @abstractmethod
    def cut(self, path: str, start_seconds: float, end_seconds: Optional[float],
            output_path: str) -> bool:
        """Losslessly copy [start, end) of path into output_path; end=None means to the end"""

    def file_size(self, path: str) -> int:
        """Size in bytes, 0 for missing or unreadable files"""
        try:
            return os.path.getsize(path)
        except OSError:
            return 0


def run_two_pass(encoder: Encoder, job: EncodeJob) -> EncodeOutcome:
    """
    Issue pass 1 then pass 2 of a bitrate-targeted encode.

    Both passes share a fresh stats_key; pass 2 only runs when pass 1 succeeded.
    """
    stats_key = job.stats_key or uuid.uuid4().hex
    first = replace(job, pass_number=1, stats_key=stats_key)
    outcome = encoder.encode(first)
    if outcome.exit_status != 0:
        logger.debug(f"Pass 1 failed for {job.input_path}: {outcome.error_detail}")
        return outcome

    second = replace(job, pass_number=2, stats_key=stats_key)
    return encoder.encode(second)
