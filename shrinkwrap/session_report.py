"""
Session Report
Append-only record of per-file outcomes and the summary table written at the end of a run
"""

from __future__ import annotations

import os
import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .models import SessionRecord, StatusKind
from .size_model import bytes_to_mb

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
NAME_WIDTH = 40
COLUMN_FORMAT = "{:<40} {:<12} {:<12} {:<12} {:<15}"


def reduction_percent(original_size: Optional[int], final_size: Optional[int]) -> Optional[float]:
    """Percent saved, or None when the sizes cannot be compared"""
    if original_size is None or final_size is None or original_size <= 0:
        return None
    return (original_size - final_size) / original_size * 100.0


class SessionReport:
    """
    Ordered, append-only list of SessionRecords.

    One instance is owned by the batch driver and handed to every optimizer
    call, including recursive split calls. Appends are serialized so parallel
    workers can share it.
    """

    def __init__(self):
        self._records: List[SessionRecord] = []
        self._lock = threading.Lock()

    def add(self, name: str, original_size: Optional[int], final_size: Optional[int],
            status: StatusKind) -> SessionRecord:
        record = SessionRecord(
            name=name,
            original_size=original_size,
            final_size=final_size,
            reduction_percent=reduction_percent(original_size, final_size),
            status=status,
        )
        with self._lock:
            self._records.append(record)
        log = logger.info if status.is_success else logger.warning
        log(f"Recorded {name}: {status.value}")
        return record

    @property
    def records(self) -> List[SessionRecord]:
        with self._lock:
            return list(self._records)

    def __iter__(self) -> Iterator[SessionRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def find(self, name: str) -> Optional[SessionRecord]:
        for record in self.records:
            if record.name == name:
                return record
        return None

    def counts(self) -> Dict[str, int]:
        records = self.records
        successful = sum(1 for r in records if r.status.is_success)
        return {
            'processed': len(records),
            'successful': successful,
            'failed': len(records) - successful,
        }

    @staticmethod
    def _format_size(size_bytes: Optional[int]) -> str:
        if size_bytes is None:
            return NOT_AVAILABLE
        return f"{bytes_to_mb(size_bytes):.3f}"

    @staticmethod
    def _format_reduction(value: Optional[float]) -> str:
        if value is None:
            return NOT_AVAILABLE
        return f"{value:.2f}"

    def render_table(self) -> str:
        lines = [
            COLUMN_FORMAT.format("File", "Orig Size", "Final Size", "Reduction %", "Status"),
            "-" * 85,
        ]
        for record in self.records:
            lines.append(COLUMN_FORMAT.format(
                record.name[:NAME_WIDTH],
                self._format_size(record.original_size),
                self._format_size(record.final_size),
                self._format_reduction(record.reduction_percent),
                record.status.value,
            ))
        return "\n".join(lines) + "\n"

    def write_summary(self, summary_path: Union[str, Path]) -> Path:
        """Write the summary table, replacing any previous file atomically"""
        path = Path(summary_path)
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f"{path.name}.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as handle:
                handle.write(self.render_table())
            os.replace(temp_path, path)
        except OSError:
            logger.exception("Failed to write session summary to %s", path)
            if temp_path.exists():
                temp_path.unlink()
            raise
        logger.info(f"Summary written to {path}")
        return path
