"""
Error Handling Module
Categorizes per-file failures (recorded statuses and unexpected exceptions)
and produces the batch error analysis shown at the end of a run.
"""

import logging
import threading
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from .encoder import EncoderUnavailableError, ProbeError
from .models import SessionRecord, StatusKind

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of processing failures for reporting"""
    INPUT = "input"
    ENCODER = "encoder"
    CONVERGENCE = "convergence"
    SEGMENTATION = "segmentation"
    GENERAL = "general"


STATUS_CATEGORIES = {
    StatusKind.MISSING_INPUT: ErrorCategory.INPUT,
    StatusKind.EMPTY_INPUT: ErrorCategory.INPUT,
    StatusKind.PROBE_FAILED: ErrorCategory.INPUT,
    StatusKind.COPY_FAILED: ErrorCategory.GENERAL,
    StatusKind.ENCODE_FAILED: ErrorCategory.ENCODER,
    StatusKind.EXHAUSTED: ErrorCategory.CONVERGENCE,
    StatusKind.SPLIT_FAILED: ErrorCategory.SEGMENTATION,
    StatusKind.SPLIT_INCOMPLETE: ErrorCategory.SEGMENTATION,
}

# Failures that will fail the same way on a rerun with identical settings
NON_RETRYABLE_STATUSES = frozenset({
    StatusKind.MISSING_INPUT,
    StatusKind.EMPTY_INPUT,
    StatusKind.PROBE_FAILED,
})

CATEGORY_SUGGESTIONS = {
    ErrorCategory.INPUT: [
        "Check that the file exists and is a readable video",
        "Re-download or remux the source file",
    ],
    ErrorCategory.ENCODER: [
        "Check the FFmpeg installation and libx265 support",
        "Rerun with --no-cleanup and --debug to keep pass logs",
    ],
    ErrorCategory.CONVERGENCE: [
        "Raise the retry ceiling: --retries 5",
        "Lower the bitrate floors: --video-floor / --audio-floor",
    ],
    ErrorCategory.SEGMENTATION: [
        "Rerun with --no-cleanup to inspect the cut parts",
        "Check the source for broken keyframes",
    ],
    ErrorCategory.GENERAL: [
        "Check free disk space and output directory permissions",
        "Check logs for more details",
    ],
}


@dataclass
class ProcessingError:
    """Structured representation of one failure"""
    category: ErrorCategory
    message: str
    file_path: str
    severity: str  # 'warning', 'error', 'critical'
    suggestions: List[str] = field(default_factory=list)
    retryable: bool = True
    exception_type: Optional[str] = None
    context: Optional[str] = None

    def get_short_description(self) -> str:
        return f"{self.category.value}: {self.message}"

    def get_detailed_description(self) -> str:
        base = f"Error in {self.file_path}: {self.message}"
        if self.context:
            base += f" (Context: {self.context})"
        if self.suggestions:
            base += "\nSuggestions:\n" + "\n".join(f"  • {s}" for s in self.suggestions)
        return base


def categorize_status(status: StatusKind) -> Optional[ErrorCategory]:
    """Category of a failure status, None for success statuses"""
    if status.is_success:
        return None
    return STATUS_CATEGORIES.get(status, ErrorCategory.GENERAL)


class ErrorHandler:
    """Collects failures across a batch and summarizes them"""

    def __init__(self):
        self.error_counts = {category: 0 for category in ErrorCategory}
        self.processed_errors: List[ProcessingError] = []
        # handle_error runs on worker threads with -j
        self._lock = threading.Lock()

    def _track(self, error: ProcessingError) -> ProcessingError:
        with self._lock:
            self.processed_errors.append(error)
            self.error_counts[error.category] += 1
        return error

    def record_failure(self, record: SessionRecord) -> Optional[ProcessingError]:
        """Track a failed session record; success records are ignored"""
        category = categorize_status(record.status)
        if category is None:
            return None
        return self._track(ProcessingError(
            category=category,
            message=record.status.value,
            file_path=record.name,
            severity='error',
            suggestions=list(CATEGORY_SUGGESTIONS[category]),
            retryable=record.status not in NON_RETRYABLE_STATUSES,
        ))

    def categorize_error(self, exception: Exception, file_path: str,
                         context: str = None) -> ProcessingError:
        """Categorize an unexpected exception raised while processing a file"""
        if isinstance(exception, ProbeError):
            category, severity, retryable = ErrorCategory.INPUT, 'error', False
        elif isinstance(exception, EncoderUnavailableError):
            category, severity, retryable = ErrorCategory.ENCODER, 'critical', False
        elif isinstance(exception, (PermissionError, FileNotFoundError)):
            category, severity, retryable = ErrorCategory.INPUT, 'error', False
        else:
            message = str(exception).lower()
            if 'ffmpeg' in message or 'encoder' in message:
                category, severity, retryable = ErrorCategory.ENCODER, 'error', True
            else:
                category, severity, retryable = ErrorCategory.GENERAL, 'error', True

        return ProcessingError(
            category=category,
            message=str(exception) or type(exception).__name__,
            file_path=file_path,
            severity=severity,
            suggestions=list(CATEGORY_SUGGESTIONS[category]),
            retryable=retryable,
            exception_type=type(exception).__name__,
            context=context,
        )

    def handle_error(self, exception: Exception, file_path: str,
                     context: str = None, continue_processing: bool = True) -> ProcessingError:
        """Categorize, track and log an unexpected exception"""
        error = self._track(self.categorize_error(exception, file_path, context))

        if error.severity == 'critical':
            logger.error(f"CRITICAL ERROR: {error.get_short_description()}")
            logger.error(f"Details: {error.get_detailed_description()}")
        else:
            logger.error(f"ERROR: {error.get_short_description()}")
            logger.info(f"Suggestions: {'; '.join(error.suggestions[:2])}")

        if continue_processing:
            logger.info(f"Continuing batch processing despite {error.category.value} error")
        return error

    def get_error_summary(self) -> Dict[str, Any]:
        total_errors = len(self.processed_errors)
        if total_errors == 0:
            return {'total_errors': 0, 'categories': {}}

        category_counts = {cat.value: count for cat, count in self.error_counts.items() if count > 0}
        retryable_count = sum(1 for error in self.processed_errors if error.retryable)
        return {
            'total_errors': total_errors,
            'categories': category_counts,
            'most_common_category': max(category_counts.items(), key=lambda x: x[1])[0],
            'critical_errors': sum(1 for error in self.processed_errors if error.severity == 'critical'),
            'retryable_errors': retryable_count,
            'non_retryable_errors': total_errors - retryable_count,
        }

    def get_top_failures(self, limit: int = 3) -> List[Dict[str, Any]]:
        """Ranked failure categories with the latest message of each"""
        if limit <= 0 or not self.processed_errors:
            return []
        sample_messages: Dict[str, str] = {}
        for error in self.processed_errors:
            sample_messages[error.category.value] = error.message
        ranked = sorted(
            ((cat.value, count) for cat, count in self.error_counts.items() if count > 0),
            key=lambda item: item[1],
            reverse=True,
        )[:limit]
        return [
            {'category': category, 'count': count, 'sample_message': sample_messages[category]}
            for category, count in ranked
        ]

    def log_batch_summary(self, total_files: int, successful_files: int):
        """Log the batch error analysis with recommended actions"""
        failed_files = total_files - successful_files
        success_rate = (successful_files / total_files * 100) if total_files > 0 else 0

        logger.info("=== BATCH PROCESSING ERROR ANALYSIS ===")
        logger.info(f"Total: {total_files}, Successful: {successful_files}, Failed: {failed_files}")
        logger.info(f"Success rate: {success_rate:.1f}%")

        if not self.processed_errors:
            logger.info("No errors encountered")
            return

        logger.error("Error breakdown by category:")
        for category, count in self.error_counts.items():
            if count > 0:
                logger.error(f"  • {category.value}: {count}")

        logger.info("=== RECOMMENDED ACTIONS ===")
        for category, count in self.error_counts.items():
            if count == 0:
                continue
            logger.info(f"For {count} {category.value} failures:")
            for suggestion in CATEGORY_SUGGESTIONS[category]:
                logger.info(f"  • {suggestion}")

        if successful_files == 0:
            logger.error("Batch processing failed completely - check system configuration")

    def reset(self):
        """Reset error tracking for a new batch"""
        with self._lock:
            self.error_counts = {category: 0 for category in ErrorCategory}
            self.processed_errors.clear()
