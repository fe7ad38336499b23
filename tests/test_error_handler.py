import threading

from shrinkwrap.encoder import EncoderUnavailableError, ProbeError
from shrinkwrap.error_handler import ErrorCategory, ErrorHandler, categorize_status
from shrinkwrap.models import SessionRecord, StatusKind


def _record(status, name="clip.mp4"):
    return SessionRecord(name=name, original_size=10, final_size=None, reduction_percent=None, status=status)


def test_status_categories():
    assert categorize_status(StatusKind.OPTIMIZED) is None
    assert categorize_status(StatusKind.SPLIT) is None
    assert categorize_status(StatusKind.MISSING_INPUT) is ErrorCategory.INPUT
    assert categorize_status(StatusKind.PROBE_FAILED) is ErrorCategory.INPUT
    assert categorize_status(StatusKind.ENCODE_FAILED) is ErrorCategory.ENCODER
    assert categorize_status(StatusKind.EXHAUSTED) is ErrorCategory.CONVERGENCE
    assert categorize_status(StatusKind.SPLIT_FAILED) is ErrorCategory.SEGMENTATION
    assert categorize_status(StatusKind.COPY_FAILED) is ErrorCategory.GENERAL


def test_record_failure_ignores_successes():
    handler = ErrorHandler()

    assert handler.record_failure(_record(StatusKind.COPIED)) is None
    assert handler.get_error_summary() == {'total_errors': 0, 'categories': {}}


def test_summary_tracks_retryable_failures():
    handler = ErrorHandler()
    handler.record_failure(_record(StatusKind.MISSING_INPUT, "a.mp4"))
    handler.record_failure(_record(StatusKind.EXHAUSTED, "b.mp4"))
    handler.record_failure(_record(StatusKind.EXHAUSTED, "c.mp4"))

    summary = handler.get_error_summary()
    assert summary['total_errors'] == 3
    assert summary['categories'] == {'input': 1, 'convergence': 2}
    assert summary['most_common_category'] == 'convergence'
    assert summary['retryable_errors'] == 2
    assert summary['non_retryable_errors'] == 1


def test_exceptions_are_categorized():
    handler = ErrorHandler()

    probe = handler.handle_error(ProbeError("bad header"), "a.mp4", continue_processing=False)
    missing = handler.handle_error(EncoderUnavailableError("ffmpeg missing"), "b.mp4", continue_processing=False)
    other = handler.handle_error(RuntimeError("disk full"), "c.mp4")

    assert probe.category is ErrorCategory.INPUT and not probe.retryable
    assert missing.category is ErrorCategory.ENCODER and missing.severity == 'critical'
    assert other.category is ErrorCategory.GENERAL and other.retryable
    assert other.exception_type == 'RuntimeError'
    assert "Suggestions" in other.get_detailed_description()


def test_top_failures_are_ranked_with_latest_message():
    handler = ErrorHandler()
    handler.record_failure(_record(StatusKind.SPLIT_FAILED, "a.mp4"))
    handler.handle_error(RuntimeError("first"), "b.mp4", continue_processing=False)
    handler.handle_error(RuntimeError("second"), "c.mp4", continue_processing=False)

    top = handler.get_top_failures(limit=1)
    assert top == [{'category': 'general', 'count': 2, 'sample_message': 'second'}]
    assert handler.get_top_failures(limit=0) == []


def test_reset_clears_state():
    handler = ErrorHandler()
    handler.record_failure(_record(StatusKind.ENCODE_FAILED))
    handler.reset()

    assert handler.processed_errors == []
    assert all(count == 0 for count in handler.error_counts.values())


def test_log_batch_summary_with_failures_does_not_raise(caplog):
    handler = ErrorHandler()
    handler.record_failure(_record(StatusKind.ENCODE_FAILED))
    handler.log_batch_summary(total_files=2, successful_files=1)

    assert "encoder" in caplog.text


def test_concurrent_errors_are_all_counted():
    handler = ErrorHandler()

    def worker(index):
        for n in range(50):
            handler.handle_error(RuntimeError("ffmpeg crashed"), f"{index}_{n}.mp4")

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(handler.processed_errors) == 200
    assert handler.error_counts[ErrorCategory.ENCODER] == 200
