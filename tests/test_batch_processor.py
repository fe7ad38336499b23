import contextlib
import io
import os

import pytest

from conftest import FakeEncoder
from shrinkwrap.batch_processor import BatchProcessor, collect_inputs
from shrinkwrap.config_manager import ConfigManager
from shrinkwrap.models import StatusKind
from shrinkwrap.size_model import BYTES_PER_MB


@pytest.fixture
def config(tmp_path):
    config = ConfigManager(str(tmp_path / "no_config"))
    config.update_from_args({
        'shrinkwrap.output_dir': str(tmp_path / "optimized"),
        'shrinkwrap.temp_dir': str(tmp_path / "tmp"),
    })
    return config


def _processor(config, encoder):
    return BatchProcessor(config, encoder_factory=lambda temp_dir, show_progress: encoder)


def _run_quietly(processor, files):
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        stats = processor.run(files)
    return stats, buffer.getvalue()


def test_collect_inputs_defaults_to_mp4_in_cwd(tmp_path):
    for name in ("b.mp4", "a.mp4", "a_optimized.mp4", "notes.txt"):
        (tmp_path / name).write_bytes(b"x")

    files = collect_inputs(cwd=str(tmp_path))

    assert [os.path.basename(f) for f in files] == ["a.mp4", "b.mp4"]


def test_collect_inputs_expands_directories_and_globs(tmp_path):
    videos = tmp_path / "videos"
    videos.mkdir()
    (videos / "one.mp4").write_bytes(b"x")
    (videos / "two.mp4").write_bytes(b"x")
    (videos / "two_optimized.mp4").write_bytes(b"x")

    from_dir = collect_inputs([str(videos)])
    from_glob = collect_inputs([str(videos / "t*.mp4")])
    explicit = collect_inputs([str(tmp_path / "missing.mp4"), str(videos / "one.mp4"), str(videos / "one.mp4")])

    assert [os.path.basename(f) for f in from_dir] == ["one.mp4", "two.mp4"]
    assert [os.path.basename(f) for f in from_glob] == ["two.mp4"]
    assert [os.path.basename(f) for f in explicit] == ["missing.mp4", "one.mp4"]


def test_batch_writes_summary_and_counts(tmp_path, config):
    encoder = FakeEncoder(compressibility=1.0)
    small = encoder.add_video(tmp_path / "small.mp4", 2 * BYTES_PER_MB, 30)
    big = encoder.add_video(tmp_path / "big.mp4", 30 * BYTES_PER_MB, 60)
    missing = str(tmp_path / "missing.mp4")

    processor = _processor(config, encoder)
    stats, output = _run_quietly(processor, [small, big, missing])

    assert stats['inputs'] == 3
    assert stats['processed'] == 3
    assert stats['successful'] == 2
    assert stats['failed'] == 1
    summary = (tmp_path / "optimized" / "optimization_summary.txt").read_text(encoding="utf-8")
    assert "small.mp4" in summary and "Copied" in summary
    assert "big.mp4" in summary and "Optimized" in summary
    assert "Missing Input" in summary
    assert "Successful: 2" in output
    assert processor.error_handler.get_error_summary()['categories'] == {'input': 1}


def test_unexpected_exception_does_not_stop_batch(tmp_path, config):
    encoder = FakeEncoder()
    first = encoder.add_video(tmp_path / "first.mp4", 30 * BYTES_PER_MB, 60)
    second = encoder.add_video(tmp_path / "second.mp4", 2 * BYTES_PER_MB, 60)

    def explode(path):
        if path == first:
            raise RuntimeError("unexpected")
        return FakeEncoder.probe(encoder, path)

    encoder.probe = explode
    processor = _processor(config, encoder)
    stats, _ = _run_quietly(processor, [first, second])

    assert stats['processed'] == 2
    assert processor.report.find("first.mp4").status is StatusKind.ENCODE_FAILED
    assert processor.report.find("second.mp4").status is StatusKind.COPIED
    assert processor.error_handler.get_error_summary()['total_errors'] == 1


def test_parallel_jobs_process_every_file(tmp_path, config):
    config.update_from_args({'shrinkwrap.parallel_jobs': 3})
    encoder = FakeEncoder()
    files = [encoder.add_video(tmp_path / f"clip{i}.mp4", 2 * BYTES_PER_MB, 30) for i in range(5)]

    processor = _processor(config, encoder)
    stats, _ = _run_quietly(processor, files)

    assert stats['processed'] == 5
    assert stats['successful'] == 5
    assert sorted(r.name for r in processor.report) == sorted(os.path.basename(f) for f in files)


def test_temp_namespace_removed_after_run(tmp_path, config):
    encoder = FakeEncoder(compressibility=0.5)
    source = encoder.add_video(tmp_path / "long.mp4", 50 * BYTES_PER_MB, 300)

    _run_quietly(_processor(config, encoder), [source])

    leftovers = list((tmp_path / "tmp").glob("*/*")) if (tmp_path / "tmp").exists() else []
    assert leftovers == []
