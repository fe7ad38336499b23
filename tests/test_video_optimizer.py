import os

from conftest import FakeEncoder
from shrinkwrap.models import StatusKind
from shrinkwrap.size_model import BYTES_PER_MB
from shrinkwrap.video_optimizer import VideoOptimizer


def _optimizer(encoder, settings, report, output_dir, temp_files):
    return VideoOptimizer(encoder, settings, report, output_dir, temp_files)


def _statuses(report):
    return [(record.name, record.status) for record in report]


def test_missing_input(tmp_path, settings, report, output_dir, temp_files):
    optimizer = _optimizer(FakeEncoder(), settings, report, output_dir, temp_files)

    assert not optimizer.optimize(str(tmp_path / "nope.mp4"))

    record = report.find("nope.mp4")
    assert record.status is StatusKind.MISSING_INPUT
    assert record.original_size is None


def test_empty_input(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder()
    source = encoder.add_video(tmp_path / "empty.mp4", 0, 10)

    assert not _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert report.find("empty.mp4").status is StatusKind.EMPTY_INPUT


def test_small_input_is_copied_without_encoding(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder()
    source = encoder.add_video(tmp_path / "small.mp4", 5 * BYTES_PER_MB, 60)

    assert _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    output = os.path.join(output_dir, "small_optimized.mp4")
    assert os.path.getsize(output) == 5 * BYTES_PER_MB
    assert encoder.jobs == []
    record = report.find("small.mp4")
    assert record.status is StatusKind.COPIED
    assert record.reduction_percent == 0


def test_input_at_ceiling_is_not_copied(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder()
    source = encoder.add_video(tmp_path / "edge.mp4", 10 * BYTES_PER_MB, 60)

    assert _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert encoder.jobs
    assert report.find("edge.mp4").status is StatusKind.OPTIMIZED


def test_probe_failure_records_duration_fail(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder()
    source = encoder.add_video(tmp_path / "broken.mp4", 20 * BYTES_PER_MB, None)

    assert not _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert report.find("broken.mp4").status is StatusKind.PROBE_FAILED


def test_zero_duration_records_duration_fail(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder()
    source = encoder.add_video(tmp_path / "still.mp4", 20 * BYTES_PER_MB, 0)

    assert not _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert report.find("still.mp4").status is StatusKind.PROBE_FAILED


def test_one_minute_clip_converges_in_primary_tier(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(compressibility=1.2)
    source = encoder.add_video(tmp_path / "clip.mp4", 40 * BYTES_PER_MB, 60)

    assert _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert [job.video.bitrate_kbps for job in encoder.final_jobs] == [1150, 998, 950]
    assert all(job.audio.bitrate_kbps == 192 for job in encoder.final_jobs)
    assert all(job.max_width == 1920 for job in encoder.final_jobs)
    record = report.find("clip.mp4")
    assert record.status is StatusKind.OPTIMIZED
    assert record.final_size == os.path.getsize(os.path.join(output_dir, "clip_optimized.mp4"))
    assert record.final_size <= settings.max_size_bytes
    assert record.reduction_percent > 0


def test_encode_failure_in_primary_tier_does_not_escalate(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(fail_when=lambda job: True)
    source = encoder.add_video(tmp_path / "clip.mp4", 40 * BYTES_PER_MB, 60)

    assert not _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert len(encoder.jobs) == 1
    assert _statuses(report) == [("clip.mp4", StatusKind.ENCODE_FAILED)]


def test_primary_exhaustion_escalates_to_rescue(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(cq_size_bytes=4 * BYTES_PER_MB,
                          fail_when=lambda job: job.max_width == 1280 and not job.video.is_constant_quality)
    # 60s at floor bitrates is feasible, but this source never fits under bitrate targets
    encoder.compressibility = 4.0
    source = encoder.add_video(tmp_path / "dense.mp4", 40 * BYTES_PER_MB, 60)

    assert _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert _statuses(report) == [("dense.mp4", StatusKind.RESCUED_LAST_RESORT)]
    assert encoder.jobs[-1].video.is_constant_quality


def test_long_input_splits_into_two_optimized_halves(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(compressibility=0.5)
    source = encoder.add_video(tmp_path / "clip.mp4", 50 * BYTES_PER_MB, 200)

    assert _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert _statuses(report) == [
        ("clip_PART_1.mp4", StatusKind.OPTIMIZED),
        ("clip_PART_2.mp4", StatusKind.OPTIMIZED),
        ("clip.mp4", StatusKind.SPLIT),
    ]
    assert report.find("clip.mp4").final_size is None
    assert os.path.exists(os.path.join(output_dir, "clip_PART_1_optimized.mp4"))
    assert os.path.exists(os.path.join(output_dir, "clip_PART_2_optimized.mp4"))
    assert not os.path.exists(os.path.join(output_dir, "clip_optimized.mp4"))
    # infeasible at floor bitrates, so the parent itself is never encoded
    assert not any(job.input_path == source for job in encoder.jobs)
    assert [cut[2] for cut in encoder.cuts] == [100.0, None]


def test_infeasible_input_splits_before_any_encode(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(compressibility=1.0)
    source = encoder.add_video(tmp_path / "long.mp4", 15 * BYTES_PER_MB, 600)

    assert _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert encoder.jobs == []
    assert _statuses(report) == [
        ("long_PART_1.mp4", StatusKind.COPIED),
        ("long_PART_2.mp4", StatusKind.COPIED),
        ("long.mp4", StatusKind.SPLIT),
    ]


def test_split_incomplete_when_a_half_fails(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(compressibility=0.5, fail_when=lambda job: "_PART_2" in job.output_path)
    source = encoder.add_video(tmp_path / "clip.mp4", 50 * BYTES_PER_MB, 200)

    assert not _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert _statuses(report) == [
        ("clip_PART_1.mp4", StatusKind.OPTIMIZED),
        ("clip_PART_2.mp4", StatusKind.ENCODE_FAILED),
        ("clip.mp4", StatusKind.SPLIT_INCOMPLETE),
    ]


def test_temp_parts_are_cleaned_up(tmp_path, settings, report, output_dir, temp_files):
    encoder = FakeEncoder(compressibility=0.5)
    source = encoder.add_video(tmp_path / "clip.mp4", 50 * BYTES_PER_MB, 200)

    _optimizer(encoder, settings, report, output_dir, temp_files).optimize(source)

    assert temp_files.get_temp_count() == 0
    assert not any(os.path.exists(cut[3]) for cut in encoder.cuts)
