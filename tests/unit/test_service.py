import pytest
from unittest.mock import MagicMock

from mcv.domain.errors import NoAudioStream, UnsupportedFormat
from mcv.domain.models import ConversionResult, ConversionSettings, TaskState
from mcv.pipeline.service import ConversionService


@pytest.fixture
def prober():
    return MagicMock()


@pytest.fixture
def supervisor():
    sup = MagicMock()
    sup.spawn.side_effect = lambda task_id, args, duration, output_path=None: ConversionResult(
        task_id=task_id, state=TaskState.COMPLETED, output_path=output_path
    )
    return sup


@pytest.fixture
def service(sample_config, catalog, cpu_profile, prober, supervisor):
    return ConversionService(sample_config, catalog, cpu_profile, prober, supervisor)


def spawned_args(supervisor):
    args, kwargs = supervisor.spawn.call_args
    return args, kwargs


def test_convert_dispatches_audio_target(service, prober, supervisor, audio_probe, tmp_path):
    prober.probe.return_value = audio_probe
    out = tmp_path / "song.mp3"

    result = service.convert("t1", "song.flac", out, "mp3")

    assert result.completed
    (task_id, argv, duration), kwargs = spawned_args(supervisor)
    assert task_id == "t1"
    assert duration == 180.0
    assert kwargs == {"output_path": str(out)}
    assert "-vn" in argv
    assert argv[argv.index("-c:a") + 1] == "libmp3lame"
    assert argv[-1] == str(out)


def test_convert_dispatches_video_target(service, prober, supervisor, video_probe, tmp_path):
    prober.probe.return_value = video_probe
    out = tmp_path / "clip.mp4"

    service.convert("t2", "clip.mov", out, "mp4")

    (_, argv, duration), _ = spawned_args(supervisor)
    assert duration == 10.0
    assert argv[argv.index("-c:v") + 1] == "libx264"
    assert argv[argv.index("-i") + 1] == "clip.mov"


def test_unknown_format_fails_before_probe(service, prober, supervisor):
    with pytest.raises(UnsupportedFormat) as exc_info:
        service.convert("t3", "in.wav", "out.xyz", "xyz")
    assert exc_info.value.task_id == "t3"
    prober.probe.assert_not_called()
    supervisor.spawn.assert_not_called()


def test_convert_audio_rejects_video_target(service, prober):
    with pytest.raises(UnsupportedFormat):
        service.convert_audio("t4", "in.wav", "out.mp4", "mp4")
    prober.probe.assert_not_called()


def test_convert_video_rejects_audio_target(service, prober):
    with pytest.raises(UnsupportedFormat):
        service.convert_video("t5", "in.mov", "out.mp3", "mp3")
    prober.probe.assert_not_called()


def test_extract_audio_without_audio_stream(service, prober, supervisor, silent_video_probe, tmp_path):
    prober.probe.return_value = silent_video_probe
    with pytest.raises(NoAudioStream) as exc_info:
        service.extract_audio("t6", "silent.mkv", tmp_path / "out.mp3", "mp3")
    assert "silent.mkv" in exc_info.value.message
    supervisor.spawn.assert_not_called()


def test_extract_audio_copies_compatible_stream(service, prober, supervisor, video_probe, tmp_path):
    prober.probe.return_value = video_probe
    service.extract_audio("t7", "clip.mp4", tmp_path / "clip.m4a", "m4a")

    (_, argv, _), _ = spawned_args(supervisor)
    assert "-vn" in argv
    assert argv[argv.index("-c:a") + 1] == "copy"


def test_output_parent_directory_created(service, prober, audio_probe, tmp_path):
    prober.probe.return_value = audio_probe
    out = tmp_path / "nested" / "deeper" / "song.ogg"

    service.convert("t8", "song.flac", out, "ogg")

    assert out.parent.is_dir()


def test_task_id_overrides_settings(service, prober, supervisor, audio_probe, tmp_path):
    prober.probe.return_value = audio_probe
    settings = ConversionSettings(task_id="stale", bitrate=256)

    result = service.convert("t9", "song.flac", tmp_path / "song.mp3", "mp3", settings)

    assert result.task_id == "t9"
    assert settings.task_id == "stale"


def test_probe_failure_propagates(service, prober, supervisor):
    prober.probe.side_effect = RuntimeError("ffprobe failed for broken.mp4")
    with pytest.raises(RuntimeError, match="ffprobe failed"):
        service.convert("t10", "broken.mp4", "out.mkv", "mkv")
    supervisor.spawn.assert_not_called()


def test_metadata_copy_follows_config(sample_config, catalog, cpu_profile, prober, supervisor, audio_probe, tmp_path):
    prober.probe.return_value = audio_probe
    sample_config.general.copy_metadata = False
    service = ConversionService(sample_config, catalog, cpu_profile, prober, supervisor)

    service.convert("t11", "song.flac", tmp_path / "song.mp3", "mp3")

    (_, argv, _), _ = spawned_args(supervisor)
    assert argv[argv.index("-map_metadata") + 1] == "-1"


def test_cancel_delegates_to_supervisor(service, supervisor):
    supervisor.cancel.return_value = True
    supervisor.cancel_all.return_value = 2
    supervisor.active_tasks.return_value = ["a", "b"]

    assert service.cancel("a") is True
    assert service.cancel_all() == 2
    assert service.active_tasks() == ["a", "b"]
    supervisor.cancel.assert_called_once_with("a")
