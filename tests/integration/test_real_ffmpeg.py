"""
End-to-end conversions through a real ffmpeg.

Skipped when ffmpeg or ffprobe is not on PATH. Inputs are generated with
lavfi sources, so no test media is checked in.
"""
import shutil
import subprocess
import pytest

from mcv.domain.models import ConversionSettings
from mcv.infrastructure.ffprobe import FFprobeAdapter
from mcv.infrastructure.supervisor import ProcessSupervisor
from mcv.pipeline.service import ConversionService

pytestmark = [
    pytest.mark.integration,
    pytest.mark.slow,
    pytest.mark.skipif(
        shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
        reason="ffmpeg/ffprobe not installed",
    ),
]


def generate(args, output):
    subprocess.run(
        ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error", *args, str(output)],
        check=True,
        capture_output=True,
        timeout=60,
    )
    return output


@pytest.fixture
def sine_wav(tmp_path):
    return generate(["-f", "lavfi", "-i", "sine=frequency=440:duration=2"], tmp_path / "tone.wav")


@pytest.fixture
def clip_with_audio(tmp_path):
    return generate(
        [
            "-f", "lavfi", "-i", "testsrc=size=320x240:rate=25:duration=2",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=2",
            "-c:v", "mpeg4", "-c:a", "aac", "-shortest",
        ],
        tmp_path / "clip.mkv",
    )


@pytest.fixture
def service(sample_config, catalog, cpu_profile, event_bus):
    supervisor = ProcessSupervisor(event_bus, config=sample_config.supervisor)
    return ConversionService(sample_config, catalog, cpu_profile, FFprobeAdapter(), supervisor)


def test_wav_to_flac(service, sine_wav, tmp_path, recorded_events):
    output = tmp_path / "out" / "tone.flac"

    result = service.convert("t1", sine_wav, output, "flac")

    assert result.completed
    assert output.exists()
    probe = FFprobeAdapter().probe(output)
    assert probe.primary_audio.codec == "flac"
    assert probe.duration == pytest.approx(2.0, abs=0.2)


def test_wav_resampled(service, sine_wav, tmp_path):
    output = tmp_path / "tone_mono.wav"

    service.convert("t1", sine_wav, output, "wav", ConversionSettings(sample_rate=22050, channels=1))

    audio = FFprobeAdapter().probe(output).primary_audio
    assert audio.sample_rate == 22050
    assert audio.channels == 1


def test_extract_audio_copies_stream(service, clip_with_audio, tmp_path):
    output = tmp_path / "clip.m4a"

    result = service.extract_audio("t1", clip_with_audio, output, "m4a")

    assert result.completed
    probe = FFprobeAdapter().probe(output)
    assert probe.video_streams == []
    assert probe.primary_audio.codec == "aac"
