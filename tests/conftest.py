import textwrap
import pytest
from pathlib import Path

from mcv.config.models import AppConfig
from mcv.domain.events import Event
from mcv.domain.models import (
    AudioStream,
    GpuVendor,
    HardwareProfile,
    MediaProbeResult,
    VideoStream,
)
from mcv.formats.catalog import FormatCatalog
from mcv.infrastructure.event_bus import EventBus


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external processes")
    config.addinivalue_line("markers", "integration: tests that spawn real child processes")
    config.addinivalue_line("markers", "slow: long-running tests")


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """AppConfig with logging redirected into the test directory."""
    return AppConfig(
        general={
            "use_gpu": False,
            "copy_metadata": True,
            "jobs": 2,
            "log_path": str(tmp_path / "logs" / "conversion.log"),
        },
        supervisor={"progress_interval_ms": 100, "kill_grace_s": 2.0},
    )


# ============================================================================
# Catalog and Hardware Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def catalog():
    """The bundled format catalog, loaded once."""
    return FormatCatalog.from_files()


@pytest.fixture
def cpu_profile():
    return HardwareProfile.cpu_only()


@pytest.fixture
def nvidia_profile():
    return HardwareProfile.for_vendor(GpuVendor.NVIDIA, "NVIDIA GeForce RTX 4090")


@pytest.fixture
def intel_profile():
    return HardwareProfile.for_vendor(GpuVendor.INTEL, "Intel UHD Graphics 770")


@pytest.fixture
def amd_profile():
    return HardwareProfile.for_vendor(GpuVendor.AMD, "AMD Radeon RX 7900")


# ============================================================================
# Probe Fixtures
# ============================================================================

@pytest.fixture
def video_probe():
    """1080p H.264 with stereo AAC, 10 seconds."""
    return MediaProbeResult(
        duration=10.0,
        file_size=5_000_000,
        format_name="mov,mp4,m4a,3gp,3g2,mj2",
        video_streams=[VideoStream(codec="h264", width=1920, height=1080, fps=30.0)],
        audio_streams=[AudioStream(codec="aac", sample_rate=48000, channels=2, bitrate=192000)],
    )


@pytest.fixture
def silent_video_probe():
    return MediaProbeResult(
        duration=10.0,
        format_name="matroska,webm",
        video_streams=[VideoStream(codec="vp9", width=1280, height=720, fps=25.0)],
    )


@pytest.fixture
def audio_probe():
    """Three minutes of 44.1 kHz stereo FLAC."""
    return MediaProbeResult(
        duration=180.0,
        file_size=30_000_000,
        format_name="flac",
        audio_streams=[AudioStream(codec="flac", sample_rate=44100, channels=2)],
    )


# ============================================================================
# Event Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Every event published on `event_bus`, in order."""
    events = []
    event_bus.subscribe(Event, events.append)
    return events


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ============================================================================
# Fake Encoder Fixtures
# ============================================================================

@pytest.fixture
def fake_encoder(tmp_path):
    """Writes a Python script that stands in for ffmpeg.

    Usage: `script = fake_encoder("print('x')")`; the supervisor runs it with
    `ffmpeg_path=sys.executable` and `args=[str(script), output_path]`.
    """
    def _make(body: str, name: str = "encoder.py") -> Path:
        script = tmp_path / name
        script.write_text(textwrap.dedent(body))
        return script
    return _make
