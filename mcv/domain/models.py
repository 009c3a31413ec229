from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Quality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ULTRA = "ultra"
    CUSTOM = "custom"


class GpuVendor(str, Enum):
    NVIDIA = "nvidia"
    INTEL = "intel"
    AMD = "amd"
    APPLE = "apple"
    NONE = "none"


class AudioAction(str, Enum):
    COPY = "copy"
    REMOVE = "remove"
    REENCODE = "reencode"


class MediaKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    UNKNOWN = "unknown"


class TaskState(str, Enum):
    SPAWNING = "SPAWNING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"


class HardwareProfile(BaseModel):
    """Snapshot of the acceleration backend available to the encoder.

    Built once at startup and shared read-only by every conversion task.
    """

    model_config = ConfigDict(frozen=True)

    vendor: GpuVendor = GpuVendor.NONE
    name: str = "CPU Only"
    encoder_h264: Optional[str] = None
    encoder_h265: Optional[str] = None
    decoder: Optional[str] = None
    available: bool = False

    @classmethod
    def cpu_only(cls) -> "HardwareProfile":
        return cls()

    @classmethod
    def for_vendor(cls, vendor: GpuVendor, name: str) -> "HardwareProfile":
        if vendor == GpuVendor.NVIDIA:
            return cls(vendor=vendor, name=name, encoder_h264="h264_nvenc",
                       encoder_h265="hevc_nvenc", decoder="h264_cuvid", available=True)
        if vendor == GpuVendor.INTEL:
            return cls(vendor=vendor, name=name, encoder_h264="h264_qsv",
                       encoder_h265="hevc_qsv", decoder="h264_qsv", available=True)
        if vendor == GpuVendor.AMD:
            return cls(vendor=vendor, name=name, encoder_h264="h264_amf",
                       encoder_h265="hevc_amf", decoder="h264_amf", available=True)
        if vendor == GpuVendor.APPLE:
            return cls(vendor=vendor, name=name, encoder_h264="h264_videotoolbox",
                       encoder_h265="hevc_videotoolbox", decoder="h264", available=True)
        return cls.cpu_only()


class VideoStream(BaseModel):
    codec: str
    width: int
    height: int
    fps: float = 0.0
    bitrate: Optional[int] = None


class AudioStream(BaseModel):
    codec: str
    sample_rate: int
    channels: int
    bitrate: Optional[int] = None


class MediaProbeResult(BaseModel):
    """What the prober found in the input file."""

    model_config = ConfigDict(frozen=True)

    duration: float = 0.0
    file_size: int = 0
    format_name: str = "unknown"
    video_streams: List[VideoStream] = Field(default_factory=list)
    audio_streams: List[AudioStream] = Field(default_factory=list)

    @property
    def media_kind(self) -> MediaKind:
        if self.video_streams:
            return MediaKind.VIDEO
        if self.audio_streams:
            return MediaKind.AUDIO
        return MediaKind.UNKNOWN

    @property
    def primary_video(self) -> Optional[VideoStream]:
        return self.video_streams[0] if self.video_streams else None

    @property
    def primary_audio(self) -> Optional[AudioStream]:
        return self.audio_streams[0] if self.audio_streams else None


class FileMetadata(BaseModel):
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[str] = None

    def items(self) -> List[Tuple[str, str]]:
        """Non-empty fields as (key, value) pairs in declaration order."""
        pairs = []
        for key in ("title", "artist", "album", "genre", "year"):
            value = getattr(self, key)
            if value is not None and str(value).strip():
                pairs.append((key, str(value).strip()))
        return pairs


class ConversionSettings(BaseModel):
    """User intent for a single conversion request.

    Constructed once per request and never mutated afterwards; the resolver
    derives concrete encoder parameters from it.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str = "unknown"
    quality: Quality = Quality.MEDIUM
    bitrate: Optional[int] = Field(default=None, gt=0)  # kbps
    sample_rate: Optional[int] = Field(default=None, gt=0)
    channels: Optional[int] = Field(default=None, gt=0)
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    fps: Optional[int] = Field(default=None, gt=0)
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    use_gpu: bool = True
    copy_audio: bool = True
    audio_action: Optional[AudioAction] = None
    metadata: Optional[FileMetadata] = None

    @field_validator("video_codec", "audio_codec")
    @classmethod
    def blank_codec_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ConversionProgress(BaseModel):
    task_id: str
    percent: float = Field(ge=0.0, le=100.0)
    fps: Optional[float] = None
    speed: Optional[float] = None
    eta_seconds: Optional[int] = None
    current_time: float = 0.0
    total_time: float = 0.0


class ConversionResult(BaseModel):
    """Terminal outcome of a supervised task that did not fail."""

    task_id: str
    state: TaskState
    output_path: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == TaskState.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.state == TaskState.CANCELLED
