"""Capability records for output formats.

A record says what a target container accepts: which codecs, sample rates,
channel layouts and frame sizes, plus the extra muxer arguments it needs.
Records are frozen pydantic models; the catalog builds them once from the
YAML tables and hands out the same instances for its whole lifetime.
"""

from enum import Enum
from typing import Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from mcv.domain.models import MediaKind


class Category(str, Enum):
    POPULAR = "popular"
    STANDARD = "standard"
    SPECIALIZED = "specialized"
    LEGACY = "legacy"
    EXOTIC = "exotic"

    @property
    def rank(self) -> int:
        return _CATEGORY_ORDER.index(self)


_CATEGORY_ORDER = [
    Category.POPULAR,
    Category.STANDARD,
    Category.SPECIALIZED,
    Category.LEGACY,
    Category.EXOTIC,
]


class Stability(str, Enum):
    STABLE = "stable"
    REQUIRES_SETUP = "requiressetup"
    EXPERIMENTAL = "experimental"
    PROBLEMATIC = "problematic"


# Logical codec name -> canonical software encoder.
SOFTWARE_VIDEO_ENCODERS: Dict[str, str] = {
    "h264": "libx264",
    "hevc": "libx265",
    "vp9": "libvpx-vp9",
    "vp8": "libvpx",
    "av1": "libaom-av1",
    "theora": "libtheora",
    "flv1": "flv",
}

# Logical audio codec name -> encoder used when re-encoding into a video container.
DEFAULT_AUDIO_ENCODERS: Dict[str, str] = {
    "aac": "aac",
    "opus": "libopus",
    "vorbis": "libvorbis",
    "mp3": "libmp3lame",
    "ac3": "ac3",
    "amr_nb": "libopencore_amrnb",
    "pcm_s16le": "pcm_s16le",
}

# Probe codec names and encoder ids accepted for each listed codec, besides the name itself.
_AUDIO_ALIASES: Dict[str, Tuple[str, ...]] = {
    "aac": ("libfdk_aac", "aac_at"),
    "ac3": ("ac3_fixed",),
    "alac": ("alac_at",),
    "amr_nb": ("libopencore_amrnb", "amrnb"),
    "dts": ("dca",),
    "mp2": ("libtwolame", "mp2fixed"),
    "mp3": ("libmp3lame", "libshine"),
    "opus": ("libopus",),
    "speex": ("libspeex",),
    "vorbis": ("libvorbis",),
    "wavpack": ("wv", "libwavpack"),
}


def video_codec_matches(logical: str, actual: str) -> bool:
    """True if the concrete encoder `actual` produces the logical codec `logical`."""
    if logical == actual:
        return True
    if logical == "h264":
        return actual == "libx264" or actual.startswith("h264_")
    if logical == "hevc":
        return actual == "libx265" or actual.startswith("hevc_")
    if logical == "vp8":
        return actual == "libvpx" or "vp8" in actual
    if logical == "vp9":
        return actual == "libvpx-vp9" or "vp9" in actual
    if logical == "av1":
        return "av1" in actual
    if logical == "theora":
        return actual in ("libtheora", "theora")
    if logical == "mpeg4":
        return actual in ("mpeg4", "libxvid")
    if logical == "flv1":
        return actual in ("flv", "flv1")
    return logical in actual


def audio_codec_matches(listed: str, actual: str) -> bool:
    """True if `actual` (probe codec name or encoder id) satisfies `listed`."""
    if not actual:
        return False
    if listed == actual:
        return True
    return actual in _AUDIO_ALIASES.get(listed, ())


def _empty_to_none(value):
    if value in ("", 0, [], ()):
        return None
    return value


class FormatCapability(BaseModel):
    model_config = ConfigDict(frozen=True)

    extension: str
    name: str
    category: Category
    stability: Stability
    container: Optional[str] = None
    special_params: Tuple[str, ...] = ()
    description: str = ""
    typical_use: str = ""

    @field_validator("extension")
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        v = v.strip().lower().lstrip(".")
        if not v:
            raise ValueError("extension cannot be empty")
        return v

    @field_validator("container", mode="before")
    @classmethod
    def empty_container(cls, v):
        return _empty_to_none(v)

    @property
    def media_kind(self) -> MediaKind:
        return MediaKind.UNKNOWN


class AudioFormat(FormatCapability):
    codec: str
    lossy: bool
    bitrate_range: Optional[Tuple[int, int]] = None
    recommended_bitrate: Optional[int] = None
    sample_rates: Tuple[int, ...]
    recommended_sample_rate: int
    channels_support: Tuple[int, ...]
    copy_compatible: Tuple[str, ...] = ()

    @field_validator("bitrate_range", "recommended_bitrate", mode="before")
    @classmethod
    def empty_numbers(cls, v):
        return _empty_to_none(v)

    @model_validator(mode="after")
    def validate_tables(self):
        if not self.sample_rates:
            raise ValueError(f"{self.extension}: sample_rates cannot be empty")
        if not self.channels_support:
            raise ValueError(f"{self.extension}: channels_support cannot be empty")
        if self.recommended_sample_rate not in self.sample_rates:
            raise ValueError(f"{self.extension}: recommended_sample_rate must be one of sample_rates")
        if self.bitrate_range is not None:
            low, high = self.bitrate_range
            if low <= 0 or low > high:
                raise ValueError(f"{self.extension}: invalid bitrate_range {self.bitrate_range}")
            if self.recommended_bitrate is not None and not (low <= self.recommended_bitrate <= high):
                raise ValueError(f"{self.extension}: recommended_bitrate outside bitrate_range")
        if self.lossy and self.bitrate_range is None:
            raise ValueError(f"{self.extension}: lossy formats need a bitrate_range")
        return self

    @property
    def media_kind(self) -> MediaKind:
        return MediaKind.AUDIO

    @property
    def ffmpeg_codec(self) -> str:
        return self.codec

    def supports_sample_rate(self, rate: int) -> bool:
        return rate in self.sample_rates

    def supports_channels(self, channels: int) -> bool:
        return channels in self.channels_support

    def validate_bitrate(self, kbps: int) -> bool:
        if self.bitrate_range is None:
            return False
        low, high = self.bitrate_range
        return low <= kbps <= high

    def can_copy_codec(self, source_codec: str) -> bool:
        return any(audio_codec_matches(listed, source_codec) for listed in self.copy_compatible)

    def is_suitable_for_extraction(self) -> bool:
        return self.stability in (Stability.STABLE, Stability.REQUIRES_SETUP)


class VideoFormat(FormatCapability):
    container: str
    video_codecs: Tuple[str, ...]
    audio_codecs: Tuple[str, ...] = ()
    max_resolution: Optional[Tuple[int, int]] = None
    requires_fixed_resolution: bool = False
    force_max_resolution: bool = False

    @field_validator("max_resolution", mode="before")
    @classmethod
    def empty_resolution(cls, v):
        return _empty_to_none(v)

    @model_validator(mode="after")
    def validate_tables(self):
        if not self.video_codecs:
            raise ValueError(f"{self.extension}: video_codecs cannot be empty")
        if (self.requires_fixed_resolution or self.force_max_resolution) and self.max_resolution is None:
            raise ValueError(f"{self.extension}: fixed resolution formats need max_resolution")
        return self

    @property
    def media_kind(self) -> MediaKind:
        return MediaKind.VIDEO

    @property
    def has_strict_resolution(self) -> bool:
        return self.requires_fixed_resolution or self.force_max_resolution

    @property
    def accepts_audio(self) -> bool:
        return bool(self.audio_codecs)

    def supports_video_codec(self, codec: str) -> bool:
        return any(video_codec_matches(listed, codec) for listed in self.video_codecs)

    def supports_audio_codec(self, codec: str) -> bool:
        return any(audio_codec_matches(listed, codec) for listed in self.audio_codecs)

    def default_video_codec(self) -> str:
        return self.video_codecs[0]

    def software_video_codec(self) -> str:
        first = self.video_codecs[0]
        return SOFTWARE_VIDEO_ENCODERS.get(first, first)

    def default_audio_codec(self) -> Optional[str]:
        if not self.audio_codecs:
            return None
        first = self.audio_codecs[0]
        return DEFAULT_AUDIO_ENCODERS.get(first, first)

    def is_resolution_compatible(self, width: int, height: int) -> bool:
        if self.max_resolution is None:
            return True
        max_w, max_h = self.max_resolution
        if self.requires_fixed_resolution:
            return width == max_w and height in (480, max_h)
        return width <= max_w and height <= max_h


