"""Turns conversion intent into concrete encoder parameters.

The resolver is pure: it consults the injected catalog and hardware profile,
never touches the filesystem and never spawns anything. Every failure it
raises happens before a process exists.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from mcv.domain.errors import NoAudioStream, UnsupportedCodec
from mcv.domain.models import (
    AudioAction,
    ConversionSettings,
    GpuVendor,
    HardwareProfile,
    MediaProbeResult,
    Quality,
)
from mcv.formats.capabilities import AudioFormat, VideoFormat, video_codec_matches
from mcv.formats.catalog import FormatCatalog

logger = logging.getLogger(__name__)


class CodecFamily(str, Enum):
    X264 = "x264"
    X265 = "x265"
    NVENC = "nvenc"
    QSV = "qsv"
    AMF = "amf"
    VIDEOTOOLBOX = "videotoolbox"
    VPX_VP8 = "vpx_vp8"
    VPX_VP9 = "vpx_vp9"
    THEORA = "theora"
    MPEG2 = "mpeg2"
    OTHER = "other"


def classify_codec(codec: str) -> CodecFamily:
    """Maps a concrete encoder id to its parameter family."""
    if "nvenc" in codec:
        return CodecFamily.NVENC
    if "qsv" in codec:
        return CodecFamily.QSV
    if "amf" in codec:
        return CodecFamily.AMF
    if "videotoolbox" in codec:
        return CodecFamily.VIDEOTOOLBOX
    if codec == "libx264":
        return CodecFamily.X264
    if codec == "libx265":
        return CodecFamily.X265
    if codec == "libvpx-vp9":
        return CodecFamily.VPX_VP9
    if codec == "libvpx":
        return CodecFamily.VPX_VP8
    if codec == "libtheora":
        return CodecFamily.THEORA
    if codec == "mpeg2video":
        return CodecFamily.MPEG2
    return CodecFamily.OTHER


# Which vendor owns an accelerated family; decode acceleration is only worth it for these pairs.
FAMILY_VENDOR: Dict[CodecFamily, GpuVendor] = {
    CodecFamily.NVENC: GpuVendor.NVIDIA,
    CodecFamily.QSV: GpuVendor.INTEL,
    CodecFamily.AMF: GpuVendor.AMD,
    CodecFamily.VIDEOTOOLBOX: GpuVendor.APPLE,
}

HWACCEL_ARGS: Dict[GpuVendor, List[str]] = {
    GpuVendor.NVIDIA: ["-hwaccel", "cuda"],
    GpuVendor.INTEL: ["-hwaccel", "qsv"],
    GpuVendor.AMD: ["-hwaccel", "auto"],
    GpuVendor.APPLE: ["-hwaccel", "videotoolbox"],
}

# Quality tables. CUSTOM without an explicit bitrate uses the MEDIUM row.
CONSTANT_QUALITY: Dict[Quality, int] = {
    Quality.LOW: 28,
    Quality.MEDIUM: 23,
    Quality.HIGH: 19,
    Quality.ULTRA: 15,
}

X26X_PRESETS: Dict[Quality, str] = {
    Quality.LOW: "veryfast",
    Quality.MEDIUM: "medium",
    Quality.HIGH: "slow",
    Quality.ULTRA: "veryslow",
}

VPX_CRF: Dict[Quality, int] = {
    Quality.LOW: 35,
    Quality.MEDIUM: 31,
    Quality.HIGH: 24,
    Quality.ULTRA: 15,
}

VPX_CPU_USED: Dict[Quality, int] = {
    Quality.LOW: 5,
    Quality.MEDIUM: 2,
    Quality.HIGH: 1,
    Quality.ULTRA: 0,
}

THEORA_QUALITY: Dict[Quality, int] = {
    Quality.LOW: 3,
    Quality.MEDIUM: 5,
    Quality.HIGH: 7,
    Quality.ULTRA: 10,
}

MPEG2_BITRATE_K: Dict[Quality, int] = {
    Quality.LOW: 4000,
    Quality.MEDIUM: 6000,
    Quality.HIGH: 8000,
    Quality.ULTRA: 12000,
}

VORBIS_QUALITY: Dict[Quality, int] = {
    Quality.LOW: 3,
    Quality.MEDIUM: 5,
    Quality.HIGH: 7,
    Quality.ULTRA: 9,
}

LOSSLESS_COMPRESSION: Dict[str, Dict[Quality, int]] = {
    "flac": {Quality.LOW: 0, Quality.MEDIUM: 5, Quality.HIGH: 7, Quality.ULTRA: 8},
    "wavpack": {Quality.LOW: 0, Quality.MEDIUM: 1, Quality.HIGH: 2, Quality.ULTRA: 3},
    "alac": {Quality.LOW: 0, Quality.MEDIUM: 1, Quality.HIGH: 2, Quality.ULTRA: 2},
}

# Codecs whose format special_params would clash with the quality arguments above.
SKIP_SPECIAL_PARAMS = ("libvorbis", "libopus", "flac", "wavpack")

FIXED_NTSC_HEIGHT = 480
FIXED_FPS = {480: "30000/1001"}
FIXED_FPS_DEFAULT = "25"


def effective_quality(quality: Quality) -> Quality:
    return Quality.MEDIUM if quality == Quality.CUSTOM else quality


def rate_control_args(bitrate_k: int) -> List[str]:
    return ["-b:v", f"{bitrate_k}k", "-maxrate", f"{bitrate_k}k", "-bufsize", f"{bitrate_k * 2}k"]


def _speed_args(family: CodecFamily, quality: Quality) -> List[str]:
    """Preset arguments that do not fix the output size."""
    if family in (CodecFamily.X264, CodecFamily.X265):
        return ["-preset", X26X_PRESETS[quality]]
    if family == CodecFamily.NVENC:
        return ["-preset", "p7", "-tune", "hq", "-rc", "vbr"]
    if family == CodecFamily.QSV:
        return ["-preset", "veryslow"]
    if family == CodecFamily.AMF:
        return ["-quality", "quality"]
    if family == CodecFamily.VIDEOTOOLBOX:
        return ["-profile:v", "high", "-allow_sw", "1"]
    if family in (CodecFamily.VPX_VP8, CodecFamily.VPX_VP9):
        args = ["-cpu-used", str(VPX_CPU_USED[quality])]
        if family == CodecFamily.VPX_VP9:
            args.extend(["-row-mt", "1", "-tile-columns", "2"])
        return args
    return []


def video_quality_args(family: CodecFamily, quality: Quality, bitrate_k: Optional[int] = None) -> List[str]:
    """Encoder controls for a quality tier; OTHER passes through with no arguments.

    With `bitrate_k` set the family keeps its speed preset and switches to
    constrained bitrate instead of a constant-quality target.
    """
    if family == CodecFamily.OTHER:
        return []

    q = effective_quality(quality)
    if bitrate_k:
        args = _speed_args(family, q)
        if family == CodecFamily.AMF:
            args.extend(["-rc", "vbr_peak"])
        args.extend(rate_control_args(bitrate_k))
        return args

    cq = str(CONSTANT_QUALITY[q])
    if family in (CodecFamily.X264, CodecFamily.X265):
        return _speed_args(family, q) + ["-crf", cq]
    if family == CodecFamily.NVENC:
        return _speed_args(family, q) + ["-cq", cq]
    if family == CodecFamily.QSV:
        return _speed_args(family, q) + ["-global_quality", cq]
    if family == CodecFamily.AMF:
        return _speed_args(family, q) + ["-rc", "cqp", "-qp_i", cq, "-qp_p", cq]
    if family == CodecFamily.VIDEOTOOLBOX:
        return _speed_args(family, q)
    if family in (CodecFamily.VPX_VP8, CodecFamily.VPX_VP9):
        crf = ["-crf", str(VPX_CRF[q]), "-b:v", "0"]
        return crf + _speed_args(family, q)
    if family == CodecFamily.THEORA:
        return ["-q:v", str(THEORA_QUALITY[q])]
    # MPEG2
    rate = MPEG2_BITRATE_K[q]
    return ["-b:v", f"{rate}k", "-maxrate", f"{rate}k", "-bufsize", "2M"]


def needs_yuv420p(codec: str) -> bool:
    return any(token in codec for token in ("h264", "h265", "hevc")) or codec in ("mpeg4", "flv")


def compatibility_flags(extension: str, codec: str, family: CodecFamily) -> List[str]:
    if extension in ("mp4", "m4v", "mov"):
        flags = ["-movflags", "+faststart"]
        if video_codec_matches("h264", codec) and family != CodecFamily.VIDEOTOOLBOX:
            flags.extend(["-profile:v", "high", "-level", "4.0"])
        return flags
    if extension == "ts":
        return ["-mpegts_copyts", "1"]
    return []


def even(value: int) -> int:
    return max(2, value - value % 2)


def default_audio_bitrate(codec: str) -> Optional[int]:
    """Bitrate for audio re-encoded into a video container; None for PCM."""
    if codec.startswith("pcm_"):
        return None
    if codec in ("libopus", "opus"):
        return 128
    if codec == "ac3":
        return 448
    if codec == "libopencore_amrnb":
        return 12
    return 192


def audio_bitrate(fmt: AudioFormat, quality: Quality, requested: Optional[int] = None) -> Optional[int]:
    """kbps for a lossy audio format, always inside its bitrate range."""
    if fmt.bitrate_range is None:
        return None
    low, high = fmt.bitrate_range
    if quality == Quality.CUSTOM and requested is not None:
        if fmt.validate_bitrate(requested):
            return requested
        logger.warning(f"Bitrate {requested}k outside {low}-{high}k for {fmt.extension}, using default")

    base = fmt.recommended_bitrate or (low + high) // 2
    q = effective_quality(quality)
    if q == Quality.LOW:
        value = round(base * 2 / 3)
    elif q == Quality.HIGH:
        value = round(base * 4 / 3)
    elif q == Quality.ULTRA:
        value = high
    else:
        value = base
    return min(high, max(low, value))


def audio_quality_args(fmt: AudioFormat, quality: Quality, requested_bitrate: Optional[int] = None) -> List[str]:
    q = effective_quality(quality)
    if fmt.lossy:
        if fmt.codec == "libvorbis" and not (quality == Quality.CUSTOM and requested_bitrate):
            return ["-q:a", str(VORBIS_QUALITY[q])]
        args = ["-b:a", f"{audio_bitrate(fmt, quality, requested_bitrate)}k"]
        if fmt.codec == "libopus":
            args.extend(["-vbr", "on", "-compression_level", "10"])
        return args
    levels = LOSSLESS_COMPRESSION.get(fmt.codec)
    if levels is None:
        return []
    return ["-compression_level", str(levels[q])]


def resolve_sample_rate(fmt: AudioFormat, requested: Optional[int]) -> int:
    if requested is not None and fmt.supports_sample_rate(requested):
        return requested
    if requested is not None:
        logger.warning(
            f"Sample rate {requested}Hz not supported by {fmt.extension}, "
            f"using {fmt.recommended_sample_rate}Hz"
        )
    return fmt.recommended_sample_rate


def resolve_channels(fmt: AudioFormat, requested: Optional[int]) -> int:
    wanted = requested or 2
    if fmt.supports_channels(wanted):
        return wanted
    for fallback in (2, 1):
        if fmt.supports_channels(fallback):
            break
    else:
        fallback = fmt.channels_support[0]
    if requested is not None:
        logger.warning(f"{requested} channels not supported by {fmt.extension}, using {fallback}")
    return fallback


@dataclass(frozen=True)
class AudioPlan:
    """Audio stream decision. `codec` None disables the track."""

    codec: Optional[str]
    bitrate_k: Optional[int] = None
    quality_args: Tuple[str, ...] = ()
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    container: Optional[str] = None
    special_params: Tuple[str, ...] = ()

    @property
    def disabled(self) -> bool:
        return self.codec is None

    @property
    def copy(self) -> bool:
        return self.codec == "copy"


@dataclass(frozen=True)
class VideoPlan:
    extension: str
    codec: str
    family: CodecFamily
    container: str
    quality_args: Tuple[str, ...]
    hwaccel_args: Tuple[str, ...]
    filters: Tuple[str, ...]
    frame_rate: Optional[str]
    audio: AudioPlan
    output_args: Tuple[str, ...] = field(default=())


class CodecResolver:
    def __init__(self, catalog: FormatCatalog, hardware: HardwareProfile):
        self.catalog = catalog
        self.hardware = hardware

    def gpu_allowed(self, fmt: VideoFormat, settings: ConversionSettings) -> bool:
        return self.hardware.available and settings.use_gpu and not fmt.requires_fixed_resolution

    def accelerated_encoder(self, logical: str) -> Optional[str]:
        if logical == "h264":
            return self.hardware.encoder_h264
        if logical == "hevc":
            return self.hardware.encoder_h265
        if logical == "vp9" and self.hardware.vendor == GpuVendor.INTEL:
            return "vp9_qsv"
        return None

    def resolve_video_codec(self, fmt: VideoFormat, settings: ConversionSettings) -> str:
        if settings.video_codec:
            if not fmt.supports_video_codec(settings.video_codec):
                raise UnsupportedCodec(settings.video_codec, fmt.extension, fmt.video_codecs, task_id=settings.task_id)
            return settings.video_codec

        if self.gpu_allowed(fmt, settings):
            for logical in fmt.video_codecs:
                encoder = self.accelerated_encoder(logical)
                if encoder:
                    return encoder
        return fmt.software_video_codec()

    def frame_policy(self, fmt: VideoFormat, probe: MediaProbeResult,
                     settings: ConversionSettings) -> Tuple[Optional[Tuple[int, int]], Optional[str]]:
        """Target (width, height) for the scale filter and the output frame rate."""
        if fmt.requires_fixed_resolution:
            max_w, max_h = fmt.max_resolution
            source = probe.primary_video
            input_height = source.height if source else max_h
            height = FIXED_NTSC_HEIGHT if input_height <= FIXED_NTSC_HEIGHT else max_h
            return (max_w, height), FIXED_FPS.get(height, FIXED_FPS_DEFAULT)

        width, height = settings.width, settings.height
        if (width is None or height is None) and fmt.force_max_resolution:
            width, height = fmt.max_resolution
        size = (even(width), even(height)) if width is not None and height is not None else None
        frame_rate = str(settings.fps) if settings.fps else None
        return size, frame_rate

    def resolve_video_audio(self, fmt: VideoFormat, probe: MediaProbeResult,
                            settings: ConversionSettings) -> AudioPlan:
        if settings.audio_action == AudioAction.REMOVE:
            return AudioPlan(codec=None)
        if not probe.audio_streams or not fmt.accepts_audio:
            return AudioPlan(codec=None)

        if settings.audio_codec:
            if fmt.supports_audio_codec(settings.audio_codec):
                return AudioPlan(codec=settings.audio_codec)
            logger.warning(
                f"Audio codec '{settings.audio_codec}' not compatible with {fmt.extension}, using default"
            )

        reencode = settings.audio_action == AudioAction.REENCODE or not settings.copy_audio
        source_codec = probe.primary_audio.codec
        if not reencode and fmt.supports_audio_codec(source_codec):
            return AudioPlan(codec="copy")

        codec = fmt.default_audio_codec()
        return AudioPlan(codec=codec, bitrate_k=default_audio_bitrate(codec))

    def resolve_video(self, extension: str, probe: MediaProbeResult, settings: ConversionSettings) -> VideoPlan:
        fmt = self.catalog.require_video(extension, task_id=settings.task_id)
        codec = self.resolve_video_codec(fmt, settings)
        family = classify_codec(codec)

        bitrate_k = settings.bitrate if settings.quality == Quality.CUSTOM else None
        quality_args = video_quality_args(family, settings.quality, bitrate_k)

        size, frame_rate = self.frame_policy(fmt, probe, settings)
        filters: List[str] = []
        if size is not None:
            filters.append(f"scale={size[0]}:{size[1]}")

        hwaccel: List[str] = []
        vendor = FAMILY_VENDOR.get(family)
        on_gpu = self.gpu_allowed(fmt, settings) and vendor == self.hardware.vendor
        if on_gpu:
            hwaccel.extend(HWACCEL_ARGS[vendor])

        # NVENC without scaling keeps decoded frames in device memory.
        keep_on_device = on_gpu and vendor == GpuVendor.NVIDIA and not filters
        if keep_on_device:
            hwaccel.extend(["-hwaccel_output_format", "cuda"])
        elif needs_yuv420p(codec):
            filters.append("format=yuv420p")

        audio = self.resolve_video_audio(fmt, probe, settings)
        output_args = tuple(fmt.special_params) + tuple(compatibility_flags(fmt.extension, codec, family))

        logger.debug(
            f"RESOLVE: task={settings.task_id} ext={fmt.extension} codec={codec} family={family.value} "
            f"gpu={on_gpu} audio={audio.codec}"
        )
        return VideoPlan(
            extension=fmt.extension,
            codec=codec,
            family=family,
            container=fmt.container,
            quality_args=tuple(quality_args),
            hwaccel_args=tuple(hwaccel),
            filters=tuple(filters),
            frame_rate=frame_rate,
            audio=audio,
            output_args=output_args,
        )

    def _encode_plan(self, fmt: AudioFormat, settings: ConversionSettings) -> AudioPlan:
        requested = settings.bitrate if settings.quality == Quality.CUSTOM else None
        bitrate_k = audio_bitrate(fmt, settings.quality, requested) if fmt.lossy else None
        special = () if fmt.codec in SKIP_SPECIAL_PARAMS else tuple(fmt.special_params)
        return AudioPlan(
            codec=fmt.ffmpeg_codec,
            bitrate_k=bitrate_k,
            quality_args=tuple(audio_quality_args(fmt, settings.quality, requested)),
            sample_rate=resolve_sample_rate(fmt, settings.sample_rate),
            channels=resolve_channels(fmt, settings.channels),
            container=fmt.container,
            special_params=special,
        )

    def resolve_audio(self, extension: str, probe: MediaProbeResult, settings: ConversionSettings) -> AudioPlan:
        """Audio-to-audio conversion; always re-encodes unless a copy is explicitly asked for."""
        fmt = self.catalog.require_audio(extension, task_id=settings.task_id)
        source = probe.primary_audio
        if settings.audio_action == AudioAction.COPY and source and fmt.can_copy_codec(source.codec):
            return AudioPlan(codec="copy", container=fmt.container)
        return self._encode_plan(fmt, settings)

    def resolve_extraction(self, extension: str, probe: MediaProbeResult, settings: ConversionSettings,
                           input_path: str = "") -> AudioPlan:
        fmt = self.catalog.require_audio(extension, task_id=settings.task_id)
        if not probe.audio_streams:
            raise NoAudioStream(input_path, task_id=settings.task_id)
        if not fmt.is_suitable_for_extraction():
            logger.warning(f"Format '{fmt.extension}' may not be ideal for audio extraction")

        source_codec = probe.primary_audio.codec
        if settings.copy_audio and fmt.can_copy_codec(source_codec):
            logger.debug(f"EXTRACT: task={settings.task_id} copying {source_codec} stream")
            return AudioPlan(codec="copy", container=fmt.container)
        if settings.copy_audio:
            logger.info(f"EXTRACT: cannot copy '{source_codec}' into {fmt.extension}, transcoding")
        return self._encode_plan(fmt, settings)
