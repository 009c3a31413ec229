"""Format recommendation and pre-flight validation.

Both functions are advisory: they never raise for an unsupported request,
they report it. The resolver is still the authority on what gets spawned.
"""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from mcv.domain.models import ConversionSettings, MediaKind
from mcv.formats.capabilities import Stability, VideoFormat
from mcv.formats.catalog import FormatCatalog


class Compatibility(str, Enum):
    FAST = "fast"
    SAFE = "safe"
    SETUP = "setup"
    EXPERIMENTAL = "experimental"
    PROBLEMATIC = "problematic"


class ValidationResult(BaseModel):
    is_valid: bool = True
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    suggested_params: List[str] = Field(default_factory=list)
    alternative_codec: Optional[str] = None

    def warn(self, message: str):
        self.warnings.append(message)

    def error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def check_stability(self, stability: Stability, extension: str):
        if stability == Stability.PROBLEMATIC:
            self.error(f"Format '{extension}' is problematic and may fail")
        elif stability == Stability.EXPERIMENTAL:
            self.warn(f"Format '{extension}' is experimental")
        elif stability == Stability.REQUIRES_SETUP:
            self.warn(f"Format '{extension}' may require additional setup")


def _empty_groups() -> Dict[Compatibility, List[str]]:
    return {level: [] for level in Compatibility}


def video_compatibility(
    fmt: VideoFormat,
    video_codec: str,
    audio_codec: str = "",
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Compatibility:
    if fmt.stability == Stability.REQUIRES_SETUP:
        return Compatibility.SETUP
    if fmt.stability == Stability.EXPERIMENTAL:
        return Compatibility.EXPERIMENTAL
    if fmt.stability == Stability.PROBLEMATIC:
        return Compatibility.PROBLEMATIC

    video_ok = bool(video_codec) and fmt.supports_video_codec(video_codec)
    audio_ok = not audio_codec or not fmt.audio_codecs or fmt.supports_audio_codec(audio_codec)
    resolution_ok = True
    if width is not None and height is not None:
        resolution_ok = fmt.is_resolution_compatible(width, height)

    if video_ok and audio_ok and resolution_ok:
        return Compatibility.FAST
    if not resolution_ok and fmt.has_strict_resolution:
        return Compatibility.SETUP
    return Compatibility.SAFE


def classify_video_formats(
    catalog: FormatCatalog,
    video_codec: str,
    audio_codec: str = "",
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Dict[Compatibility, List[str]]:
    """Groups every video format by how cheaply a source with these streams converts into it."""
    groups = _empty_groups()
    for fmt in catalog.video_formats():
        level = video_compatibility(fmt, video_codec, audio_codec, width, height)
        groups[level].append(fmt.extension)
    return groups


def classify_audio_formats(catalog: FormatCatalog, audio_codec: str) -> Dict[Compatibility, List[str]]:
    groups = _empty_groups()
    for fmt in catalog.audio_formats():
        if fmt.stability == Stability.STABLE:
            level = Compatibility.FAST if fmt.can_copy_codec(audio_codec) else Compatibility.SAFE
        elif fmt.stability == Stability.REQUIRES_SETUP:
            level = Compatibility.SETUP
        elif fmt.stability == Stability.EXPERIMENTAL:
            level = Compatibility.EXPERIMENTAL
        else:
            level = Compatibility.PROBLEMATIC
        groups[level].append(fmt.extension)
    return groups


def validate_conversion(
    catalog: FormatCatalog,
    input_ext: str,
    output_ext: str,
    media_kind: MediaKind,
    settings: Optional[ConversionSettings] = None,
) -> ValidationResult:
    """Checks a planned conversion and collects warnings and blocking errors."""
    settings = settings or ConversionSettings()
    result = ValidationResult()

    if media_kind == MediaKind.AUDIO:
        _validate_audio(result, catalog, input_ext, output_ext, settings)
    elif media_kind == MediaKind.VIDEO:
        _validate_video(result, catalog, output_ext, settings)
    else:
        result.warn("Unknown media type")
    return result


def _validate_audio(result: ValidationResult, catalog: FormatCatalog, input_ext: str, output_ext: str,
                    settings: ConversionSettings):
    fmt = catalog.audio(output_ext)
    if fmt is None:
        result.error(f"Unknown audio format: {output_ext}")
        return

    result.check_stability(fmt.stability, fmt.extension)
    result.suggested_params.extend(fmt.special_params)

    source = catalog.audio(input_ext)
    if source is not None:
        if source.lossy and not fmt.lossy:
            result.warn("Converting lossy to lossless won't improve quality")
        elif not source.lossy and fmt.lossy:
            result.warn("Converting lossless to lossy will reduce quality permanently")

    if settings.sample_rate is not None and not fmt.supports_sample_rate(settings.sample_rate):
        result.warn(
            f"{settings.sample_rate}Hz not optimal for {fmt.extension}. "
            f"Recommended: {fmt.recommended_sample_rate}Hz"
        )

    if settings.channels is not None and not fmt.supports_channels(settings.channels):
        result.error(
            f"{fmt.extension} doesn't support {settings.channels} channels. "
            f"Supported: {list(fmt.channels_support)}"
        )


def _validate_video(result: ValidationResult, catalog: FormatCatalog, output_ext: str,
                    settings: ConversionSettings):
    fmt = catalog.video(output_ext)
    if fmt is None:
        result.error(f"Unknown video format: {output_ext}")
        return

    result.check_stability(fmt.stability, fmt.extension)
    result.suggested_params.extend(fmt.special_params)

    if fmt.max_resolution is not None and settings.width is not None and settings.height is not None:
        max_w, max_h = fmt.max_resolution
        if settings.width > max_w or settings.height > max_h:
            if fmt.has_strict_resolution:
                result.error(f"{fmt.extension} requires exactly {max_w}x{max_h} resolution")
            else:
                result.warn(f"Resolution exceeds recommended max {max_w}x{max_h} for {fmt.extension}")

    if settings.video_codec and not fmt.supports_video_codec(settings.video_codec):
        result.error(f"{fmt.extension} doesn't support video codec '{settings.video_codec}'")
        result.alternative_codec = fmt.default_video_codec()
