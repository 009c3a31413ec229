"""Resolver plans to ffmpeg argument vectors."""

from typing import List, Optional, Tuple

from mcv.domain.models import FileMetadata
from mcv.pipeline.builder import CommandBuilder
from mcv.pipeline.resolver import AudioPlan, VideoPlan


def _apply_audio_encode(builder: CommandBuilder, plan: AudioPlan):
    builder.audio_codec(plan.codec)
    builder.args(plan.quality_args)
    if plan.sample_rate is not None:
        builder.sample_rate(plan.sample_rate)
    if plan.channels is not None:
        builder.channels(plan.channels)
    builder.args(plan.special_params)


def build_video_command(
    plan: VideoPlan,
    input_path: str,
    output_path: str,
    copy_metadata: bool = True,
    metadata: Optional[FileMetadata] = None,
) -> Tuple[List[str], str]:
    builder = CommandBuilder(input_path, output_path).hwaccel(plan.hwaccel_args)
    builder.video_codec(plan.codec).args(plan.quality_args)
    if plan.frame_rate:
        builder.frame_rate(plan.frame_rate)

    audio = plan.audio
    if audio.disabled:
        builder.disable_audio()
    else:
        builder.audio_codec(audio.codec)
        if not audio.copy and audio.bitrate_k:
            builder.audio_bitrate(audio.bitrate_k)

    for expression in plan.filters:
        builder.filter(expression)

    builder.container(plan.container)
    builder.output_options(plan.output_args)
    builder.metadata(copy_metadata, metadata)
    return builder.build()


def build_audio_command(
    plan: AudioPlan,
    input_path: str,
    output_path: str,
    copy_metadata: bool = True,
    metadata: Optional[FileMetadata] = None,
) -> Tuple[List[str], str]:
    """Audio output from any input; video streams are dropped."""
    builder = CommandBuilder(input_path, output_path).disable_video()
    if plan.copy:
        builder.audio_codec("copy")
    else:
        _apply_audio_encode(builder, plan)
    builder.container(plan.container)
    builder.metadata(copy_metadata, metadata)
    return builder.build()


build_extraction_command = build_audio_command
