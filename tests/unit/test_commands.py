from mcv.domain.models import ConversionSettings, FileMetadata
from mcv.pipeline.commands import build_audio_command, build_extraction_command, build_video_command
from mcv.pipeline.resolver import AudioPlan, CodecResolver


def test_video_command_vector(catalog, cpu_profile, video_probe):
    plan = CodecResolver(catalog, cpu_profile).resolve_video("mp4", video_probe, ConversionSettings())
    argv, output = build_video_command(plan, "in.mov", "out.mp4")

    assert argv == [
        "-y", "-hide_banner", "-nostdin",
        "-i", "in.mov",
        "-c:v", "libx264", "-preset", "medium", "-crf", "23",
        "-c:a", "copy",
        "-vf", "format=yuv420p",
        "-f", "mp4", "-movflags", "+faststart", "-profile:v", "high", "-level", "4.0",
        "-map_metadata", "0",
        "-progress", "pipe:1",
        "out.mp4",
    ]
    assert output == "out.mp4"


def test_video_command_fixed_resolution(catalog, cpu_profile, video_probe):
    plan = CodecResolver(catalog, cpu_profile).resolve_video("vob", video_probe, ConversionSettings())
    argv, _ = build_video_command(plan, "in.mp4", "out.vob", copy_metadata=False)

    assert argv[argv.index("-r") + 1] == "25"
    assert argv[argv.index("-vf") + 1] == "scale=720:576"
    assert argv[argv.index("-map_metadata") + 1] == "-1"
    assert argv.index("-c:v") < argv.index("-vf") < argv.index("-f")


def test_video_command_reencoded_audio_has_bitrate(catalog, cpu_profile, video_probe):
    plan = CodecResolver(catalog, cpu_profile).resolve_video("webm", video_probe, ConversionSettings())
    argv, _ = build_video_command(plan, "in.mp4", "out.webm")
    assert argv[argv.index("-c:a") + 1] == "libopus"
    assert argv[argv.index("-b:a") + 1] == "128k"


def test_video_command_without_audio(catalog, cpu_profile, silent_video_probe):
    plan = CodecResolver(catalog, cpu_profile).resolve_video("mp4", silent_video_probe, ConversionSettings())
    argv, _ = build_video_command(plan, "in.mkv", "out.mp4")
    assert "-an" in argv
    assert "-c:a" not in argv


def test_video_command_gpu_input_options(catalog, nvidia_profile, video_probe):
    plan = CodecResolver(catalog, nvidia_profile).resolve_video("mp4", video_probe, ConversionSettings())
    argv, _ = build_video_command(plan, "in.mov", "out.mp4")
    assert argv[3:8] == ["-hwaccel", "cuda", "-hwaccel_output_format", "cuda", "-i"]
    assert "-vf" not in argv


def test_audio_command_vector(catalog, cpu_profile, audio_probe):
    plan = CodecResolver(catalog, cpu_profile).resolve_audio("mp3", audio_probe, ConversionSettings())
    argv, output = build_audio_command(plan, "in.flac", "out.mp3")

    assert argv == [
        "-y", "-hide_banner", "-nostdin",
        "-i", "in.flac",
        "-vn", "-c:a", "libmp3lame", "-b:a", "192k", "-ar", "44100", "-ac", "2",
        "-id3v2_version", "3",
        "-map_metadata", "0",
        "-progress", "pipe:1",
        "out.mp3",
    ]
    assert output == "out.mp3"


def test_audio_command_with_metadata_fields():
    plan = AudioPlan(codec="flac", sample_rate=44100, channels=2, container="flac")
    argv, _ = build_audio_command(plan, "in.wav", "out.flac", metadata=FileMetadata(album="Demo"))
    assert argv[argv.index("-f") + 1] == "flac"
    assert argv[-7:-3] == ["-map_metadata", "0", "-metadata", "album=Demo"]


def test_extraction_copy_command(catalog, cpu_profile, video_probe):
    plan = CodecResolver(catalog, cpu_profile).resolve_extraction("m4a", video_probe, ConversionSettings())
    argv, _ = build_extraction_command(plan, "in.mp4", "out.m4a")
    assert argv[5:10] == ["-vn", "-c:a", "copy", "-f", "ipod"]
    assert "-b:a" not in argv
