from mcv.domain.models import FileMetadata
from mcv.pipeline.builder import CommandBuilder


def test_minimal_command():
    argv, output = CommandBuilder("in.wav", "out.flac").build()
    assert argv == ["-y", "-hide_banner", "-nostdin", "-i", "in.wav", "-progress", "pipe:1", "out.flac"]
    assert output == "out.flac"


def test_slots_ignore_call_order():
    builder = CommandBuilder("in.mp4", "out.mkv")
    builder.output_option("-movflags", "+faststart")
    builder.filter("scale=1280:720")
    builder.video_codec("libx264")
    builder.hwaccel(["-hwaccel", "cuda"])
    builder.filter("format=yuv420p")
    builder.audio_codec("copy")

    argv, _ = builder.build()

    assert argv == [
        "-y", "-hide_banner", "-nostdin",
        "-hwaccel", "cuda",
        "-i", "in.mp4",
        "-c:v", "libx264", "-c:a", "copy",
        "-vf", "scale=1280:720,format=yuv420p",
        "-movflags", "+faststart",
        "-progress", "pipe:1",
        "out.mkv",
    ]


def test_overwrite_flag_once_and_output_last():
    builder = CommandBuilder("a.mp3", "b.ogg").audio_codec("libvorbis").arg("-q:a", 5)
    argv, output = builder.build()
    assert argv.count("-y") == 1
    assert argv[-1] == output
    assert argv.index("-i") < argv.index("-c:a")


def test_build_is_repeatable():
    builder = CommandBuilder("a.mp4", "b.webm").video_codec("libvpx-vp9").filter("scale=640:360")
    first = builder.build()
    second = builder.build()
    assert first == second
    assert first[0].count("-vf") == 1


def test_scale_forces_even_dimensions():
    argv, _ = CommandBuilder("a", "b").scale(1281, 721).build()
    assert "scale=1280:720" in argv


def test_scale_without_size_is_noop():
    argv, _ = CommandBuilder("a", "b").scale(None, 720).build()
    assert "-vf" not in argv


def test_stream_helpers():
    argv, _ = (
        CommandBuilder("a", "b")
        .disable_video()
        .audio_codec("aac")
        .audio_bitrate(192)
        .sample_rate(48000)
        .channels(2)
        .build()
    )
    assert argv[5:] == ["-vn", "-c:a", "aac", "-b:a", "192k", "-ar", "48000", "-ac", "2", "-progress", "pipe:1", "b"]


def test_container_and_metadata():
    meta = FileMetadata(title="Live", artist="Band")
    argv, _ = CommandBuilder("a", "b").container("ipod").container(None).metadata(True, meta).build()
    assert argv[argv.index("-f") + 1] == "ipod"
    assert argv.count("-f") == 1
    assert ["-map_metadata", "0", "-metadata", "title=Live", "-metadata", "artist=Band"] == argv[7:13]


def test_metadata_stripped():
    argv, _ = CommandBuilder("a", "b").metadata(False).build()
    assert argv[argv.index("-map_metadata") + 1] == "-1"
