import pytest
from mcv.domain.errors import CatalogError, UnsupportedFormat
from mcv.formats.capabilities import AudioFormat, Category, VideoFormat
from mcv.formats.catalog import FormatCatalog

AUDIO_ENTRY = """
  - extension: mp3
    name: MP3
    category: popular
    stability: stable
    codec: libmp3lame
    lossy: true
    bitrate_range: [32, 320]
    recommended_bitrate: 192
    sample_rates: [44100, 48000]
    recommended_sample_rate: 44100
    channels_support: [1, 2]
"""

VIDEO_ENTRY = """
  - extension: mp4
    name: MP4
    category: popular
    stability: stable
    container: mp4
    video_codecs: [h264]
    audio_codecs: [aac]
"""


def write_tables(tmp_path, audio_body, video_body):
    audio = tmp_path / "audio.yaml"
    video = tmp_path / "video.yaml"
    audio.write_text(audio_body)
    video.write_text(video_body)
    return audio, video


def test_bundled_catalog_loads(catalog):
    assert len(catalog) == len(catalog.all())
    assert len(catalog.audio_formats()) >= 18
    assert len(catalog.video_formats()) >= 18


def test_lookup_normalizes_extension(catalog):
    assert catalog.lookup("MP3").extension == "mp3"
    assert catalog.lookup(".flac").extension == "flac"
    assert catalog.lookup("xyz") is None
    assert "mkv" in catalog
    assert "doc" not in catalog


def test_lookup_returns_same_instance(catalog):
    assert catalog.lookup("mp4") is catalog.lookup("mp4")


def test_all_is_ordered_by_category(catalog):
    ranks = [record.category.rank for record in catalog.all()]
    assert ranks == sorted(ranks)
    assert catalog.all()[0].category == Category.POPULAR
    assert catalog.all()[-1].category == Category.EXOTIC


def test_ties_keep_catalog_order(catalog):
    popular = [r.extension for r in catalog.all() if r.category == Category.POPULAR]
    assert popular[:5] == ["mp3", "aac", "m4a", "flac", "wav"]
    assert popular.index("wav") < popular.index("mp4")


def test_typed_accessors(catalog):
    assert isinstance(catalog.audio("opus"), AudioFormat)
    assert catalog.audio("mp4") is None
    assert isinstance(catalog.video("webm"), VideoFormat)
    assert catalog.video("mp3") is None


def test_require_raises_unsupported_format(catalog):
    with pytest.raises(UnsupportedFormat) as exc:
        catalog.require_video("mp3", task_id="t9")
    assert exc.value.task_id == "t9"
    with pytest.raises(UnsupportedFormat):
        catalog.require_audio("nope")


def test_extensions_unique_across_tables(catalog):
    audio = {r.extension for r in catalog.audio_formats()}
    video = {r.extension for r in catalog.video_formats()}
    assert not audio & video


def test_records_are_immutable(catalog):
    record = catalog.audio("mp3")
    with pytest.raises(Exception):
        record.codec = "aac"


def test_from_files_custom_tables(tmp_path):
    audio, video = write_tables(tmp_path, "format:" + AUDIO_ENTRY, "format:" + VIDEO_ENTRY)
    catalog = FormatCatalog.from_files(audio, video)
    assert [r.extension for r in catalog.all()] == ["mp3", "mp4"]


def test_missing_table_is_catalog_error(tmp_path):
    audio, _ = write_tables(tmp_path, "format:" + AUDIO_ENTRY, "")
    with pytest.raises(CatalogError, match="not found"):
        FormatCatalog.from_files(audio, tmp_path / "missing.yaml")


def test_empty_table_is_catalog_error(tmp_path):
    audio, video = write_tables(tmp_path, "format:" + AUDIO_ENTRY, "format: []\n")
    with pytest.raises(CatalogError, match="non-empty"):
        FormatCatalog.from_files(audio, video)


def test_yaml_syntax_error_is_catalog_error(tmp_path):
    audio, video = write_tables(tmp_path, "format: [unclosed\n", "format:" + VIDEO_ENTRY)
    with pytest.raises(CatalogError):
        FormatCatalog.from_files(audio, video)


def test_invalid_record_is_catalog_error(tmp_path):
    broken = AUDIO_ENTRY.replace("recommended_sample_rate: 44100", "recommended_sample_rate: 96000")
    audio, video = write_tables(tmp_path, "format:" + broken, "format:" + VIDEO_ENTRY)
    with pytest.raises(CatalogError, match="mp3"):
        FormatCatalog.from_files(audio, video)


def test_duplicate_extension_is_catalog_error(tmp_path):
    audio, video = write_tables(
        tmp_path, "format:" + AUDIO_ENTRY, "format:" + VIDEO_ENTRY.replace("mp4", "mp3", 1)
    )
    with pytest.raises(CatalogError, match="Duplicate"):
        FormatCatalog.from_files(audio, video)
