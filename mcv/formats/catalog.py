"""Immutable lookup of output format capabilities.

The catalog is built once at startup from two declarative YAML tables
(`data/audio_formats.yaml`, `data/video_formats.yaml`) and injected into the
resolver and the service. A malformed table raises `CatalogError` during
construction; callers treat that as fatal.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from mcv.domain.errors import CatalogError, UnsupportedFormat
from mcv.formats.capabilities import AudioFormat, FormatCapability, VideoFormat

DATA_DIR = Path(__file__).resolve().parent / "data"
AUDIO_TABLE = DATA_DIR / "audio_formats.yaml"
VIDEO_TABLE = DATA_DIR / "video_formats.yaml"

logger = logging.getLogger(__name__)


def normalize_extension(extension: str) -> str:
    return extension.strip().lower().lstrip(".")


def _read_table(path: Path) -> List[dict]:
    if not path.exists():
        raise CatalogError(f"Format table not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise CatalogError(f"Failed to parse {path}: {exc}") from exc
    entries = data.get("format") if isinstance(data, dict) else None
    if not isinstance(entries, list) or not entries:
        raise CatalogError(f"{path}: expected a non-empty 'format' list")
    return entries


def _parse_entries(entries: List[dict], model, source: str):
    records = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise CatalogError(f"{source}: entry #{index} is not a mapping")
        try:
            records.append(model(**entry))
        except ValidationError as exc:
            raise CatalogError(f"{source}: entry #{index} ({entry.get('extension', '?')}) is invalid: {exc}") from exc
    return records


class FormatCatalog:
    """Capability records keyed by extension.

    Extensions are unique across audio and video tables. `all()` is ordered
    by category tier, ties keep catalog order (audio table first).
    """

    def __init__(self, audio_formats: Iterable[AudioFormat], video_formats: Iterable[VideoFormat]):
        self._records: Dict[str, FormatCapability] = {}
        for record in list(audio_formats) + list(video_formats):
            if record.extension in self._records:
                raise CatalogError(f"Duplicate format extension: {record.extension}")
            self._records[record.extension] = record

        order = {ext: i for i, ext in enumerate(self._records)}
        self._ordered: Tuple[FormatCapability, ...] = tuple(
            sorted(self._records.values(), key=lambda r: (r.category.rank, order[r.extension]))
        )

    @classmethod
    def from_files(
        cls,
        audio_path: Optional[Union[str, Path]] = None,
        video_path: Optional[Union[str, Path]] = None,
    ) -> "FormatCatalog":
        audio_file = Path(audio_path) if audio_path else AUDIO_TABLE
        video_file = Path(video_path) if video_path else VIDEO_TABLE
        audio = _parse_entries(_read_table(audio_file), AudioFormat, str(audio_file))
        video = _parse_entries(_read_table(video_file), VideoFormat, str(video_file))
        catalog = cls(audio, video)
        logger.info(f"Format catalog loaded: audio={len(audio)} video={len(video)}")
        return catalog

    def lookup(self, extension: str) -> Optional[FormatCapability]:
        return self._records.get(normalize_extension(extension))

    def audio(self, extension: str) -> Optional[AudioFormat]:
        record = self.lookup(extension)
        return record if isinstance(record, AudioFormat) else None

    def video(self, extension: str) -> Optional[VideoFormat]:
        record = self.lookup(extension)
        return record if isinstance(record, VideoFormat) else None

    def require_audio(self, extension: str, task_id: Optional[str] = None) -> AudioFormat:
        record = self.audio(extension)
        if record is None:
            raise UnsupportedFormat(extension, task_id=task_id)
        return record

    def require_video(self, extension: str, task_id: Optional[str] = None) -> VideoFormat:
        record = self.video(extension)
        if record is None:
            raise UnsupportedFormat(extension, task_id=task_id)
        return record

    def all(self) -> Tuple[FormatCapability, ...]:
        return self._ordered

    def audio_formats(self) -> Tuple[AudioFormat, ...]:
        return tuple(r for r in self._ordered if isinstance(r, AudioFormat))

    def video_formats(self) -> Tuple[VideoFormat, ...]:
        return tuple(r for r in self._ordered if isinstance(r, VideoFormat))

    def __contains__(self, extension: str) -> bool:
        return self.lookup(extension) is not None

    def __len__(self) -> int:
        return len(self._records)
