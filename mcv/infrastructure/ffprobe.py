import subprocess
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from mcv.domain.models import AudioStream, MediaProbeResult, VideoStream

logger = logging.getLogger(__name__)

# Attached cover art shows up as a one-frame video stream.
_ATTACHED_PIC = "attached_pic"


class FFprobeAdapter:
    """Wrapper around ffprobe to describe the streams of an input file."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout_s: float = 60.0):
        self.ffprobe_path = ffprobe_path
        self.timeout_s = timeout_s

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def _to_int(value: Any) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        if ":" in text:
            parts = text.split(":")
            if len(parts) in (2, 3):
                try:
                    parts_f = [float(p) for p in parts]
                except ValueError:
                    return 0.0
                if len(parts_f) == 2:
                    minutes, seconds = parts_f
                    return minutes * 60 + seconds
                hours, minutes, seconds = parts_f
                return hours * 3600 + minutes * 60 + seconds
        return 0.0

    @classmethod
    def _parse_frame_rate(cls, value: Any) -> float:
        text = str(value or "0/0")
        if "/" in text:
            num_text, den_text = text.split("/", 1)
            num = cls._to_float(num_text)
            den = cls._to_float(den_text)
            if den == 0:
                return 0.0
            return round(num / den, 3)
        return cls._to_float(text)

    @classmethod
    def _parse_time_base_duration(cls, duration_ts: Any, time_base: Any) -> float:
        if duration_ts is None or time_base is None:
            return 0.0
        time_base_text = str(time_base)
        if "/" not in time_base_text:
            return 0.0
        num_text, den_text = time_base_text.split("/", 1)
        num = cls._to_float(num_text)
        den = cls._to_float(den_text)
        if den == 0:
            return 0.0
        ticks = cls._to_float(duration_ts)
        if ticks <= 0:
            return 0.0
        return ticks * (num / den)

    def _duration(self, fmt: Dict[str, Any], streams: List[Dict[str, Any]]) -> float:
        # Fallback order: format.duration, format tags, stream.duration, stream tags, duration_ts/time_base, size/bitrate
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        for stream in streams:
            if duration > 0:
                break
            duration = self._to_float(stream.get("duration"))
            if duration <= 0:
                tags = stream.get("tags", {}) or {}
                duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
            if duration <= 0:
                duration = self._parse_time_base_duration(stream.get("duration_ts"), stream.get("time_base"))
        if duration <= 0:
            bit_rate = self._to_float(fmt.get("bit_rate"))
            size = self._to_float(fmt.get("size"))
            if bit_rate > 0 and size > 0:
                duration = (size * 8) / bit_rate
        return duration

    def parse(self, data: Dict[str, Any]) -> MediaProbeResult:
        """Builds a probe result from ffprobe's JSON document."""
        streams = data.get("streams", []) or []
        fmt = data.get("format", {}) or {}

        video_streams = []
        audio_streams = []
        for stream in streams:
            codec_type = stream.get("codec_type")
            if codec_type == "video":
                if (stream.get("disposition") or {}).get(_ATTACHED_PIC):
                    continue
                video_streams.append(VideoStream(
                    codec=stream.get("codec_name", "unknown"),
                    width=self._to_int(stream.get("width")) or 0,
                    height=self._to_int(stream.get("height")) or 0,
                    fps=self._parse_frame_rate(stream.get("avg_frame_rate") or stream.get("r_frame_rate")),
                    bitrate=self._to_int(stream.get("bit_rate")),
                ))
            elif codec_type == "audio":
                audio_streams.append(AudioStream(
                    codec=stream.get("codec_name", "unknown"),
                    sample_rate=self._to_int(stream.get("sample_rate")) or 0,
                    channels=self._to_int(stream.get("channels")) or 0,
                    bitrate=self._to_int(stream.get("bit_rate")),
                ))

        return MediaProbeResult(
            duration=self._duration(fmt, streams),
            file_size=self._to_int(fmt.get("size")) or 0,
            format_name=fmt.get("format_name", "unknown"),
            video_streams=video_streams,
            audio_streams=audio_streams,
        )

    def probe(self, file_path: Union[str, Path]) -> MediaProbeResult:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(file_path)
        ]

        result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr}")

        info = self.parse(json.loads(result.stdout))
        logger.debug(
            f"PROBE: {file_path} kind={info.media_kind.value} duration={info.duration:.2f}s "
            f"video={len(info.video_streams)} audio={len(info.audio_streams)}"
        )
        return info
