import re
import time
from typing import Callable, Optional

from mcv.domain.models import ConversionProgress

# ffmpeg -progress writes both keys with the same microsecond value; the first one seen is used.
OUT_TIME_US_REGEX = re.compile(r"out_time_us=(-?\d+)")
OUT_TIME_MS_REGEX = re.compile(r"out_time_ms=(-?\d+)")
FPS_REGEX = re.compile(r"fps=([\d.]+)")
SPEED_REGEX = re.compile(r"speed=\s*([\d.]+)x")
END_MARKER = "progress=end"

MIN_INTERVAL_MS = 100
MAX_INTERVAL_MS = 500
MAX_RUNNING_PERCENT = 99.0


class ProgressParser:
    """Turns the `-progress pipe:1` stream of one task into throttled snapshots.

    One instance per task, fed from a single thread. Snapshots are emitted
    at most once per `interval_ms`, except the end marker which always emits
    when there is something to finalize. Percent never decreases and stays
    at or below 99 until the end marker, which forces exactly 100 and ETA 0.
    """

    def __init__(
        self,
        task_id: str,
        total_duration: float,
        interval_ms: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not MIN_INTERVAL_MS <= interval_ms <= MAX_INTERVAL_MS:
            raise ValueError(f"interval_ms must be within {MIN_INTERVAL_MS}-{MAX_INTERVAL_MS}, got {interval_ms}")
        self.task_id = task_id
        self.total_duration = max(0.0, float(total_duration or 0.0))
        self.interval_s = interval_ms / 1000.0
        self._clock = clock
        self._start = clock()
        self._last_emit: Optional[float] = None
        self._time_regex: Optional[re.Pattern] = None
        self._fps: Optional[float] = None
        self._speed: Optional[float] = None
        self.last_progress: Optional[ConversionProgress] = None
        self.ended = False

    def _extract_time(self, line: str) -> Optional[float]:
        if self._time_regex is None:
            for regex in (OUT_TIME_US_REGEX, OUT_TIME_MS_REGEX):
                if regex.search(line):
                    self._time_regex = regex
                    break
            else:
                return None
        match = self._time_regex.search(line)
        if not match:
            return None
        return max(0, int(match.group(1))) / 1_000_000.0

    def _percent(self, current: float) -> float:
        if self.total_duration > 0:
            percent = min(MAX_RUNNING_PERCENT, current / self.total_duration * 100.0)
        else:
            percent = 0.0
        if self.last_progress is not None:
            percent = max(percent, self.last_progress.percent)
        return percent

    def _eta(self, current: float, now: float) -> Optional[int]:
        if current <= 0 or current >= self.total_duration:
            return None
        remaining = self.total_duration - current
        if self._speed is not None and self._speed > 0:
            return int(remaining / self._speed)
        elapsed = now - self._start
        if elapsed <= 0:
            return None
        rate = current / elapsed
        if rate <= 0:
            return None
        return int(remaining / rate)

    def parse_line(self, line: str) -> Optional[ConversionProgress]:
        """Consumes one line; returns a snapshot when one is due."""
        if self.ended:
            return None

        if END_MARKER in line:
            self.ended = True
            if self.last_progress is None:
                return None
            return self._complete()

        fps_match = FPS_REGEX.search(line)
        if fps_match:
            self._fps = float(fps_match.group(1))
        speed_match = SPEED_REGEX.search(line)
        if speed_match:
            self._speed = float(speed_match.group(1))

        current = self._extract_time(line)
        if current is None:
            return None

        now = self._clock()
        if self._last_emit is not None and now - self._last_emit < self.interval_s:
            return None

        progress = ConversionProgress(
            task_id=self.task_id,
            percent=self._percent(current),
            fps=self._fps,
            speed=self._speed,
            eta_seconds=self._eta(current, now),
            current_time=current,
            total_time=self.total_duration,
        )
        self._last_emit = now
        self.last_progress = progress
        return progress

    def _complete(self) -> ConversionProgress:
        base = self.last_progress or ConversionProgress(
            task_id=self.task_id,
            percent=0.0,
            current_time=self.total_duration,
            total_time=self.total_duration,
        )
        final = base.model_copy(update={"percent": 100.0, "eta_seconds": 0})
        self.last_progress = final
        self._last_emit = self._clock()
        return final

    def finalize(self) -> Optional[ConversionProgress]:
        """Synthesizes the 100% snapshot for a successful exit that never printed the end marker."""
        if self.last_progress is not None and self.last_progress.percent >= 100.0:
            return None
        self.ended = True
        return self._complete()
