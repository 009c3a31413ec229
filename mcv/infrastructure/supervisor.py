import logging
import queue
import subprocess
import threading
import time
from typing import Callable, List, Optional, Sequence

from mcv.config.models import SupervisorConfig
from mcv.domain.errors import ConversionError, ConversionTimeout, EncodingFailed, SpawnFailed
from mcv.domain.events import (
    ConversionCancelled,
    ConversionCompleted,
    ConversionFailed,
    ConversionProgressUpdated,
    ConversionStarted,
    Event,
)
from mcv.domain.models import ConversionResult, TaskState
from mcv.infrastructure.event_bus import EventBus
from mcv.infrastructure.housekeeping import HousekeepingService
from mcv.infrastructure.progress import ProgressParser
from mcv.infrastructure.registry import TaskRegistry

# Wall-clock bound for a single conversion.
CONVERSION_TIMEOUT_S = 3600.0
POLL_INTERVAL_S = 0.1

logger = logging.getLogger(__name__)


class ProcessSupervisor:
    """Runs ffmpeg for one task at a time per calling thread.

    `spawn` blocks until the task reaches a terminal state. Several threads
    may call it concurrently; they share the task registry, which is also
    what `cancel` acts on.
    """

    def __init__(
        self,
        event_bus: EventBus,
        ffmpeg_path: str = "ffmpeg",
        config: Optional[SupervisorConfig] = None,
        registry: Optional[TaskRegistry] = None,
        housekeeping: Optional[HousekeepingService] = None,
        timeout_s: float = CONVERSION_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.event_bus = event_bus
        self.ffmpeg_path = ffmpeg_path
        self.config = config or SupervisorConfig()
        self.registry = registry or TaskRegistry()
        self.housekeeping = housekeeping or HousekeepingService()
        self.timeout_s = timeout_s
        self._clock = clock

    def _publish(self, event: Event):
        try:
            self.event_bus.publish(event)
        except Exception:
            logger.exception(f"Subscriber failed while handling {event.topic}")

    def _drain_diagnostics(self, task_id: str, stream):
        for raw in stream:
            line = raw.rstrip()
            if not line:
                continue
            if any(marker in line for marker in self.config.error_markers):
                logger.warning(f"FFMPEG_ERR: task={task_id} {line}")
            else:
                logger.debug(f"FFMPEG_LOG: task={task_id} {line}")

    def _fail(self, task_id: str, error: ConversionError, output_path: Optional[str], remove_output: bool = True):
        if remove_output:
            self.housekeeping.remove_partial_output(output_path)
        self._publish(ConversionFailed(task_id=task_id, error=error.message, code=error.code))
        raise error

    def _wait_exit(self, process: subprocess.Popen) -> Optional[int]:
        try:
            return process.wait(timeout=self.config.kill_grace_s)
        except subprocess.TimeoutExpired:
            logger.warning(f"FFMPEG_STUCK: pid={process.pid} did not exit within {self.config.kill_grace_s}s")
            return None

    def _finish_cancelled(self, task_id: str, process: subprocess.Popen, output_path: Optional[str],
                          started: float) -> ConversionResult:
        self._wait_exit(process)
        self.housekeeping.remove_partial_output(output_path)
        elapsed = self._clock() - started
        logger.info(f"FFMPEG_END: task={task_id} status=cancelled elapsed={elapsed:.2f}s")
        self._publish(ConversionCancelled(task_id=task_id))
        return ConversionResult(task_id=task_id, state=TaskState.CANCELLED, output_path=output_path)

    def _on_timeout(self, task_id: str, process: subprocess.Popen, output_path: Optional[str],
                    started: float) -> ConversionResult:
        owned = self.registry.take(task_id)
        if owned is None:
            # cancel() popped the entry first
            return self._finish_cancelled(task_id, process, output_path, started)
        self._kill_timed_out(task_id, owned, output_path)

    def _kill_timed_out(self, task_id: str, process: subprocess.Popen, output_path: Optional[str]):
        process.kill()
        self._wait_exit(process)
        logger.error(f"FFMPEG_END: task={task_id} status=timed_out limit={self.timeout_s:g}s")
        self._fail(task_id, ConversionTimeout(self.timeout_s, task_id=task_id), output_path)

    def spawn(self, task_id: str, args: Sequence[str], expected_duration: float,
              output_path: Optional[str] = None) -> ConversionResult:
        """Runs ffmpeg with `args` and supervises it to a terminal state.

        Returns a completed or cancelled `ConversionResult`. Raises
        `SpawnFailed`, `EncodingFailed` or `ConversionTimeout` after the
        matching `conversion-error` event has been published.
        """
        args = list(args)
        if output_path is None and args:
            output_path = args[-1]
        cmd: List[str] = [self.ffmpeg_path, *args]

        started = self._clock()
        deadline = started + self.timeout_s
        logger.info(f"FFMPEG_START: task={task_id} output={output_path} duration={expected_duration:.2f}s")
        logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            logger.error(f"FFMPEG_END: task={task_id} status=spawn_failed ({exc})")
            # Nothing was written yet; an existing file at output_path is not ours.
            self._fail(task_id, SpawnFailed(f"Failed to spawn {self.ffmpeg_path}: {exc}", task_id=task_id),
                       output_path, remove_output=False)

        if not self.registry.register(task_id, process):
            process.kill()
            process.wait()
            self._fail(task_id, SpawnFailed(f"Task {task_id} is already running", task_id=task_id),
                       output_path, remove_output=False)

        self._publish(ConversionStarted(task_id=task_id))

        diagnostics = threading.Thread(
            target=self._drain_diagnostics, args=(task_id, process.stderr), daemon=True
        )
        diagnostics.start()

        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        def _reader():
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        parser = ProgressParser(task_id, expected_duration, interval_ms=self.config.progress_interval_ms,
                                clock=self._clock)

        while True:
            if self._clock() >= deadline:
                return self._on_timeout(task_id, process, output_path, started)
            try:
                line = output_queue.get(timeout=POLL_INTERVAL_S)
            except queue.Empty:
                continue
            if line is None:
                break
            progress = parser.parse_line(line)
            if progress is not None:
                self._publish(ConversionProgressUpdated(progress=progress))

        owned = self.registry.take(task_id)
        if owned is None:
            return self._finish_cancelled(task_id, process, output_path, started)

        # stdout closed; the process is exiting but can still stall, so the deadline keeps applying
        while True:
            try:
                exit_code = owned.wait(timeout=POLL_INTERVAL_S)
                break
            except subprocess.TimeoutExpired:
                if self._clock() >= deadline:
                    self._kill_timed_out(task_id, owned, output_path)
        diagnostics.join(timeout=self.config.kill_grace_s)
        elapsed = self._clock() - started

        if exit_code != 0:
            logger.error(f"FFMPEG_END: task={task_id} status=failed code={exit_code} elapsed={elapsed:.2f}s")
            self._fail(task_id, EncodingFailed(exit_code, task_id=task_id), output_path)

        final = parser.finalize()
        if final is not None:
            self._publish(ConversionProgressUpdated(progress=final))
        logger.info(f"FFMPEG_END: task={task_id} status=completed elapsed={elapsed:.2f}s")
        self._publish(ConversionCompleted(task_id=task_id))
        return ConversionResult(task_id=task_id, state=TaskState.COMPLETED, output_path=output_path)

    def cancel(self, task_id: str) -> bool:
        """Kills the task if it is live. Unknown or finished ids are a no-op."""
        process = self.registry.take(task_id)
        if process is None:
            logger.debug(f"FFMPEG_CANCEL: task={task_id} not running")
            return False
        logger.info(f"FFMPEG_CANCEL: task={task_id} pid={process.pid}")
        process.kill()
        return True

    def cancel_all(self) -> int:
        return sum(1 for task_id in self.registry.task_ids() if self.cancel(task_id))

    def active_tasks(self) -> List[str]:
        return self.registry.task_ids()
