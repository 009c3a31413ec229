import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from mcv.domain.models import ConversionProgress, TaskState


@dataclass
class TaskView:
    task_id: str
    label: str
    target: str
    state: TaskState = TaskState.SPAWNING
    percent: float = 0.0
    fps: Optional[float] = None
    speed: Optional[float] = None
    eta_seconds: Optional[int] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def finished(self) -> bool:
        return self.state not in (TaskState.SPAWNING, TaskState.RUNNING)


class UIState:
    """Thread-safe board of conversion tasks for the live display."""

    def __init__(self):
        self._lock = threading.RLock()
        self.tasks: "OrderedDict[str, TaskView]" = OrderedDict()
        self.completed_count = 0
        self.failed_count = 0
        self.cancelled_count = 0
        self.hardware_label = "CPU Only"
        self.interrupt_requested = False

    def add_task(self, task_id: str, label: str, target: str):
        with self._lock:
            if task_id not in self.tasks:
                self.tasks[task_id] = TaskView(task_id=task_id, label=label, target=target)

    def get(self, task_id: str) -> Optional[TaskView]:
        with self._lock:
            return self.tasks.get(task_id)

    def _ensure(self, task_id: str) -> TaskView:
        view = self.tasks.get(task_id)
        if view is None:
            view = TaskView(task_id=task_id, label=task_id, target="")
            self.tasks[task_id] = view
        return view

    def mark_running(self, task_id: str):
        with self._lock:
            view = self._ensure(task_id)
            view.state = TaskState.RUNNING
            view.started_at = datetime.now()

    def update_progress(self, progress: ConversionProgress):
        with self._lock:
            view = self._ensure(progress.task_id)
            if view.finished:
                return
            view.percent = max(view.percent, progress.percent)
            view.fps = progress.fps
            view.speed = progress.speed
            view.eta_seconds = progress.eta_seconds

    def _finish(self, task_id: str, state: TaskState, error: Optional[str] = None) -> bool:
        view = self._ensure(task_id)
        if view.finished:
            return False
        view.state = state
        view.error = error
        view.eta_seconds = None
        view.finished_at = datetime.now()
        return True

    def mark_completed(self, task_id: str):
        with self._lock:
            if self._finish(task_id, TaskState.COMPLETED):
                self.tasks[task_id].percent = 100.0
                self.completed_count += 1

    def mark_cancelled(self, task_id: str):
        with self._lock:
            if self._finish(task_id, TaskState.CANCELLED):
                self.cancelled_count += 1

    def mark_failed(self, task_id: str, error: str, timed_out: bool = False):
        with self._lock:
            state = TaskState.TIMED_OUT if timed_out else TaskState.FAILED
            if self._finish(task_id, state, error):
                self.failed_count += 1

    def snapshot(self) -> List[TaskView]:
        """Copies of the task views, in submission order."""
        with self._lock:
            return [TaskView(**vars(view)) for view in self.tasks.values()]

    def counts(self) -> Dict[str, int]:
        with self._lock:
            running = sum(1 for v in self.tasks.values() if not v.finished)
            return {
                "total": len(self.tasks),
                "running": running,
                "completed": self.completed_count,
                "failed": self.failed_count,
                "cancelled": self.cancelled_count,
            }
