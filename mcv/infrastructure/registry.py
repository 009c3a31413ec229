import subprocess
import threading
from typing import Dict, List, Optional


class TaskRegistry:
    """Live ffmpeg processes keyed by task id.

    The only shared mutable state between supervisors and cancel requests.
    Every removal goes through `take`, so each entry is acted on exactly once
    by whoever wins the pop.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, subprocess.Popen] = {}

    def register(self, task_id: str, process: subprocess.Popen) -> bool:
        """Stores the handle; False if the task id is already live."""
        with self._lock:
            if task_id in self._tasks:
                return False
            self._tasks[task_id] = process
            return True

    def take(self, task_id: str) -> Optional[subprocess.Popen]:
        with self._lock:
            return self._tasks.pop(task_id, None)

    def task_ids(self) -> List[str]:
        with self._lock:
            return list(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
