"""Domain events for the conversion lifecycle.

Events flow through the EventBus and decouple the supervisor from whatever
transport shows them to the user (rich console, a GUI bridge, tests). Each
event class carries the topic name external transports use.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import ClassVar
from pydantic import BaseModel
from .models import ConversionProgress


class Event(BaseModel):
    """Base class for all domain events."""

    topic: ClassVar[str] = "event"


class TaskEvent(Event):
    """Base class for events tied to one conversion task."""

    task_id: str


class ConversionStarted(TaskEvent):
    """Emitted once the process is registered and running."""

    topic: ClassVar[str] = "conversion-started"


class ConversionProgressUpdated(Event):
    """Emitted for every throttled progress snapshot."""

    topic: ClassVar[str] = "conversion-progress"

    progress: ConversionProgress

    @property
    def task_id(self) -> str:
        return self.progress.task_id


class ConversionCompleted(TaskEvent):
    topic: ClassVar[str] = "conversion-completed"


class ConversionCancelled(TaskEvent):
    topic: ClassVar[str] = "conversion-cancelled"


class ConversionFailed(TaskEvent):
    """Emitted on spawn failure, non-zero exit or timeout; output is already removed."""

    topic: ClassVar[str] = "conversion-error"

    error: str
    code: str = "unknown"
