import logging
from mcv.infrastructure.event_bus import EventBus
from mcv.ui.state import UIState
from mcv.domain.errors import ConversionTimeout
from mcv.domain.events import (
    ConversionStarted, ConversionProgressUpdated,
    ConversionCompleted, ConversionCancelled, ConversionFailed,
)


class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self.logger = logging.getLogger(__name__)
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(ConversionStarted, self.on_started)
        self.bus.subscribe(ConversionProgressUpdated, self.on_progress)
        self.bus.subscribe(ConversionCompleted, self.on_completed)
        self.bus.subscribe(ConversionCancelled, self.on_cancelled)
        self.bus.subscribe(ConversionFailed, self.on_failed)

    def on_started(self, event: ConversionStarted):
        self.state.mark_running(event.task_id)

    def on_progress(self, event: ConversionProgressUpdated):
        self.state.update_progress(event.progress)

    def on_completed(self, event: ConversionCompleted):
        self.state.mark_completed(event.task_id)

    def on_cancelled(self, event: ConversionCancelled):
        self.state.mark_cancelled(event.task_id)

    def on_failed(self, event: ConversionFailed):
        self.logger.debug(f"UI: task {event.task_id} failed ({event.code}): {event.error}")
        self.state.mark_failed(event.task_id, event.error, timed_out=event.code == ConversionTimeout.code)
