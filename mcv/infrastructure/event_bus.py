import threading
from typing import Type, Callable, List, Dict, Any, Optional
from mcv.domain.events import Event

class EventBus:
    """A simple synchronous event bus for decoupled communication.

    Publishing happens on the caller's thread; several supervisor threads may
    publish at once, so the subscriber table is guarded by a lock and callbacks
    run on a snapshot taken outside of it.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to a specific event type. Can be used as a decorator.

        Subscribing to a base class (e.g. `Event`) receives every subclass too.
        """
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: Type[Event], callback: Callable[[Any], None]):
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event: Event):
        """Publishes an event to all interested subscribers."""
        with self._lock:
            callbacks: List[Callable[[Any], None]] = []
            for event_type in type(event).__mro__:
                callbacks.extend(self._subscribers.get(event_type, ()))
        for callback in callbacks:
            callback(event)
