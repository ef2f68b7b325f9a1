from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], None]


class EventBus:
    """In-process observers keyed by event_type; ``None`` subscribes to everything."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: Dict[Optional[str], List[Handler]] = {}

    def subscribe(self, handler: Handler, event_type: Optional[str] = None) -> Callable[[], None]:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: BaseModel) -> None:
        event_type = getattr(event, "event_type", None)
        with self._lock:
            handlers = list(self._handlers.get(event_type, [])) + list(self._handlers.get(None, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # an observer never undoes a committed operation
                logger.exception("event handler failed event_type=%s", event_type)


class FanoutSink:
    def __init__(self, *sinks) -> None:
        self.sinks = list(sinks)

    def emit(self, event: BaseModel) -> None:
        for sink in self.sinks:
            sink.emit(event)
