"""RabbitMQ helpers: bus, publisher."""

from .bus import publish
from .publisher import publish_contract, publish_event

__all__ = [
    "publish",
    "publish_contract",
    "publish_event",
]
