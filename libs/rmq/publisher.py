# libs/rmq/publisher.py
import time
from typing import Dict, Any, Optional

from pydantic import BaseModel

from .bus import publish

def publish_event(routing_key: str,
                  payload: Dict[str, Any],
                  *,
                  event_type: str,
                  event_version: str = "v1",
                  message_id: Optional[str] = None,
                  idempotency_key: Optional[str] = None,
                  correlation_id: Optional[str] = None,
                  occurred_at: Optional[str] = None) -> None:
    """
    Normalise headers for every event.

    ``occurred-at`` is the producer's timestamp when given, otherwise epoch
    milliseconds at publish time.
    """
    headers = {
        "event-type": event_type,
        "event-version": event_version,
        "occurred-at": occurred_at or int(time.time() * 1000),
    }
    if idempotency_key:
        headers["idempotency-key"] = idempotency_key
    if correlation_id:
        headers["correlation-id"] = correlation_id

    publish(routing_key=routing_key, body=payload, headers=headers, message_id=message_id)

def publish_contract(routing_key: str,
                     event: BaseModel,
                     *,
                     event_version: str = "v1",
                     correlation_id: Optional[str] = None) -> Optional[str]:
    """
    Publish a versioned event contract.

    The contract's ``event_id`` is both the AMQP message id and the
    idempotency key, so a consumer can drop redeliveries. Returns it.
    """
    event_id = getattr(event, "event_id", None)
    publish_event(
        routing_key=routing_key,
        payload=event.model_dump(mode="json"),
        event_type=getattr(event, "event_type"),
        event_version=event_version,
        message_id=event_id,
        idempotency_key=event_id,
        correlation_id=correlation_id,
        occurred_at=getattr(event, "occurred_at", None),
    )
    return event_id
