from __future__ import annotations

import logging
from typing import Optional

from pika.exceptions import AMQPError
from pydantic import BaseModel

from libs.rmq.publisher import publish_contract
from billing_service.app.settings import settings

logger = logging.getLogger(__name__)

# event_type -> settings attribute holding the routing key
ROUTES = {
    "payment_settled": "RK_PAYMENT_SETTLED",
    "payment_failed": "RK_PAYMENT_FAILED",
    "charge_posted": "RK_CHARGE_POSTED",
    "fee_run_completed": "RK_FEE_RUN_COMPLETED",
    "top_up_completed": "RK_TOP_UP_COMPLETED",
    "top_up_scheduled": "RK_TOP_UP_SCHEDULED",
    "batch_top_up_completed": "RK_BATCH_TOP_UP_COMPLETED",
}


def routing_key_for(event_type: str) -> str:
    try:
        return getattr(settings, ROUTES[event_type])
    except KeyError:
        raise ValueError(f"no routing key for event type {event_type!r}")


def publish_domain_event(event: BaseModel, *, correlation_id: Optional[str] = None) -> None:
    event_type = getattr(event, "event_type")
    event_id = publish_contract(routing_key_for(event_type), event, correlation_id=correlation_id)
    logger.info("event %s event_id=%s", event_type, event_id)


class RmqAuditSink:
    """
    Publishes engine events to the topic exchange.

    Events are emitted after the unit of work commits, so a broker outage is
    logged rather than raised back into a settled operation.
    """

    def __init__(self, enabled: Optional[bool] = None):
        self.enabled = settings.AUDIT_PUBLISH_ENABLED if enabled is None else enabled

    def emit(self, event: BaseModel) -> None:
        if not self.enabled:
            return
        try:
            publish_domain_event(event)
        except AMQPError:
            logger.exception("event publish failed event_type=%s", getattr(event, "event_type", "?"))


__all__ = ["ROUTES", "RmqAuditSink", "publish_domain_event", "routing_key_for"]
