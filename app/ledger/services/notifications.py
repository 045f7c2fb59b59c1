from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from app.ledger.core.logging import log_json
from app.ledger.core.metrics import metrics

logger = logging.getLogger("ledger.notifications")

EVENT_AUTHORIZATION_PENDING = "authorization.pending"
EVENT_RECONCILIATION_OUT_OF_TOLERANCE = "reconciliation.out_of_tolerance"
EVENT_CASH_DRAWER_OPEN = "cash_drawer.open"
EVENT_SHIFT_EXCEEDED_DURATION = "shift.exceeded_duration"


@dataclass(frozen=True)
class LedgerNotice:
    event: str
    session_id: str | None
    entity_type: str
    entity_id: str | None
    payload: dict = field(default_factory=dict)


NoticeSink = Callable[[LedgerNotice], None]


def log_sink(notice: LedgerNotice) -> None:
    log_json(
        logger,
        {
            "event": notice.event,
            "session_id": notice.session_id,
            "entity_type": notice.entity_type,
            "entity_id": notice.entity_id,
            "payload": notice.payload,
        },
    )


class LedgerNotifier:
    """Fire-and-forget fan-out to notification and cash drawer collaborators.

    Only called after the ledger transaction committed. A failing sink is
    logged and counted; it never changes the outcome of the operation.
    """

    def __init__(self, sinks: list[NoticeSink] | None = None):
        self.sinks: list[NoticeSink] = list(sinks) if sinks is not None else [log_sink]

    def subscribe(self, sink: NoticeSink) -> None:
        self.sinks.append(sink)

    def publish(self, notice: LedgerNotice) -> None:
        for sink in self.sinks:
            try:
                sink(notice)
            except Exception:
                metrics.increment_notification_failed(notice.event)
                logger.exception(
                    "Notification sink failed",
                    extra={"event": notice.event, "entity_id": notice.entity_id},
                )


notifier = LedgerNotifier()
