"""Outbound notifications for payment events.

notify() fans an event out to every registered sink. Delivery is best
effort: a failing sink is logged and never propagates into the payment
workflow that emitted the event.

Services do not notify directly. They queue() events on the database
session; the caller drains the queue after a successful commit and hands
it to dispatch(). A rollback of the outer transaction discards anything
queued, so subscribers never hear about a change that was not saved.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

PAYMENT_APPROVED = "payment_approved"
PAYMENT_COMPLETED = "payment_completed"
PAYMENT_RECORDED = "payment_recorded"
PAYMENT_UNRECORDED = "payment_unrecorded"
PAYMENT_CANCELLED = "payment_cancelled"
FINANCIAL_DATA_UPDATED = "financial_data_updated"

_QUEUE_KEY = "pending_notifications"

Sink = Callable[[str, dict], Awaitable[None]]


async def log_sink(event_type: str, payload: dict) -> None:
    logger.info("Notification %s: %s", event_type, payload)


_sinks: list[Sink] = [log_sink]


def register_sink(sink: Sink) -> None:
    if sink not in _sinks:
        _sinks.append(sink)


def unregister_sink(sink: Sink) -> None:
    if sink in _sinks:
        _sinks.remove(sink)


async def notify(event_type: str, payload: dict) -> None:
    for sink in list(_sinks):
        try:
            await sink(event_type, payload)
        except Exception:
            logger.exception("Notification sink %r failed for %s", sink, event_type)


def queue(db: AsyncSession, event_type: str, payload: dict) -> None:
    """Hold an event on the session until its transaction commits."""
    db.sync_session.info.setdefault(_QUEUE_KEY, []).append((event_type, payload))


def drain(db: AsyncSession) -> list[tuple[str, dict]]:
    """Take every queued event off the session. Call after commit."""
    return db.sync_session.info.pop(_QUEUE_KEY, [])


async def dispatch(events: list[tuple[str, dict]]) -> None:
    for event_type, payload in events:
        await notify(event_type, payload)


@event.listens_for(Session, "after_soft_rollback")
def _discard_on_rollback(session: Session, previous_transaction: SessionTransaction) -> None:
    # Savepoint rollbacks (side effects that failed) keep the outer transaction alive
    if previous_transaction.nested:
        return
    session.info.pop(_QUEUE_KEY, None)
