"""KWPilot: Outbound Request Queue.

Persists deferred upstream calls (e.g. keyword-idea fetches that hit a quota)
so they can be retried with exponential backoff.
"""

import json
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import delete, or_
from sqlmodel import Session, select

from kwpilot.core.clock import utcnow
from kwpilot.core.logging import get_logger
from kwpilot.models.queue_models import QueuedRequest, QueueStatus

logger = get_logger("store.queue")

BACKOFF_BASE_MS = 2000


def enqueue(
    session: Session,
    request_type: str,
    payload: dict,
    priority: int = 0,
    max_retries: int = 3,
) -> QueuedRequest:
    item = QueuedRequest(
        request_type=request_type,
        payload_json=json.dumps(payload),
        priority=priority,
        max_retries=max_retries,
    )
    session.add(item)
    session.commit()
    session.refresh(item)
    logger.info(f"📥 Queued {request_type} request {item.id} (priority {priority})")
    return item


def process_next(session: Session, request_type: Optional[str] = None) -> Optional[QueuedRequest]:
    """Claim the highest-priority, oldest pending item that is due."""
    now = utcnow()
    query = select(QueuedRequest).where(
        QueuedRequest.status == QueueStatus.PENDING.value,
        or_(QueuedRequest.next_retry_at.is_(None), QueuedRequest.next_retry_at <= now),  # type: ignore
    )
    if request_type:
        query = query.where(QueuedRequest.request_type == request_type)
    item = session.exec(
        query.order_by(
            QueuedRequest.priority.desc(),  # type: ignore
            QueuedRequest.created_at.asc(),  # type: ignore
            QueuedRequest.id.asc(),  # type: ignore
        )
    ).first()
    if item is None:
        return None
    item.status = QueueStatus.PROCESSING.value
    item.updated_at = now
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def _get(session: Session, item_id: int) -> QueuedRequest:
    item = session.get(QueuedRequest, item_id)
    if item is None:
        raise LookupError(f"Queue item {item_id} not found")
    return item


def complete(session: Session, item_id: int, result: Any = None) -> QueuedRequest:
    item = _get(session, item_id)
    item.status = QueueStatus.COMPLETED.value
    item.result_json = json.dumps(result)
    item.updated_at = utcnow()
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def fail(session: Session, item_id: int, error: str) -> QueuedRequest:
    """Record a failure; reschedule with backoff until max_retries is reached."""
    item = _get(session, item_id)
    item.retry_count += 1
    item.error = error
    item.updated_at = utcnow()
    if item.retry_count >= item.max_retries:
        item.status = QueueStatus.FAILED.value
        item.next_retry_at = None
        logger.error(f"❌ Queue item {item_id} failed permanently: {error}")
    else:
        delay_ms = (2 ** item.retry_count) * BACKOFF_BASE_MS
        item.status = QueueStatus.PENDING.value
        item.next_retry_at = utcnow() + timedelta(milliseconds=delay_ms)
        logger.warning(
            f"Queue item {item_id} failed (attempt {item.retry_count}/{item.max_retries}), retrying in {delay_ms}ms"
        )
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def get_queue_status(session: Session) -> dict:
    counts = {s.value: 0 for s in QueueStatus}
    for item in session.exec(select(QueuedRequest)).all():
        counts[item.status] = counts.get(item.status, 0) + 1
    counts["total"] = sum(counts[s.value] for s in QueueStatus)
    return counts


def clear_old(session: Session, days: int = 7) -> int:
    cutoff = utcnow() - timedelta(days=days)
    result = session.exec(
        delete(QueuedRequest).where(
            QueuedRequest.status.in_(  # type: ignore
                [QueueStatus.COMPLETED.value, QueueStatus.FAILED.value]
            ),
            QueuedRequest.updated_at < cutoff,
        )
    )
    session.commit()
    return result.rowcount or 0
