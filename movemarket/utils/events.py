from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from movemarket.extensions import db
from movemarket.models import PlatformEvent
from movemarket.utils.observability import get_request_id

logger = logging.getLogger(__name__)


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, set):
        return sorted(value, key=str)
    return str(value)


def _clip(value, size: int) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text[:size] or None


def log_event(
    event_type: str,
    *,
    actor_type: str | None = None,
    actor_id: int | str | None = None,
    subject_type: str | None = None,
    subject_id: int | str | None = None,
    severity: str = "INFO",
    idempotency_key: str | None = None,
    metadata: dict | None = None,
) -> PlatformEvent | None:
    """Stage an audit event in a savepoint of the caller's transaction.

    The event is committed (or rolled back) with the caller's work. A failed
    insert is logged and dropped; it never aborts the surrounding operation.
    A repeated ``idempotency_key`` returns the event already stored.
    """
    key = _clip(idempotency_key, 180)
    if key:
        existing = PlatformEvent.query.filter_by(idempotency_key=key).first()
        if existing is not None:
            return existing
    try:
        meta = json.dumps(metadata or {}, separators=(",", ":"), ensure_ascii=False, default=_jsonable)
    except (TypeError, ValueError):
        meta = "{}"

    event = PlatformEvent(
        event_type=_clip(event_type, 80) or "unknown",
        severity=(_clip(severity, 16) or "INFO").upper(),
        actor_type=_clip(actor_type, 32),
        actor_id=_clip(actor_id, 64),
        subject_type=_clip(subject_type, 80),
        subject_id=_clip(subject_id, 120),
        request_id=_clip(get_request_id(), 80),
        idempotency_key=key,
        metadata_json=meta,
    )
    try:
        with db.session.begin_nested():
            db.session.add(event)
    except IntegrityError:
        logger.info("platform_event_duplicate event_type=%s key=%s", event_type, key)
        return None
    except Exception:
        logger.exception("platform_event_write_failed event_type=%s", event_type)
        return None
    return event
