from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_

from movemarket.extensions import db
from movemarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from movemarket.models import Notification
from movemarket.services.notification_service import NotificationStatus
from movemarket.utils.job_runs import record_job_run

logger = logging.getLogger(__name__)

JOB_NAME = "notification_dispatcher"


def _now():
    return datetime.utcnow()


def retry_delay_seconds(attempts: int) -> int:
    # Exponential backoff with cap.
    return int(min(900, 5 * (2 ** int(max(0, attempts)))))


def _due_rows(limit: int) -> list[Notification]:
    now = _now()
    return (
        Notification.query.filter(
            Notification.status == NotificationStatus.PENDING,
            or_(Notification.next_attempt_at.is_(None), Notification.next_attempt_at <= now),
        )
        .order_by(Notification.created_at.asc(), Notification.id.asc())
        .limit(limit)
        .all()
    )


def _mark_failed_attempt(row: Notification, error: str, *, max_attempts: int, permanent: bool = False) -> str:
    row.attempts = int(row.attempts or 0) + 1
    row.last_error = (error or "send_failed")[:240]
    if permanent or row.attempts >= max_attempts:
        row.status = NotificationStatus.FAILED
        row.next_attempt_at = None
        return NotificationStatus.FAILED
    row.next_attempt_at = _now() + timedelta(seconds=retry_delay_seconds(row.attempts))
    return "retrying"


def dispatch_pending_notifications(services=None, *, limit: int | None = None) -> dict:
    """Deliver due outbox rows through the channel providers.

    Each row is committed on its own so one provider failure never rolls
    back deliveries already made in the same run.
    """
    if services is None:
        from movemarket.services import get_services

        services = get_services()
    settings = services.settings
    notifications = services.notifications
    max_attempts = max(1, int(settings.notification_max_attempts))
    batch = int(limit or settings.notification_dispatch_limit)

    started = _now()
    summary = {"scanned": 0, "sent": 0, "retrying": 0, "failed": 0}
    try:
        rows = _due_rows(max(1, batch))
        for row in rows:
            summary["scanned"] += 1
            channel = (row.type or "email").strip().lower()
            if channel == "in_app":
                row.status = NotificationStatus.SENT
                row.provider = "in_app"
                row.sent_at = _now()
                row.attempts = int(row.attempts or 0) + 1
                db.session.commit()
                summary["sent"] += 1
                continue

            try:
                provider = notifications.provider_for(channel)
            except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
                outcome = _mark_failed_attempt(row, str(e), max_attempts=max_attempts, permanent=True)
                db.session.commit()
                summary[outcome] += 1
                logger.warning("notification_channel_unavailable id=%s channel=%s err=%s", row.id, channel, e)
                continue

            try:
                result = provider.send(
                    channel=channel,
                    to=row.recipient,
                    subject=row.subject or "",
                    body=row.body or "",
                    reference=f"notification:{row.id}",
                )
                ok, detail = bool(result.ok), f"{result.code}:{result.message}"
            except Exception as e:
                ok, detail = False, f"{type(e).__name__}:{e}"

            row.provider = getattr(provider, "name", "") or None
            if ok:
                row.status = NotificationStatus.SENT
                row.sent_at = _now()
                row.attempts = int(row.attempts or 0) + 1
                row.last_error = None
                row.next_attempt_at = None
                summary["sent"] += 1
            else:
                outcome = _mark_failed_attempt(row, detail, max_attempts=max_attempts)
                summary[outcome] += 1
                logger.info("notification_send_failed id=%s channel=%s attempts=%s outcome=%s", row.id, channel, row.attempts, outcome)
            db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("notification_dispatch_failed")
        record_job_run(job_name=JOB_NAME, ok=False, started_at=started, summary=summary, error=str(e))
        raise

    record_job_run(job_name=JOB_NAME, ok=True, started_at=started, summary=summary)
    logger.info(
        "notification_dispatch_done scanned=%s sent=%s retrying=%s failed=%s",
        summary["scanned"],
        summary["sent"],
        summary["retrying"],
        summary["failed"],
    )
    return {"ok": True, **summary}
