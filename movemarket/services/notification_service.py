from __future__ import annotations

import logging
from datetime import datetime

from movemarket.errors import NotFoundError
from movemarket.extensions import db
from movemarket.integrations.messaging.base import CHANNELS, MessagingProvider
from movemarket.integrations.messaging.factory import build_messaging_provider
from movemarket.models import Notification

logger = logging.getLogger(__name__)


class NotificationStatus:
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

    ALL = (PENDING, SENT, FAILED)


RECIPIENT_TYPES = ("customer", "vendor", "rider", "admin")


class NotificationService:
    def __init__(self, settings):
        self.settings = settings
        self._providers: dict[str, MessagingProvider] = {}

    def provider_for(self, channel: str) -> MessagingProvider:
        ch = (channel or "").strip().lower()
        provider = self._providers.get(ch)
        if provider is None:
            provider = build_messaging_provider(self.settings, channel=ch)
            self._providers[ch] = provider
        return provider

    def enqueue(
        self,
        recipient: str,
        subject: str,
        body: str,
        *,
        channel: str = "email",
        recipient_type: str = "customer",
        event_type: str = "generic",
        metadata: dict | None = None,
    ) -> Notification | None:
        to = (recipient or "").strip()
        channel = (channel or "email").strip().lower()
        if not to:
            logger.info("notification_skipped_no_recipient event_type=%s", event_type)
            return None
        if channel not in CHANNELS:
            logger.warning("notification_skipped_bad_channel channel=%s event_type=%s", channel, event_type)
            return None
        try:
            row = Notification(
                recipient=to[:255],
                recipient_type=(recipient_type or "customer")[:16],
                type=channel,
                event_type=(event_type or "generic")[:64],
                subject=(subject or "")[:200],
                body=body or "",
                status=NotificationStatus.PENDING,
                attempts=0,
                created_at=datetime.utcnow(),
            )
            row._save_meta(metadata or {})
            with db.session.begin_nested():
                db.session.add(row)
            return row
        except Exception:
            logger.exception("notification_enqueue_failed event_type=%s recipient_type=%s", event_type, recipient_type)
            return None

    def notify_customer(self, email: str, subject: str, body: str, *, event_type: str, metadata: dict | None = None) -> None:
        self.enqueue(email, subject, body, channel="email", recipient_type="customer", event_type=event_type, metadata=metadata)

    def notify_vendor(self, vendor, subject: str, body: str, *, event_type: str, metadata: dict | None = None) -> None:
        if vendor is None:
            return
        meta = {"vendor_id": vendor.id, **(metadata or {})}
        if vendor.email:
            self.enqueue(vendor.email, subject, body, channel="email", recipient_type="vendor", event_type=event_type, metadata=meta)
        else:
            self.enqueue(vendor.id, subject, body, channel="in_app", recipient_type="vendor", event_type=event_type, metadata=meta)
        if vendor.whatsapp:
            self.enqueue(vendor.whatsapp, subject, body, channel="whatsapp", recipient_type="vendor", event_type=event_type, metadata=meta)

    def notify_rider(self, rider, subject: str, body: str, *, event_type: str, metadata: dict | None = None) -> None:
        if rider is None:
            return
        meta = {"rider_id": rider.id, **(metadata or {})}
        self.enqueue(rider.id, subject, body, channel="in_app", recipient_type="rider", event_type=event_type, metadata=meta)
        if rider.phone:
            self.enqueue(rider.phone, subject, body, channel="sms", recipient_type="rider", event_type=event_type, metadata=meta)

    def get(self, notification_id: int) -> Notification:
        row = db.session.get(Notification, int(notification_id))
        if not row:
            raise NotFoundError("Notification not found")
        return row

    def resend(self, notification_id: int) -> Notification:
        original = self.get(notification_id)
        meta = original.meta_dict()
        meta["resendOf"] = int(original.id)
        copy = Notification(
            recipient=original.recipient,
            recipient_type=original.recipient_type,
            type=original.type,
            event_type=original.event_type,
            subject=original.subject,
            body=original.body,
            status=NotificationStatus.PENDING,
            attempts=0,
            created_at=datetime.utcnow(),
        )
        copy._save_meta(meta)
        db.session.add(copy)
        db.session.commit()
        logger.info("notification_resend_queued original_id=%s new_id=%s", original.id, copy.id)
        return copy

    def list_for_recipients(self, recipients: list[str], *, limit: int = 80) -> list[Notification]:
        keys = [r for r in (recipients or []) if r]
        if not keys:
            return []
        return (
            Notification.query.filter(Notification.recipient.in_(keys))
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_all(
        self,
        *,
        status: str | None = None,
        event_type: str | None = None,
        recipient_type: str | None = None,
        limit: int = 200,
    ) -> list[Notification]:
        q = Notification.query
        if status:
            q = q.filter(Notification.status == status)
        if event_type:
            q = q.filter(Notification.event_type == event_type)
        if recipient_type:
            q = q.filter(Notification.recipient_type == recipient_type)
        return q.order_by(Notification.created_at.desc()).limit(limit).all()

    def stats(self) -> dict:
        counts = {s: 0 for s in NotificationStatus.ALL}
        rows = (
            db.session.query(Notification.status, db.func.count(Notification.id))
            .group_by(Notification.status)
            .all()
        )
        for status, count in rows:
            counts[status or NotificationStatus.PENDING] = int(count or 0)
        counts["total"] = sum(int(v) for v in counts.values())
        return counts
