from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from movemarket.errors import NotFoundError, ValidationError
from movemarket.extensions import db
from movemarket.models import CommissionRecord, Order, OrderStatus, Vendor
from movemarket.utils.events import log_event
from movemarket.utils.money import percent_of

logger = logging.getLogger(__name__)


class CrossLeadStatus:
    SUBMITTED = "Submitted"
    CONVERTED = "Converted"


@dataclass(frozen=True)
class CommissionDiscount:
    has_discount: bool
    rate: float
    cross_leads_submitted: int
    discounts_used: int

    @property
    def remaining(self) -> int:
        return max(0, self.cross_leads_submitted - self.discounts_used)

    def to_dict(self) -> dict:
        return {
            "has_discount": bool(self.has_discount),
            "rate": float(self.rate),
            "cross_leads_submitted": int(self.cross_leads_submitted),
            "discounts_used": int(self.discounts_used),
            "remaining": int(self.remaining),
        }


class CommissionService:
    def __init__(self, settings, orders):
        self.standard_rate = float(settings.commission_standard_rate)
        self.discounted_rate = float(settings.commission_discounted_rate)
        self.orders = orders

    def _cross_leads_submitted(self, vendor_id: str) -> int:
        return (
            Order.query.filter(
                Order.is_cross_lead.is_(True),
                Order.referring_vendor_id == vendor_id,
            ).count()
        )

    def check_vendor_commission_discount(self, vendor_id: str) -> CommissionDiscount:
        vendor = db.session.get(Vendor, vendor_id) if vendor_id else None
        if vendor is None:
            return CommissionDiscount(False, self.standard_rate, 0, 0)
        submitted = self._cross_leads_submitted(vendor.id)
        used = int(vendor.discounted_commissions_used or 0)
        if submitted - used > 0:
            return CommissionDiscount(True, self.discounted_rate, submitted, used)
        return CommissionDiscount(False, self.standard_rate, submitted, used)

    def ensure_affiliate(self, vendor: Vendor) -> None:
        if vendor.affiliate_initialized_at is not None:
            return
        if not vendor.referral_code:
            vendor.referral_code = f"MV{secrets.token_hex(4).upper()}"
        vendor.affiliate_commission_rate = self.standard_rate
        vendor.affiliate_initialized_at = datetime.utcnow()

    def consume_discount_credit(self, vendor: Vendor, *, order_id: str) -> None:
        """Use one discounted-commission credit. Does not commit."""
        self.ensure_affiliate(vendor)
        vendor.discounted_commissions_used = int(vendor.discounted_commissions_used or 0) + 1
        vendor.updated_at = datetime.utcnow()
        log_event(
            "commission_discount_used",
            actor_type="vendor",
            actor_id=vendor.id,
            subject_type="order",
            subject_id=order_id,
            idempotency_key=f"discount_used:{vendor.id}:{order_id}",
            metadata={"order_id": order_id, "rate": self.discounted_rate},
        )

    def process_cross_lead_commission(
        self,
        referring_vendor_id: str,
        selected_vendor_id: str,
        amount,
        commission_rate,
        order_id: str,
    ) -> bool:
        if not referring_vendor_id or referring_vendor_id == selected_vendor_id:
            return False
        referrer = db.session.get(Vendor, referring_vendor_id)
        if referrer is None:
            logger.warning("cross_lead_referrer_missing vendor_id=%s order_id=%s", referring_vendor_id, order_id)
            return False
        existing = CommissionRecord.query.filter_by(
            referring_vendor_id=referrer.id, order_id=order_id
        ).first()
        if existing is not None:
            return False

        rate = float(commission_rate if commission_rate is not None else self.standard_rate)
        record = CommissionRecord(
            referring_vendor_id=referrer.id,
            selected_vendor_id=selected_vendor_id,
            order_id=order_id,
            base_amount=float(amount),
            commission_rate=rate,
            amount=percent_of(amount, rate),
            created_at=datetime.utcnow(),
        )
        self.ensure_affiliate(referrer)
        try:
            with db.session.begin_nested():
                db.session.add(record)
        except IntegrityError:
            return False
        log_event(
            "cross_lead_commission_earned",
            actor_type="vendor",
            actor_id=referrer.id,
            subject_type="order",
            subject_id=order_id,
            metadata={"amount": record.amount, "rate": rate, "selected_vendor_id": selected_vendor_id},
        )
        logger.info(
            "cross_lead_commission referrer=%s order_id=%s amount=%s rate=%s",
            referrer.id,
            order_id,
            record.amount,
            rate,
        )
        return True

    def commission_history(self, vendor_id: str) -> list[CommissionRecord]:
        return (
            CommissionRecord.query.filter_by(referring_vendor_id=vendor_id)
            .order_by(CommissionRecord.created_at.desc())
            .all()
        )

    def create_cross_lead(
        self,
        vendor_id: str,
        *,
        customer_email: str,
        pickup_pincode,
        destination_pincode=None,
        vendor_managed: bool = False,
        **details,
    ) -> Order:
        vendor = db.session.get(Vendor, vendor_id) if vendor_id else None
        if vendor is None:
            raise NotFoundError("Vendor not found")
        if not (customer_email or "").strip():
            raise ValidationError("customer_email is required")
        try:
            order = self.orders.create(
                user_email=customer_email,
                order_type="move",
                pickup_pincode=pickup_pincode,
                destination_pincode=destination_pincode,
                created_by=f"vendor:{vendor.id}",
                commit=False,
                **details,
            )
            order.is_cross_lead = True
            order.referring_vendor_id = vendor.id
            order.cross_lead_status = CrossLeadStatus.SUBMITTED
            order.commission_rate = self.discounted_rate
            if vendor_managed:
                order.vendor_requests = [vendor.id]
            self.ensure_affiliate(vendor)
            log_event(
                "cross_lead_submitted",
                actor_type="vendor",
                actor_id=vendor.id,
                subject_type="order",
                subject_id=order.id,
                metadata={"vendor_managed": bool(vendor_managed)},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("cross_lead_created order_id=%s referrer=%s", order.id, vendor.id)
        return order

    def list_vendor_cross_leads(self, vendor_id: str) -> list[Order]:
        return (
            Order.query.filter(Order.is_cross_lead.is_(True), Order.referring_vendor_id == vendor_id)
            .order_by(Order.created_at.desc())
            .all()
        )

    def list_available_cross_leads(self, vendor_id: str) -> list[Order]:
        rows = (
            Order.query.filter(
                Order.is_cross_lead.is_(True),
                Order.referring_vendor_id != vendor_id,
                Order.status == OrderStatus.INITIATED,
            )
            .order_by(Order.created_at.desc())
            .all()
        )
        return [o for o in rows if vendor_id not in o.vendor_requests]

    def affiliate_stats(self, vendor_id: str) -> dict:
        vendor = db.session.get(Vendor, vendor_id) if vendor_id else None
        if vendor is None:
            raise NotFoundError("Vendor not found")
        leads = self.list_vendor_cross_leads(vendor.id)
        converted = [o for o in leads if o.cross_lead_status == CrossLeadStatus.CONVERTED]
        history = self.commission_history(vendor.id)
        discount = self.check_vendor_commission_discount(vendor.id)
        return {
            "vendor_id": vendor.id,
            "referral_code": vendor.referral_code or "",
            "cross_leads_submitted": len(leads),
            "cross_leads_converted": len(converted),
            "discount": discount.to_dict(),
            "total_commission_earned": round(sum(float(r.amount or 0.0) for r in history), 2),
            "commission_history": [r.to_dict() for r in history],
        }
