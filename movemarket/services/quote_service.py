from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from movemarket.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from movemarket.extensions import db
from movemarket.models import Order, OrderStatus, PaymentIntent, Quote, Vendor
from movemarket.services.payment_intent_service import PaymentIntentStatus
from movemarket.utils.money import format_inr

logger = logging.getLogger(__name__)

QUOTE_VALIDITY_DAYS = 7


def parse_quote_amount(raw) -> float:
    if isinstance(raw, bool):
        raise ValidationError("Quote amount must be a positive number")
    try:
        amount = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("Quote amount must be a positive number")
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Quote amount must be a positive number")
    return round(amount, 2)


class QuoteService:
    def __init__(self, orders, notifications):
        self.orders = orders
        self.notifications = notifications

    def _vendor(self, vendor_id: str) -> Vendor:
        vendor = db.session.get(Vendor, str(vendor_id or "").strip()) if vendor_id else None
        if vendor is None:
            raise NotFoundError("Vendor not found")
        return vendor

    def request_quotes(self, order_id: str, vendor_ids: list[str], *, user_email: str, is_admin: bool = False) -> Order:
        order = self.orders.get_by_id(order_id)
        if not is_admin and (order.user_email or "").lower() != (user_email or "").strip().lower():
            raise AuthorizationError("Only the customer who placed the order can request quotes")
        if order.status not in OrderStatus.PRE_PAYMENT:
            raise ConflictError(f"Quotes cannot be requested in status {order.status}")
        ids = [str(v).strip() for v in (vendor_ids or []) if str(v).strip()]
        if not ids:
            raise ValidationError("At least one vendor is required")
        vendors = Vendor.query.filter(Vendor.id.in_(ids)).all()
        known = {v.id for v in vendors}
        missing = [v for v in ids if v not in known]
        if missing:
            raise NotFoundError(f"Unknown vendors: {', '.join(missing)}")

        order.vendor_requests = order.vendor_requests + ids
        if order.status == OrderStatus.INITIATED:
            self.orders.record_status(order, OrderStatus.QUOTES_REQUESTED, notes=f"{len(ids)} vendors invited", created_by=user_email)
        for vendor in vendors:
            self.notifications.notify_vendor(
                vendor,
                f"New Move Quote Request - Order #{order.order_number}",
                (
                    f"You have received a new quote request for a {order.move_size or order.order_type} "
                    f"from {order.pickup_pincode} to {order.destination_pincode or '-'}. "
                    "Please log in to your dashboard to submit your quote."
                ),
                event_type="quote_request",
                metadata={"order_id": order.id},
            )
        db.session.commit()
        logger.info("quotes_requested order_id=%s vendors=%s", order.id, len(ids))
        return order

    def submit_quote(
        self,
        order_id: str,
        vendor_id: str,
        amount,
        *,
        description: str | None = None,
        valid_until: datetime | None = None,
    ) -> Quote:
        parsed = parse_quote_amount(amount)
        order = self.orders.get_by_id(order_id)
        vendor = self._vendor(vendor_id)
        if order.payment is not None or order.status not in OrderStatus.PRE_PAYMENT:
            raise ConflictError(f"Order no longer accepts quotes (status {order.status})")
        open_intent = PaymentIntent.query.filter_by(
            order_id=order.id, vendor_id=vendor.id, status=PaymentIntentStatus.INITIALIZED
        ).first()
        if open_intent is not None:
            raise ConflictError(
                "Quote is locked while the customer is paying",
                details={"remote_order_id": open_intent.remote_order_id},
            )

        quote = Quote(
            order_id=order.id,
            vendor_id=vendor.id,
            amount=parsed,
            description=(description or "").strip() or None,
            valid_until=valid_until or (datetime.utcnow() + timedelta(days=QUOTE_VALIDITY_DAYS)),
            created_at=datetime.utcnow(),
        )
        db.session.add(quote)
        order.quotes.append(quote)
        self.notifications.notify_customer(
            order.user_email,
            f"New Quote Received for Your Move - Order #{order.order_number}",
            (
                f"You have received a new quote from {vendor.display_name} for your move. "
                f"The quoted amount is {format_inr(parsed)}. Log in to view and accept the quote."
            ),
            event_type="quote_received",
            metadata={"order_id": order.id, "vendor_id": vendor.id, "amount": parsed},
        )
        db.session.commit()
        logger.info("quote_submitted order_id=%s vendor_id=%s amount=%s", order.id, vendor.id, parsed)
        return quote

    def select_quote(self, order_id: str, vendor_id: str, *, user_email: str | None = None) -> Order:
        order = self.orders.get_by_id(order_id)
        if user_email is not None and (order.user_email or "").lower() != user_email.strip().lower():
            raise AuthorizationError("Only the customer who placed the order can select a quote")
        quote = order.latest_quote_for(str(vendor_id or "").strip())
        if quote is None:
            raise NotFoundError("No quote from this vendor on the order")
        if order.payment is not None:
            raise ConflictError("Order is already paid")
        order.selected_vendor_id = quote.vendor_id
        order.selected_quote_id = quote.id
        order.updated_at = datetime.utcnow()
        db.session.commit()
        logger.info("quote_selected order_id=%s vendor_id=%s quote_id=%s", order.id, quote.vendor_id, quote.id)
        return order
