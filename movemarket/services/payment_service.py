from __future__ import annotations

import logging
import math
from datetime import datetime

from movemarket.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PaymentGatewayError,
    SignatureError,
    ValidationError,
)
from movemarket.extensions import db
from movemarket.models import Order, OrderStatus, Payment, PaymentIntent, Quote, Refund, Vendor
from movemarket.services.commission_service import CrossLeadStatus
from movemarket.services.payment_intent_service import PaymentIntentStatus, find_intent, transition_intent
from movemarket.utils.events import log_event
from movemarket.utils.money import format_inr, money_major_to_minor, money_minor_to_major

logger = logging.getLogger(__name__)


def _gateway_error(exc: Exception) -> PaymentGatewayError:
    raw = str(exc) or exc.__class__.__name__
    code, _, detail = raw.partition(":")
    if not detail:
        code, detail = "", raw
    return PaymentGatewayError(f"Payment gateway error: {detail.strip()}", details={"provider_code": code})


def price_difference_text(other_amount: float | None, selected_amount: float | None) -> str:
    diff = round(float(other_amount or 0.0) - float(selected_amount or 0.0), 2)
    if diff > 0:
        return f"they have quoted {format_inr(diff)} less than yours"
    if diff < 0:
        return f"despite their quote being {format_inr(abs(diff))} higher than yours"
    return "they submitted an equal quote"


class PaymentService:
    def __init__(self, settings, provider, orders, commissions, notifications):
        self.settings = settings
        self.provider = provider
        self.orders = orders
        self.commissions = commissions
        self.notifications = notifications

    @property
    def currency(self) -> str:
        return self.settings.payment_currency

    def _quote_for(self, order: Order, vendor_id: str) -> Quote | None:
        selected = order.selected_quote
        if selected is not None and selected.vendor_id == vendor_id:
            return selected
        return order.latest_quote_for(vendor_id)

    def create_payment_order(self, order_id: str, vendor_id: str, user_email: str) -> dict:
        order = self.orders.get_by_id(order_id)
        if (order.user_email or "").lower() != (user_email or "").strip().lower():
            raise AuthorizationError("Order does not belong to this user")
        if order.status == OrderStatus.PAID or order.payment is not None:
            raise ConflictError("Order is already paid")
        if order.status not in OrderStatus.PRE_PAYMENT:
            raise ConflictError(f"Order cannot be paid in status {order.status}")
        quote = self._quote_for(order, str(vendor_id or "").strip())
        if quote is None:
            raise NotFoundError("Quote not found for this vendor")
        amount = float(quote.amount or 0.0)
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Quote amount must be positive")

        amount_minor = money_major_to_minor(amount)
        notes = {
            "orderId": order.id,
            "vendorId": quote.vendor_id,
            "userEmail": order.user_email,
            "quoteAmount": amount,
        }
        try:
            remote = self.provider.create_order(
                amount_minor=amount_minor,
                currency=self.currency,
                receipt=order.id,
                notes=notes,
            )
        except RuntimeError as e:
            logger.warning("payment_order_failed order_id=%s err=%s", order.id, e)
            raise _gateway_error(e)

        intent = PaymentIntent(
            order_id=order.id,
            vendor_id=quote.vendor_id,
            quote_id=quote.id,
            provider=self.provider.name,
            remote_order_id=remote.id,
            amount_minor=int(remote.amount or amount_minor),
            currency=remote.currency or self.currency,
            status=PaymentIntentStatus.INITIALIZED,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        db.session.add(intent)
        db.session.commit()
        logger.info(
            "payment_order_created order_id=%s remote_order_id=%s amount_minor=%s",
            order.id,
            remote.id,
            intent.amount_minor,
        )
        return {
            "id": remote.id,
            "amount": int(intent.amount_minor),
            "currency": intent.currency,
            "key": self.provider.key_id,
        }

    def verify_payment(
        self,
        order_id: str,
        vendor_id: str,
        remote_order_id: str,
        remote_payment_id: str,
        signature: str,
    ) -> Order:
        if not (remote_order_id or "").strip() or not (remote_payment_id or "").strip() or not (signature or "").strip():
            raise ValidationError("Missing payment verification fields")
        if not self.provider.verify_payment_signature(remote_order_id, remote_payment_id, signature):
            logger.warning("payment_signature_mismatch order_id=%s remote_order_id=%s", order_id, remote_order_id)
            raise SignatureError("Invalid payment signature")
        return self.process_payment(
            order_id,
            vendor_id,
            {
                "remote_order_id": remote_order_id,
                "remote_payment_id": remote_payment_id,
                "signature": signature,
            },
        )

    def process_payment(self, order_id: str, vendor_id: str, payment_details: dict) -> Order:
        order = self.orders.get_by_id(order_id)
        vendor = db.session.get(Vendor, str(vendor_id or "").strip()) if vendor_id else None
        if vendor is None:
            raise NotFoundError("Vendor not found")

        details = dict(payment_details or {})
        remote_payment_id = str(details.get("remote_payment_id") or "").strip()
        remote_order_id = str(details.get("remote_order_id") or "").strip()
        if not remote_payment_id:
            raise ValidationError("remote_payment_id is required")

        if order.payment is not None:
            if order.payment.remote_payment_id == remote_payment_id:
                return order
            raise ConflictError("Order is already paid")
        if order.status not in OrderStatus.PRE_PAYMENT:
            raise ConflictError(f"Order cannot be paid in status {order.status}")

        intent = find_intent(remote_order_id)
        if intent is None:
            raise ValidationError("Unknown payment order")
        if intent.order_id != order.id or intent.vendor_id != vendor.id:
            raise ValidationError("Payment order does not match this order and vendor")
        if intent.status != PaymentIntentStatus.INITIALIZED:
            raise ConflictError(f"Payment order is already {intent.status}")
        # Settle what the processor charged, not the vendor's current quote.
        quote = db.session.get(Quote, intent.quote_id) if intent.quote_id else None
        if quote is None:
            raise NotFoundError("Quote not found for this vendor")
        amount_minor = int(intent.amount_minor or 0)
        amount = money_minor_to_major(amount_minor)
        try:
            discount = self.commissions.check_vendor_commission_discount(vendor.id)
            if discount.has_discount:
                self.commissions.consume_discount_credit(vendor, order_id=order.id)

            payment = Payment(
                order_id=order.id,
                vendor_id=vendor.id,
                quote_id=quote.id,
                provider=self.provider.name,
                remote_order_id=remote_order_id or None,
                remote_payment_id=remote_payment_id,
                signature=(details.get("signature") or None),
                amount=amount,
                amount_minor=amount_minor,
                currency=self.currency,
                paid_at=datetime.utcnow(),
                applied_commission_discount=bool(discount.has_discount),
                commission_rate=float(discount.rate),
                refunded_amount=0.0,
            )
            db.session.add(payment)
            order.payment = payment
            order.selected_vendor_id = vendor.id
            order.selected_quote_id = quote.id
            self.orders.record_status(order, OrderStatus.PAID, notes=f"Payment {remote_payment_id} verified", created_by=order.user_email)
            db.session.flush()

            transition_intent(
                intent,
                PaymentIntentStatus.PAID,
                idempotency_key=f"verified:{remote_payment_id}",
                actor={"type": "customer", "id": order.user_email},
                reason="signature_verified",
            )

            self._notify_paid(order, vendor, amount)

            if order.is_cross_lead and order.referring_vendor_id:
                rate = order.commission_rate if order.commission_rate is not None else self.commissions.standard_rate
                self.commissions.process_cross_lead_commission(
                    order.referring_vendor_id,
                    vendor.id,
                    amount,
                    rate,
                    order.id,
                )
                order.cross_lead_status = CrossLeadStatus.CONVERTED

            log_event(
                "payment_captured",
                actor_type="customer",
                actor_id=order.user_email,
                subject_type="order",
                subject_id=order.id,
                idempotency_key=f"payment_captured:{remote_payment_id}",
                metadata={
                    "vendor_id": vendor.id,
                    "amount": amount,
                    "commission_rate": discount.rate,
                    "discounted": discount.has_discount,
                },
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("payment_commit_failed order_id=%s remote_payment_id=%s", order_id, remote_payment_id)
            raise

        logger.info(
            "payment_processed order_id=%s vendor_id=%s amount=%s commission_rate=%s",
            order.id,
            vendor.id,
            amount,
            payment.commission_rate,
        )
        return order

    def _invited_vendor_ids(self, order: Order) -> list[str]:
        ids = list(order.vendor_requests)
        for q in order.quotes or []:
            if q.vendor_id not in ids:
                ids.append(q.vendor_id)
        return ids

    def _notify_paid(self, order: Order, vendor: Vendor, amount: float) -> None:
        number = order.order_number
        self.notifications.notify_vendor(
            vendor,
            f"Payment Received for Order #{number}",
            f"Payment has been received for order #{number}. Please log in to your dashboard to proceed with the move.",
            event_type="payment_received",
            metadata={"order_id": order.id, "amount": amount},
        )
        self.notifications.notify_customer(
            order.user_email,
            f"Payment Confirmed for Order #{number}",
            f"Your payment for order #{number} has been confirmed. The vendor will contact you shortly to coordinate the move.",
            event_type="payment_confirmed",
            metadata={"order_id": order.id, "vendor_id": vendor.id},
        )
        for other_id in self._invited_vendor_ids(order):
            if other_id == vendor.id:
                continue
            other = db.session.get(Vendor, other_id)
            if other is None:
                continue
            other_quote = order.latest_quote_for(other_id)
            did_quote = other_quote is not None
            if did_quote:
                body = (
                    f"This job has been assigned to {vendor.display_name} as "
                    f"{price_difference_text(other_quote.amount, amount)}."
                )
            else:
                body = (
                    f"The user has selected {vendor.display_name} for order #{number}. Since you didn't "
                    "submit a quote, the opportunity has been assigned to another vendor."
                )
            self.notifications.notify_vendor(
                other,
                f"Update on Order #{number}",
                body,
                event_type="vendor_not_selected",
                metadata={
                    "order_id": order.id,
                    "did_quote": did_quote,
                    "quote_amount": float(other_quote.amount) if did_quote else None,
                },
            )

    def process_refund(
        self,
        order_id: str,
        payment_id: str,
        amount=None,
        *,
        reason: str = "Customer requested refund",
        actor: dict | None = None,
    ) -> Refund:
        order = self.orders.get_by_id(order_id)
        payment = order.payment
        if payment is None:
            raise NotFoundError("No payment found for this order")
        if (payment_id or "").strip() != payment.remote_payment_id:
            raise ValidationError("Payment ID does not match the order's payment")

        remaining = payment.refundable_amount
        if amount is None or amount == "":
            if remaining <= 0:
                raise ConflictError("Order is already fully refunded")
            refund_amount = remaining
            amount_minor = None
        else:
            try:
                refund_amount = round(float(amount), 2)
            except (TypeError, ValueError):
                raise ValidationError("Refund amount must be a number")
            if not math.isfinite(refund_amount) or refund_amount <= 0:
                raise ValidationError("Refund amount must be positive")
            if refund_amount > remaining:
                raise ValidationError(
                    f"Refund amount exceeds the refundable amount of {remaining:.2f}",
                    details={"refundable": remaining, "paid": float(payment.amount)},
                )
            amount_minor = money_major_to_minor(refund_amount)

        notes = {"orderId": order.id, "reason": (reason or "")[:200]}
        try:
            remote = self.provider.refund(payment.remote_payment_id, amount_minor=amount_minor, notes=notes)
        except RuntimeError as e:
            logger.warning("refund_failed order_id=%s payment_id=%s err=%s", order.id, payment.remote_payment_id, e)
            raise _gateway_error(e)

        actor_type = str((actor or {}).get("type") or "admin")
        actor_id = (actor or {}).get("id")
        try:
            refund = Refund(
                payment_id=payment.id,
                order_id=order.id,
                refund_id=remote.id,
                amount=refund_amount,
                status=remote.status or "processed",
                reason=(reason or "")[:240] or None,
                created_at=datetime.utcnow(),
            )
            db.session.add(refund)
            payment.refunded_amount = round(float(payment.refunded_amount or 0.0) + refund_amount, 2)
            is_full = payment.refunded_amount >= round(float(payment.amount), 2)
            payment.refund_status = "full" if is_full else "partial"
            if is_full:
                self.orders.record_status(
                    order,
                    OrderStatus.REFUNDED,
                    notes=reason or "Refunded",
                    created_by=f"{actor_type}:{actor_id}" if actor_id is not None else actor_type,
                )
                intent = find_intent(payment.remote_order_id)
                if intent is not None and intent.status == PaymentIntentStatus.PAID:
                    transition_intent(
                        intent,
                        PaymentIntentStatus.REFUNDED,
                        idempotency_key=f"refunded:{remote.id}",
                        actor={"type": actor_type, "id": actor_id},
                        reason=(reason or "refunded")[:240],
                    )
            self.notifications.notify_customer(
                order.user_email,
                f"Refund Processed for Order #{order.order_number}",
                f"A refund of {format_inr(refund_amount)} has been processed for your order #{order.order_number}.",
                event_type="refund_processed",
                metadata={"order_id": order.id, "refund_id": remote.id, "amount": refund_amount},
            )
            log_event(
                "payment_refunded",
                actor_type=actor_type,
                actor_id=actor_id,
                subject_type="order",
                subject_id=order.id,
                idempotency_key=f"refund:{remote.id}",
                metadata={"amount": refund_amount, "full": is_full, "reason": reason},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("refund_record_failed order_id=%s refund_id=%s", order.id, remote.id)
            raise
        logger.info("refund_processed order_id=%s refund_id=%s amount=%s full=%s", order.id, remote.id, refund_amount, is_full)
        return refund

    def get_payment_status(self, payment_id: str) -> dict:
        try:
            remote = self.provider.fetch_payment((payment_id or "").strip())
        except RuntimeError as e:
            raise _gateway_error(e)
        return {"id": remote.id, "status": remote.status, "amount": remote.amount, "currency": remote.currency}
