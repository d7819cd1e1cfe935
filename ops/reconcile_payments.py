from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _bootstrap_app():
    from movemarket import create_app

    app = create_app()
    app.app_context().push()
    return app


def reconcile(limit: int = 5000) -> dict:
    """Report orders whose status disagrees with their payment rows."""
    from movemarket.models import Order, OrderStatus, Payment, PaymentIntent
    from movemarket.services.payment_intent_service import PaymentIntentStatus

    paid_without_payment = []
    payment_without_paid_status = []
    for order in Order.query.order_by(Order.created_at.asc()).limit(limit).all():
        has_payment = order.payment is not None
        if order.status in (OrderStatus.PAID, OrderStatus.REFUNDED) and not has_payment:
            paid_without_payment.append(order.id)
        if has_payment and order.status in OrderStatus.PRE_PAYMENT:
            payment_without_paid_status.append(order.id)

    stale_intents = []
    for payment in Payment.query.limit(limit).all():
        if not payment.remote_order_id:
            continue
        intent = PaymentIntent.query.filter_by(remote_order_id=payment.remote_order_id).first()
        if intent is not None and intent.status not in (PaymentIntentStatus.PAID, PaymentIntentStatus.REFUNDED):
            stale_intents.append({"payment_id": payment.remote_payment_id, "intent_status": intent.status})

    drift_count = len(paid_without_payment) + len(payment_without_paid_status) + len(stale_intents)
    return {
        "ok": drift_count == 0,
        "drift_count": drift_count,
        "paid_without_payment": paid_without_payment,
        "payment_without_paid_status": payment_without_paid_status,
        "intents_not_paid": stale_intents,
    }


def main():
    parser = argparse.ArgumentParser(description="Check that order statuses agree with recorded payments.")
    parser.add_argument("--limit", type=int, default=5000, help="Maximum rows to scan per table.")
    args = parser.parse_args()

    _bootstrap_app()
    summary = reconcile(limit=max(1, args.limit))
    print(json.dumps(summary, indent=2))
    return 0 if summary["drift_count"] == 0 else 2


if __name__ == "__main__":
    os.environ.setdefault("FLASK_APP", "main.py")
    sys.exit(main())
