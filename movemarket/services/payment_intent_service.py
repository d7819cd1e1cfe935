from __future__ import annotations

import json
from datetime import datetime

from movemarket.errors import ConflictError
from movemarket.extensions import db
from movemarket.models import PaymentIntent, PaymentIntentTransition


class PaymentIntentStatus:
    """Lifecycle of a processor-side payment order."""

    INITIALIZED = "initialized"
    PAID = "paid"
    REFUNDED = "refunded"

    ALLOWED = {
        INITIALIZED: {PAID},
        PAID: {REFUNDED},
        REFUNDED: set(),
    }


def parse_actor(actor) -> tuple[str, str | None]:
    if not isinstance(actor, dict):
        return "system", None
    actor_id = actor.get("id")
    return str(actor.get("type") or "system")[:32], (str(actor_id)[:64] if actor_id is not None else None)


def transition_intent(
    intent: PaymentIntent,
    to_state: str,
    *,
    idempotency_key: str,
    actor=None,
    reason: str = "",
    metadata: dict | None = None,
) -> PaymentIntentTransition:
    key = (idempotency_key or "").strip()[:160]
    if not key:
        raise ValueError("idempotency_key required")
    done = PaymentIntentTransition.query.filter_by(intent_id=intent.id, idempotency_key=key).first()
    if done is not None:
        return done

    current = (intent.status or PaymentIntentStatus.INITIALIZED).strip().lower()
    target = (to_state or "").strip().lower()
    if target not in PaymentIntentStatus.ALLOWED.get(current, set()):
        raise ConflictError(
            f"Payment intent cannot move from {current} to {target}",
            details={"from": current, "to": target},
        )

    now = datetime.utcnow()
    actor_type, actor_id = parse_actor(actor)
    step = PaymentIntentTransition(
        intent_id=intent.id,
        from_status=current,
        to_status=target,
        actor_type=actor_type,
        actor_id=actor_id,
        idempotency_key=key,
        reason=(reason or "")[:240],
        metadata_json=json.dumps(metadata or {}, default=str),
        created_at=now,
    )
    intent.status = target
    intent.updated_at = now
    if target == PaymentIntentStatus.PAID:
        intent.paid_at = intent.paid_at or now
    db.session.add(step)
    return step


def find_intent(remote_order_id: str) -> PaymentIntent | None:
    rid = (remote_order_id or "").strip()
    return PaymentIntent.query.filter_by(remote_order_id=rid).first() if rid else None


def intent_history(intent: PaymentIntent) -> list[PaymentIntentTransition]:
    return (
        PaymentIntentTransition.query.filter_by(intent_id=intent.id)
        .order_by(PaymentIntentTransition.created_at.asc(), PaymentIntentTransition.id.asc())
        .all()
    )
