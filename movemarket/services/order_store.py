from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_

from movemarket.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from movemarket.extensions import db
from movemarket.models import Order, OrderStatus, OrderStatusHistory, Quote
from movemarket.utils.geo import parse_coordinates

logger = logging.getLogger(__name__)


# Fields a caller may merge through ``update``. Everything else on the row is
# owned by a specific service operation.
UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "pickup_address",
        "destination_address",
        "pickup_pincode",
        "destination_pincode",
        "pickup_lat",
        "pickup_lon",
        "move_size",
        "move_date",
        "package_weight_kg",
        "distance_category",
        "vendor_requests",
        "selected_vendor_id",
        "selected_quote_id",
        "cross_lead_status",
        "commission_rate",
        "rider_id",
        "delivery_status",
        "needs_manual_assignment",
        "cancel_reason",
    }
)

CREATE_EXTRA_FIELDS = frozenset(
    {
        "pickup_address",
        "destination_address",
        "move_size",
        "move_date",
        "package_weight_kg",
        "distance_category",
        "pickup_lat",
        "pickup_lon",
    }
)


def _parse_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f"invalid datetime: {value}")


def _clean_pincode(value) -> str | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    if not raw.isdigit() or len(raw) > 12:
        raise ValidationError(f"invalid pincode: {raw}")
    return raw


class OrderStore:
    def find(self, order_id: str) -> Order | None:
        oid = str(order_id or "").strip()
        if not oid:
            return None
        return db.session.get(Order, oid)

    def get_by_id(self, order_id: str) -> Order:
        order = self.find(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def list_by_user_email(self, email: str, *, limit: int = 200) -> list[Order]:
        addr = (email or "").strip().lower()
        if not addr:
            return []
        return (
            Order.query.filter(db.func.lower(Order.user_email) == addr)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_by_vendor(self, vendor_id: str, *, limit: int = 200) -> list[Order]:
        vid = str(vendor_id or "").strip()
        if not vid:
            return []
        quoted = db.session.query(Quote.order_id).filter(Quote.vendor_id == vid)
        return (
            Order.query.filter(
                or_(
                    Order.selected_vendor_id == vid,
                    Order.id.in_(quoted),
                    Order.vendor_requests_json.like(f'%"{vid}"%'),
                )
            )
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )

    def history(self, order_id: str) -> list[OrderStatusHistory]:
        return (
            OrderStatusHistory.query.filter_by(order_id=order_id)
            .order_by(OrderStatusHistory.created_at.asc(), OrderStatusHistory.id.asc())
            .all()
        )

    def record_status(self, order: Order, status: str, *, notes: str = "", created_by: str | None = None) -> None:
        """Set the order status and append history. Does not commit."""
        order.status = status
        order.updated_at = datetime.utcnow()
        db.session.add(
            OrderStatusHistory(
                order_id=order.id,
                status=status,
                notes=(notes or "")[:240] or None,
                created_by=(created_by or "system")[:120],
                created_at=datetime.utcnow(),
            )
        )

    def create(
        self,
        *,
        user_email: str,
        order_type: str = "move",
        pickup_pincode=None,
        destination_pincode=None,
        created_by: str | None = None,
        commit: bool = True,
        **extra,
    ) -> Order:
        email = (user_email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("user_email is required")
        unknown = set(extra) - CREATE_EXTRA_FIELDS
        if unknown:
            raise ValidationError(f"unknown order fields: {', '.join(sorted(unknown))}")
        pickup = _clean_pincode(pickup_pincode)
        if not pickup:
            raise ValidationError("pickup_pincode is required")

        order = Order(
            user_email=email,
            order_type=order_type,
            pickup_pincode=pickup,
            destination_pincode=_clean_pincode(destination_pincode),
            status=OrderStatus.INITIATED,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        self._apply(order, extra)
        db.session.add(order)
        db.session.flush()
        self.record_status(order, OrderStatus.INITIATED, notes="Order created", created_by=created_by or email)
        if commit:
            db.session.commit()
            logger.info("order_created order_id=%s order_type=%s", order.id, order.order_type)
        return order

    def update(self, order_id: str, **fields) -> Order:
        order = self.get_by_id(order_id)
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown order fields: {', '.join(sorted(unknown))}")
        status = fields.pop("status", None)
        try:
            self._apply(order, fields)
            if status is not None and status != order.status:
                self.record_status(order, status, notes="Order updated")
            order.updated_at = datetime.utcnow()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return order

    def cancel(self, order_id: str, *, actor_email: str, is_admin: bool = False, reason: str = "") -> Order:
        order = self.get_by_id(order_id)
        if not is_admin and (order.user_email or "").lower() != (actor_email or "").strip().lower():
            raise AuthorizationError("Only the customer who placed the order can cancel it")
        if order.status not in OrderStatus.PRE_PAYMENT or order.payment is not None:
            raise ConflictError(f"Order cannot be cancelled in status {order.status}")
        order.cancel_reason = (reason or "")[:240] or None
        self.record_status(order, OrderStatus.CANCELLED, notes=reason or "Cancelled", created_by=actor_email)
        db.session.commit()
        logger.info("order_cancelled order_id=%s by=%s", order.id, actor_email)
        return order

    def _apply(self, order: Order, fields: dict) -> None:
        for key, value in fields.items():
            if key == "move_date":
                order.move_date = _parse_datetime(value)
            elif key in ("pickup_pincode", "destination_pincode"):
                setattr(order, key, _clean_pincode(value))
            elif key == "vendor_requests":
                order.vendor_requests = list(value or [])
            elif key == "package_weight_kg":
                order.package_weight_kg = self._positive_float(value, key)
            elif key == "commission_rate":
                order.commission_rate = self._positive_float(value, key)
            elif key == "needs_manual_assignment":
                order.needs_manual_assignment = bool(value)
            else:
                setattr(order, key, value)
        if "pickup_lat" in fields or "pickup_lon" in fields:
            if order.pickup_lat is None and order.pickup_lon is None:
                return
            coords = parse_coordinates(order.pickup_lat, order.pickup_lon)
            if coords is None:
                raise ValidationError("pickup_lat/pickup_lon must be valid coordinates")
            order.pickup_lat, order.pickup_lon = coords

    @staticmethod
    def _positive_float(value, name: str) -> float | None:
        if value is None or value == "":
            return None
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be a number")
        if parsed <= 0:
            raise ValidationError(f"{name} must be positive")
        return parsed
