from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from movemarket.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from movemarket.extensions import db
from movemarket.models import DeliveryTransition, Order, OrderStatus, Pincode, Rider, RiderStatus
from movemarket.services.payment_intent_service import parse_actor
from movemarket.utils.events import log_event
from movemarket.utils.geo import haversine_km, parse_coordinates

logger = logging.getLogger(__name__)


class DeliveryStatus:
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED_DELIVERY = "failed_delivery"
    REATTEMPT_DELIVERY = "reattempt_delivery"
    RETURNED = "returned"

    ALLOWED = {
        ASSIGNED: {ACCEPTED},
        ACCEPTED: {PICKED_UP},
        PICKED_UP: {IN_TRANSIT},
        IN_TRANSIT: {OUT_FOR_DELIVERY},
        OUT_FOR_DELIVERY: {DELIVERED, FAILED_DELIVERY},
        FAILED_DELIVERY: {REATTEMPT_DELIVERY, RETURNED},
        REATTEMPT_DELIVERY: {OUT_FOR_DELIVERY},
        DELIVERED: set(),
        RETURNED: set(),
    }
    TERMINAL = {DELIVERED, RETURNED}

    # Order-level status mirrored from the delivery status.
    ORDER_STATUS = {
        ACCEPTED: OrderStatus.IN_DELIVERY,
        PICKED_UP: OrderStatus.IN_DELIVERY,
        IN_TRANSIT: OrderStatus.IN_DELIVERY,
        OUT_FOR_DELIVERY: OrderStatus.IN_DELIVERY,
        REATTEMPT_DELIVERY: OrderStatus.IN_DELIVERY,
        DELIVERED: OrderStatus.DELIVERED,
        FAILED_DELIVERY: OrderStatus.FAILED_DELIVERY,
        RETURNED: OrderStatus.FAILED_DELIVERY,
    }

    MESSAGES = {
        ACCEPTED: "Your order has been accepted by the rider",
        PICKED_UP: "Your package has been picked up",
        IN_TRANSIT: "Your package is in transit",
        OUT_FOR_DELIVERY: "Your package is out for delivery",
        DELIVERED: "Your package has been delivered",
        FAILED_DELIVERY: "Delivery attempt failed",
        REATTEMPT_DELIVERY: "Delivery will be reattempted",
        RETURNED: "Your package is being returned to the sender",
    }


def can_transition(current: str | None, target: str) -> bool:
    return target in DeliveryStatus.ALLOWED.get(current or "", set())


SEARCH_RADII_KM = (5, 10, 15, 20)
INTERCITY_CATEGORIES = {"intercity", "long_distance"}


@dataclass(frozen=True)
class RiderFilters:
    min_completed_deliveries: int = 0
    min_rating: float = 0.0
    min_weight_kg: float = 0.0

    def accepts(self, rider: Rider) -> bool:
        if int(rider.completed_deliveries or 0) < self.min_completed_deliveries:
            return False
        if float(rider.rating or 0.0) < self.min_rating:
            return False
        if self.min_weight_kg and float(rider.max_weight_kg or 0.0) < self.min_weight_kg:
            return False
        return True


STRICT_INTERCITY = RiderFilters(min_completed_deliveries=50, min_rating=4.5)
RELAXED_INTERCITY = RiderFilters(min_completed_deliveries=20, min_rating=4.0)


@dataclass(frozen=True)
class RiderCandidate:
    rider: Rider
    distance_km: float

    @property
    def intercity_score(self) -> float:
        return (
            float(self.rider.rating or 0.0) * 10
            + int(self.rider.completed_deliveries or 0) / 100
            - self.distance_km * 0.5
        )


class DeliveryService:
    def __init__(self, orders, notifications):
        self.orders = orders
        self.notifications = notifications

    def get_rider(self, rider_id: str) -> Rider:
        rider = db.session.get(Rider, str(rider_id or "").strip()) if rider_id else None
        if rider is None:
            raise NotFoundError("Rider not found")
        return rider

    def resolve_pickup_location(self, order: Order, pickup_location: dict | None = None) -> tuple[float, float]:
        if pickup_location:
            coords = parse_coordinates(pickup_location.get("lat"), pickup_location.get("lon"))
            if coords is None:
                raise ValidationError("Invalid pickup location coordinates")
            return coords
        if order.pickup_lat is not None and order.pickup_lon is not None:
            coords = parse_coordinates(order.pickup_lat, order.pickup_lon)
            if coords is not None:
                return coords
        if order.pickup_pincode:
            pin = db.session.get(Pincode, order.pickup_pincode)
            if pin is not None:
                coords = parse_coordinates(pin.latitude, pin.longitude)
                if coords is not None:
                    return coords
        raise ValidationError("Pickup location could not be determined")

    def find_nearby_riders(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        *,
        available_only: bool = True,
        filters: RiderFilters | None = None,
    ) -> list[RiderCandidate]:
        statuses = [RiderStatus.AVAILABLE] if available_only else [RiderStatus.AVAILABLE, RiderStatus.BUSY]
        rows = Rider.query.filter(
            Rider.status.in_(statuses),
            Rider.current_lat.isnot(None),
            Rider.current_lon.isnot(None),
        ).all()
        found = []
        for rider in rows:
            if filters is not None and not filters.accepts(rider):
                continue
            distance = round(haversine_km(lat, lon, rider.current_lat, rider.current_lon), 2)
            if distance <= radius_km:
                found.append(RiderCandidate(rider=rider, distance_km=distance))
        found.sort(key=lambda c: c.distance_km)
        return found

    def _match_rider(self, order: Order, lat: float, lon: float) -> RiderCandidate | None:
        intercity = (order.distance_category or "") in INTERCITY_CATEGORIES
        weight = float(order.package_weight_kg or 0.0)
        filters = None
        if intercity:
            filters = RiderFilters(
                min_completed_deliveries=STRICT_INTERCITY.min_completed_deliveries,
                min_rating=STRICT_INTERCITY.min_rating,
                min_weight_kg=weight,
            )

        candidates: list[RiderCandidate] = []
        for radius in SEARCH_RADII_KM:
            candidates = self.find_nearby_riders(lat, lon, radius, filters=filters)
            if candidates:
                break
            logger.info("rider_search_expand order_id=%s radius_km=%s", order.id, radius)

        if not candidates and intercity:
            filters = RiderFilters(
                min_completed_deliveries=RELAXED_INTERCITY.min_completed_deliveries,
                min_rating=RELAXED_INTERCITY.min_rating,
                min_weight_kg=weight,
            )
            candidates = self.find_nearby_riders(lat, lon, SEARCH_RADII_KM[-1], filters=filters)

        if not candidates:
            candidates = self.find_nearby_riders(
                lat, lon, SEARCH_RADII_KM[-1], available_only=False, filters=filters
            )

        if not candidates:
            return None
        if intercity:
            candidates.sort(key=lambda c: c.intercity_score, reverse=True)
        return candidates[0]

    def _check_assignable(self, order: Order) -> None:
        if order.order_type != "parcel":
            raise ValidationError("Rider assignment is only available for parcel orders")
        if order.rider_id:
            raise ConflictError("Order already has a rider assigned")
        if order.status in OrderStatus.CLOSED:
            raise ConflictError(f"Order cannot be assigned in status {order.status}")
        if order.payment is None:
            raise ConflictError("Order must be paid before a rider is assigned")

    def assign_rider_to_delivery(self, order_id: str, pickup_location: dict | None = None) -> Rider | None:
        order = self.orders.get_by_id(order_id)
        self._check_assignable(order)
        lat, lon = self.resolve_pickup_location(order, pickup_location)

        match = self._match_rider(order, lat, lon)
        try:
            if match is None:
                order.needs_manual_assignment = True
                if order.status != OrderStatus.PENDING_RIDER_ASSIGNMENT:
                    self.orders.record_status(
                        order,
                        OrderStatus.PENDING_RIDER_ASSIGNMENT,
                        notes="No riders available nearby, queued for manual assignment",
                    )
                db.session.commit()
                logger.info("rider_assignment_deferred order_id=%s", order.id)
                return None
            self._bind(order, match.rider, notes=f"Rider {match.rider.name} assigned ({match.distance_km:.2f}km away)")
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("rider_assigned order_id=%s rider_id=%s distance_km=%s", order.id, match.rider.id, match.distance_km)
        return match.rider

    def assign_specific_rider(self, order_id: str, rider_id: str, *, actor: dict | None = None) -> Rider:
        order = self.orders.get_by_id(order_id)
        self._check_assignable(order)
        rider = self.get_rider(rider_id)
        if rider.status in (RiderStatus.SUSPENDED, RiderStatus.PENDING):
            raise ConflictError(f"Rider cannot take deliveries in status {rider.status}")
        try:
            self._bind(order, rider, notes=f"Rider {rider.name} assigned manually", actor=actor)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("rider_assigned_manually order_id=%s rider_id=%s", order.id, rider.id)
        return rider

    def _bind(self, order: Order, rider: Rider, *, notes: str, actor: dict | None = None) -> None:
        rider.status = RiderStatus.BUSY
        rider.updated_at = datetime.utcnow()
        order.rider_id = rider.id
        order.delivery_status = DeliveryStatus.ASSIGNED
        order.needs_manual_assignment = False
        actor_type, actor_id = parse_actor(actor)
        self.orders.record_status(order, OrderStatus.RIDER_ASSIGNED, notes=notes, created_by=actor_type)
        db.session.add(
            DeliveryTransition(
                order_id=order.id,
                rider_id=rider.id,
                from_status="",
                to_status=DeliveryStatus.ASSIGNED,
                actor_type=actor_type,
                actor_id=actor_id,
                notes=notes[:240],
                created_at=datetime.utcnow(),
            )
        )
        self.notifications.notify_rider(
            rider,
            "New Delivery Assigned",
            f"You have been assigned to deliver order #{order.order_number} from pincode {order.pickup_pincode}.",
            event_type="rider_assigned",
            metadata={"order_id": order.id},
        )
        self.notifications.notify_customer(
            order.user_email,
            f"Rider Assigned for Order #{order.order_number}",
            f"{rider.name or 'A rider'} has been assigned to deliver your order #{order.order_number}.",
            event_type="rider_assigned",
            metadata={"order_id": order.id, "rider_id": rider.id},
        )
        log_event(
            "rider_assigned",
            actor_type=actor_type,
            actor_id=actor_id,
            subject_type="order",
            subject_id=order.id,
            metadata={"rider_id": rider.id},
        )

    def transition_delivery(
        self,
        order_id: str,
        to_status: str,
        *,
        notes: str = "",
        actor: dict | None = None,
        metadata: dict | None = None,
    ) -> DeliveryTransition:
        order = self.orders.get_by_id(order_id)
        actor_type, actor_id = parse_actor(actor)
        if actor_type == "rider" and (not order.rider_id or order.rider_id != actor_id):
            raise AuthorizationError("Rider is not assigned to this order")
        if not order.rider_id:
            raise ConflictError("Order has no rider assigned")

        current = order.delivery_status or ""
        target = (to_status or "").strip().lower()
        if not can_transition(current, target):
            raise InvalidTransitionError(current, target)

        rider = db.session.get(Rider, order.rider_id)
        try:
            row = DeliveryTransition(
                order_id=order.id,
                rider_id=order.rider_id,
                from_status=current,
                to_status=target,
                actor_type=actor_type[:32],
                actor_id=actor_id,
                notes=(notes or "")[:240] or None,
                metadata_json=json.dumps(metadata or {}, default=str)[:4000],
                created_at=datetime.utcnow(),
            )
            db.session.add(row)
            order.delivery_status = target
            mirrored = DeliveryStatus.ORDER_STATUS.get(target)
            if mirrored and mirrored != order.status:
                self.orders.record_status(order, mirrored, notes=notes or target, created_by=actor_type)
            else:
                order.updated_at = datetime.utcnow()

            if rider is not None and target in DeliveryStatus.TERMINAL:
                if target == DeliveryStatus.DELIVERED:
                    rider.completed_deliveries = int(rider.completed_deliveries or 0) + 1
                rider.status = RiderStatus.AVAILABLE
                rider.updated_at = datetime.utcnow()

            message = DeliveryStatus.MESSAGES.get(target, f"Delivery status updated to {target}")
            self.notifications.notify_customer(
                order.user_email,
                f"Order Status Update - Order #{order.order_number}",
                f"{message}." if not notes else f"{message}. {notes}",
                event_type=f"delivery_{target}",
                metadata={"order_id": order.id, "delivery_status": target},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("delivery_transition order_id=%s from=%s to=%s actor=%s", order.id, current, target, actor_type)
        return row

    def delivery_history(self, order_id: str) -> list[DeliveryTransition]:
        return (
            DeliveryTransition.query.filter_by(order_id=order_id)
            .order_by(DeliveryTransition.created_at.asc(), DeliveryTransition.id.asc())
            .all()
        )

    def update_rider_location(self, rider_id: str, lat, lon) -> Rider:
        rider = self.get_rider(rider_id)
        coords = parse_coordinates(lat, lon)
        if coords is None:
            raise ValidationError("Valid lat and lon are required")
        rider.current_lat, rider.current_lon = coords
        rider.location_updated_at = datetime.utcnow()
        rider.updated_at = datetime.utcnow()
        db.session.commit()
        return rider

    def update_rider_status(self, rider_id: str, status: str) -> Rider:
        rider = self.get_rider(rider_id)
        target = (status or "").strip().lower()
        if target not in RiderStatus.SELF_SERVICE:
            raise ValidationError(f"status must be one of {', '.join(sorted(RiderStatus.SELF_SERVICE))}")
        if rider.status in (RiderStatus.SUSPENDED, RiderStatus.PENDING):
            raise ConflictError(f"Rider account is {rider.status}")
        rider.status = target
        rider.updated_at = datetime.utcnow()
        db.session.commit()
        logger.info("rider_status_updated rider_id=%s status=%s", rider.id, target)
        return rider

    def approve_rider(self, rider_id: str, *, actor: dict | None = None) -> Rider:
        rider = self.get_rider(rider_id)
        if rider.status != RiderStatus.PENDING:
            raise ConflictError(f"Rider is not pending approval (status {rider.status})")
        rider.status = RiderStatus.AVAILABLE
        rider.updated_at = datetime.utcnow()
        actor_type, actor_id = parse_actor(actor)
        log_event("rider_approved", actor_type=actor_type, actor_id=actor_id, subject_type="rider", subject_id=rider.id)
        self.notifications.notify_rider(
            rider,
            "Rider Account Approved",
            "Your rider account has been approved. You can now go online and accept deliveries.",
            event_type="rider_approved",
        )
        db.session.commit()
        return rider

    def list_riders(self, *, status: str | None = None) -> list[Rider]:
        q = Rider.query
        if status:
            q = q.filter(Rider.status == status)
        return q.order_by(Rider.created_at.desc()).all()
