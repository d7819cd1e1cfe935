from movemarket.models.user import User, USER_ROLES
from movemarket.models.vendor import Vendor
from movemarket.models.rider import Rider, RiderStatus
from movemarket.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    Quote,
    ORDER_TYPES,
    DISTANCE_CATEGORIES,
    DELIVERY_STATUSES,
)
from movemarket.models.payment_intent import PaymentIntent
from movemarket.models.payment_intent_transition import PaymentIntentTransition
from movemarket.models.payment import Payment, Refund
from movemarket.models.commission_record import CommissionRecord
from movemarket.models.delivery_transition import DeliveryTransition
from movemarket.models.notification import Notification
from movemarket.models.pincode import Pincode
from movemarket.models.platform_event import PlatformEvent
from movemarket.models.job_run import JobRun

__all__ = [
    "User",
    "USER_ROLES",
    "Vendor",
    "Rider",
    "RiderStatus",
    "Order",
    "OrderStatus",
    "OrderStatusHistory",
    "Quote",
    "ORDER_TYPES",
    "DISTANCE_CATEGORIES",
    "DELIVERY_STATUSES",
    "PaymentIntent",
    "PaymentIntentTransition",
    "Payment",
    "Refund",
    "CommissionRecord",
    "DeliveryTransition",
    "Notification",
    "Pincode",
    "PlatformEvent",
    "JobRun",
]
