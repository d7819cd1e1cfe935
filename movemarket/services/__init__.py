from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from movemarket.config import MarketplaceSettings, load_settings
from movemarket.integrations.payments.factory import build_payments_provider
from movemarket.services.commission_service import CommissionService
from movemarket.services.delivery_service import DeliveryService
from movemarket.services.notification_service import NotificationService
from movemarket.services.order_store import OrderStore
from movemarket.services.payment_service import PaymentService
from movemarket.services.quote_service import QuoteService

EXTENSION_KEY = "movemarket"


@dataclass
class MarketplaceServices:
    settings: MarketplaceSettings
    orders: OrderStore
    notifications: NotificationService
    quotes: QuoteService
    commissions: CommissionService
    payments: PaymentService
    delivery: DeliveryService


def build_services(settings: MarketplaceSettings | None = None, *, payments_provider=None) -> MarketplaceServices:
    settings = settings or load_settings()
    orders = OrderStore()
    notifications = NotificationService(settings)
    commissions = CommissionService(settings, orders)
    provider = payments_provider or build_payments_provider(settings)
    return MarketplaceServices(
        settings=settings,
        orders=orders,
        notifications=notifications,
        quotes=QuoteService(orders, notifications),
        commissions=commissions,
        payments=PaymentService(settings, provider, orders, commissions, notifications),
        delivery=DeliveryService(orders, notifications),
    )


def get_services() -> MarketplaceServices:
    services = current_app.extensions.get(EXTENSION_KEY)
    if services is None:
        services = build_services()
        current_app.extensions[EXTENSION_KEY] = services
    return services
