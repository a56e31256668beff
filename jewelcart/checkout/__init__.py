"""Checkout package: order payload, order API client, place-order flow."""
from .models import ShippingInfo, OrderItem, OrderPayload
from .service import CheckoutError, CheckoutService, OrderApiClient, build_order_payload

__all__ = [
    "ShippingInfo",
    "OrderItem",
    "OrderPayload",
    "CheckoutError",
    "CheckoutService",
    "OrderApiClient",
    "build_order_payload",
]
