"""Tests for checkout: payload building, order API client, place-order flow"""
import asyncio
import json
from decimal import Decimal
from typing import Any, Dict, List

import httpx
import pytest

from jewelcart.auth import IdentityProvider, TokenStore
from jewelcart.cart import Cart, CartLine, CartStore
from jewelcart.checkout import (
    CheckoutError,
    CheckoutService,
    OrderApiClient,
    ShippingInfo,
    build_order_payload,
)
from jewelcart.config import load_settings
from jewelcart.db import MemoryKeyValueStore
from jewelcart.errors import (
    ERROR_CART_EMPTY,
    ERROR_ORDER_API_UNAVAILABLE,
    ERROR_ORDER_IN_PROGRESS,
    ERROR_SHIPPING_INCOMPLETE,
    ERROR_USER_NOT_FOUND,
)


@pytest.fixture
def shipping():
    return ShippingInfo(
        address="12 Rizal St",
        city="Manila",
        phone_no="09171234567",
        postal_code="1000",
        country="PH",
    )


class YieldingStore(MemoryKeyValueStore):
    """Memory store whose reads suspend like a network round trip."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)


def _client(handler, **kwargs) -> OrderApiClient:
    transport = httpx.MockTransport(handler)
    return OrderApiClient(
        base_url="https://api.test/api",
        retry_wait=0,
        http_client=httpx.AsyncClient(transport=transport),
        **kwargs,
    )


class TestShippingInfo:

    def test_accepts_api_field_names(self):
        info = ShippingInfo.model_validate({
            "address": "a", "city": "c", "phoneNo": "p", "postalCode": "1", "country": "PH",
        })
        assert info.phone_no == "p"

    @pytest.mark.parametrize("missing", ["address", "city", "phone_no", "postal_code", "country"])
    def test_all_fields_required(self, missing):
        data = {"address": "a", "city": "c", "phone_no": "p", "postal_code": "1", "country": "PH"}
        data[missing] = "   "
        with pytest.raises(ValueError):
            ShippingInfo.model_validate(data)


class TestBuildOrderPayload:

    def test_prices(self, shipping):
        cart = Cart(
            identity_key="cart_u1",
            lines=[
                CartLine(item_id="p1", unit_price=Decimal("100"), quantity=2, display={"name": "Ring", "image": "r.jpg"}),
                CartLine(item_id="p2", unit_price=Decimal("50"), quantity=1),
            ],
        )

        payload = build_order_payload(cart, "u1", shipping, settings=load_settings())

        assert payload.items_price == 250.0
        assert payload.tax_price == 30.0
        assert payload.shipping_price == 50.0
        assert payload.total_price == 330.0
        assert payload.mode_of_payment == "COD"

    def test_request_body_uses_api_names(self, shipping):
        lines = [CartLine(item_id="p1", unit_price=Decimal("19.99"), quantity=3, display={"name": "Ring", "productId": "prod-1"})]

        body = build_order_payload(lines, "u1", shipping, "GCash", load_settings()).to_request()

        assert body["userId"] == "u1"
        assert body["modeOfPayment"] == "GCash"
        assert body["shippingInfo"]["phoneNo"] == "09171234567"
        assert body["orderItems"] == [
            {"product": "prod-1", "name": "Ring", "quantity": 3, "image": None, "price": 19.99},
        ]
        assert body["itemsPrice"] == 59.97
        assert body["taxPrice"] == 7.2
        assert body["totalPrice"] == 117.17

    def test_custom_rates(self, shipping, monkeypatch):
        monkeypatch.setenv("JEWELCART_TAX_RATE", "0")
        monkeypatch.setenv("JEWELCART_SHIPPING_FEE", "0")
        lines = [CartLine(item_id="p1", unit_price=Decimal("10"), quantity=1)]

        payload = build_order_payload(lines, "u1", shipping, settings=load_settings())

        assert payload.total_price == 10.0


class TestOrderApiClient:

    @pytest.mark.asyncio
    async def test_create_order_posts_payload(self, shipping):
        seen: List[httpx.Request] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"success": True, "order": {"_id": "order-1"}})

        client = _client(handler)
        payload = build_order_payload(
            [CartLine(item_id="p1", unit_price=Decimal("10"))], "u1", shipping, settings=load_settings()
        )

        result = await client.create_order(payload, token="jwt")

        assert result["order"]["_id"] == "order-1"
        assert str(seen[0].url) == "https://api.test/api/orders"
        assert seen[0].headers["Authorization"] == "Bearer jwt"
        assert json.loads(seen[0].content)["userId"] == "u1"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_error_status_raises_with_api_message(self, shipping):
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Product out of stock"})

        client = _client(handler)
        payload = build_order_payload(
            [CartLine(item_id="p1", unit_price=Decimal("10"))], "u1", shipping, settings=load_settings()
        )

        with pytest.raises(CheckoutError, match="Product out of stock"):
            await client.create_order(payload)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, shipping):
        calls = {"count": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"success": True})

        client = _client(handler)
        payload = build_order_payload(
            [CartLine(item_id="p1", unit_price=Decimal("10"))], "u1", shipping, settings=load_settings()
        )

        assert await client.create_order(payload) == {"success": True}
        assert calls["count"] == 3
        await client.aclose()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, shipping):
        calls = {"count": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler, max_attempts=2)
        payload = build_order_payload(
            [CartLine(item_id="p1", unit_price=Decimal("10"))], "u1", shipping, settings=load_settings()
        )

        with pytest.raises(CheckoutError, match=ERROR_ORDER_API_UNAVAILABLE):
            await client.create_order(payload)
        assert calls["count"] == 2
        await client.aclose()


class TestCheckoutService:

    @pytest.fixture
    def orders(self) -> List[Dict[str, Any]]:
        return []

    @pytest.fixture
    def api_client(self, orders):
        async def handler(request: httpx.Request) -> httpx.Response:
            orders.append(json.loads(request.content))
            return httpx.Response(201, json={"success": True})

        return _client(handler)

    @pytest.mark.asyncio
    async def test_place_order_clears_cart(self, cart_store, identity, kv_store, api_client, orders, shipping):
        await identity.login("jwt", {"_id": "u42"})
        cart_store.add_to_cart({"_id": "p1", "price": 100, "name": "Ring"})
        cart_store.add_to_cart({"_id": "p1", "price": 100, "name": "Ring"})
        await cart_store.flush()
        service = CheckoutService(cart_store, identity, api_client, settings=load_settings())

        result = await service.place_order(shipping)

        assert result == {"success": True}
        assert orders[0]["userId"] == "u42"
        assert orders[0]["orderItems"][0]["quantity"] == 2
        assert orders[0]["totalPrice"] == 274.0
        assert cart_store.lines == ()
        assert "cart_u42" not in kv_store.data
        assert not service.in_progress

    @pytest.mark.asyncio
    async def test_place_order_accepts_mapping(self, cart_store, identity, api_client, orders):
        await identity.login("jwt", {"_id": "u42"})
        cart_store.add_to_cart({"_id": "p1", "price": 10})
        service = CheckoutService(cart_store, identity, api_client, settings=load_settings())

        await service.place_order({
            "address": "a", "city": "c", "phoneNo": "p", "postalCode": "1", "country": "PH",
        }, mode_of_payment="Card")

        assert orders[0]["modeOfPayment"] == "Card"

    @pytest.mark.asyncio
    async def test_requires_user(self, cart_store, identity, api_client, orders, shipping):
        await identity.load_user()
        cart_store.add_to_cart({"_id": "p1", "price": 10})
        service = CheckoutService(cart_store, identity, api_client)

        with pytest.raises(CheckoutError, match=ERROR_USER_NOT_FOUND):
            await service.place_order(shipping)
        assert orders == []
        assert not service.in_progress

    @pytest.mark.asyncio
    async def test_requires_shipping_fields(self, cart_store, identity, api_client, shipping):
        await identity.login("jwt", {"_id": "u42"})
        cart_store.add_to_cart({"_id": "p1", "price": 10})
        service = CheckoutService(cart_store, identity, api_client)

        with pytest.raises(CheckoutError, match=ERROR_SHIPPING_INCOMPLETE):
            await service.place_order({"address": "a", "city": ""})

    @pytest.mark.asyncio
    async def test_requires_items(self, cart_store, identity, api_client, shipping):
        await identity.login("jwt", {"_id": "u42"})
        service = CheckoutService(cart_store, identity, api_client)

        with pytest.raises(CheckoutError, match=ERROR_CART_EMPTY):
            await service.place_order(shipping)

    @pytest.mark.asyncio
    async def test_failed_order_keeps_cart(self, cart_store, identity, kv_store, shipping):
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "Database down"})

        await identity.login("jwt", {"_id": "u42"})
        cart_store.add_to_cart({"_id": "p1", "price": 10})
        await cart_store.flush()
        service = CheckoutService(cart_store, identity, _client(handler), settings=load_settings())

        with pytest.raises(CheckoutError, match="Database down"):
            await service.place_order(shipping)

        assert [line.item_id for line in cart_store.lines] == ["p1"]
        assert "cart_u42" in kv_store.data
        assert not service.in_progress

    @pytest.mark.asyncio
    async def test_concurrent_place_order_posts_once(self, api_client, orders, shipping):
        tokens = TokenStore(YieldingStore())
        await tokens.store_auth_data(token="jwt", user_data={"_id": "u42"})
        identity = IdentityProvider(tokens)
        cart_store = CartStore(store=MemoryKeyValueStore())
        await cart_store.load()
        cart_store.add_to_cart({"_id": "p1", "price": 10})
        service = CheckoutService(cart_store, identity, api_client, settings=load_settings())

        results = await asyncio.gather(
            service.place_order(shipping),
            service.place_order(shipping),
            return_exceptions=True,
        )

        assert len(orders) == 1
        assert results[0] == {"success": True}
        assert isinstance(results[1], CheckoutError)
        assert str(results[1]) == ERROR_ORDER_IN_PROGRESS
        assert not service.in_progress
