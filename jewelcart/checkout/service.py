"""Checkout: turn the cart into an order, post it, clear the cart on success."""
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from jewelcart.auth.identity import IdentityProvider
from jewelcart.cart.models import Cart, CartLine
from jewelcart.cart.service import CartStore
from jewelcart.config import Settings, get_settings
from jewelcart.errors import (
    ERROR_CART_EMPTY,
    ERROR_ORDER_API_UNAVAILABLE,
    ERROR_ORDER_FAILED,
    ERROR_ORDER_IN_PROGRESS,
    ERROR_SHIPPING_INCOMPLETE,
    ERROR_USER_NOT_FOUND,
)
from jewelcart.logging import get_logger, sanitize_id_for_logging
from jewelcart.services.money import multiply, round_money, to_float
from .models import OrderItem, OrderPayload, ShippingInfo

logger = get_logger(__name__)


class CheckoutError(ValueError):
    """Checkout failed; the message is safe to show to the user."""


def _order_item(line: CartLine) -> OrderItem:
    name = line.display.get("name")
    image = line.display.get("image")
    return OrderItem(
        product=str(line.display.get("productId") or line.item_id),
        name=str(name) if name is not None else None,
        quantity=line.quantity,
        image=str(image) if image is not None else None,
        price=to_float(line.unit_price),
    )


def build_order_payload(
    cart: Union[Cart, Iterable[CartLine]],
    user_id: str,
    shipping: ShippingInfo,
    mode_of_payment: str = "COD",
    settings: Optional[Settings] = None,
) -> OrderPayload:
    """
    Price the cart and build the order body.

    items = cart total, tax = items * tax_rate, shipping = flat fee,
    total = items + tax + shipping. All rounded to cents.
    """
    settings = settings or get_settings()
    lines = list(cart.lines if isinstance(cart, Cart) else cart)

    items_price = round_money(sum((line.total_price for line in lines), Decimal("0")))
    tax_price = round_money(multiply(items_price, settings.tax_rate))
    shipping_price = round_money(settings.shipping_fee)
    total_price = round_money(items_price + tax_price + shipping_price)

    return OrderPayload(
        user_id=user_id,
        order_items=[_order_item(line) for line in lines],
        shipping_info=shipping,
        items_price=to_float(items_price),
        tax_price=to_float(tax_price),
        shipping_price=to_float(shipping_price),
        total_price=to_float(total_price),
        mode_of_payment=mode_of_payment,
    )


class OrderApiClient:
    """HTTP client for the remote order API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 3,
        retry_wait: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazily create the shared httpx client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    async def create_order(self, payload: OrderPayload, token: Optional[str] = None) -> Dict[str, Any]:
        """
        POST the order and return the API's JSON response.

        Transport errors are retried; an error status is not.

        Raises:
            CheckoutError: if the API rejects the order or cannot be reached
        """
        client = await self._get_http_client()
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = f"{self.base_url}/orders"

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.retry_wait, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await client.post(url, json=payload.to_request(), headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.warning(f"Order API rejected order: {e.response.status_code} {message}")
            raise CheckoutError(message or ERROR_ORDER_FAILED) from e
        except httpx.TransportError as e:
            logger.error(f"Order API unreachable: {e}")
            raise CheckoutError(ERROR_ORDER_API_UNAVAILABLE) from e

        try:
            return response.json()
        except ValueError:
            return {}

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, Mapping):
        message = data.get("message") or data.get("error")
        return str(message) if message else None
    return None


class CheckoutService:
    """
    Place an order from the current cart.

    The cart is cleared only after the order API confirms the order; on any
    failure it stays as it was.
    """

    def __init__(
        self,
        cart_store: CartStore,
        identity: IdentityProvider,
        api_client: Optional[OrderApiClient] = None,
        settings: Optional[Settings] = None,
    ):
        self._cart_store = cart_store
        self._identity = identity
        self._api = api_client or OrderApiClient()
        self._settings = settings
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def place_order(
        self,
        shipping: Union[ShippingInfo, Mapping[str, Any]],
        mode_of_payment: str = "COD",
    ) -> Dict[str, Any]:
        if self._in_progress:
            raise CheckoutError(ERROR_ORDER_IN_PROGRESS)
        self._in_progress = True
        try:
            return await self._place_order(shipping, mode_of_payment)
        finally:
            self._in_progress = False

    async def _place_order(
        self,
        shipping: Union[ShippingInfo, Mapping[str, Any]],
        mode_of_payment: str,
    ) -> Dict[str, Any]:
        user_id = await self._identity.get_user_id()
        if not user_id:
            raise CheckoutError(ERROR_USER_NOT_FOUND)

        if not isinstance(shipping, ShippingInfo):
            try:
                shipping = ShippingInfo.model_validate(shipping)
            except ValidationError as e:
                raise CheckoutError(ERROR_SHIPPING_INCOMPLETE) from e

        cart = self._cart_store.cart
        if cart.is_empty:
            raise CheckoutError(ERROR_CART_EMPTY)

        payload = build_order_payload(cart, user_id, shipping, mode_of_payment, self._settings)
        token = await self._identity.tokens.get_token()
        result = await self._api.create_order(payload, token=token)

        await self._cart_store.clear()

        logger.info(
            f"Order placed for user {sanitize_id_for_logging(user_id)}: "
            f"{len(payload.order_items)} lines, total {payload.total_price}"
        )
        return result
