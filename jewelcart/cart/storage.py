"""Durable storage access for the cart."""
import json

from jewelcart.db import KeyValueStore, StorageKeys, get_key_value_store
from .models import Cart


def encode_cart(cart: Cart) -> str:
    """Serialize the whole cart for a full-overwrite write."""
    return json.dumps(cart.to_list())


def decode_cart(identity_key: str, payload: str) -> Cart:
    """
    Parse a stored payload.

    Raises:
        json.JSONDecodeError, TypeError, KeyError, ValueError: malformed payload
    """
    return Cart.from_list(identity_key, json.loads(payload))


__all__ = [
    "KeyValueStore",
    "StorageKeys",
    "get_key_value_store",
    "encode_cart",
    "decode_cart",
]
