"""Pytest configuration and fixtures"""
import os
from typing import Dict, Optional

import pytest

# Keep tests off any real Redis / order API
os.environ["UPSTASH_REDIS_REST_URL"] = ""
os.environ["UPSTASH_REDIS_REST_TOKEN"] = ""
os.environ.setdefault("JEWELCART_API_URL", "https://api.test/api")

from jewelcart.auth import IdentityProvider, TokenStore  # noqa: E402
from jewelcart.cart import CartStore  # noqa: E402
from jewelcart.db import MemoryKeyValueStore  # noqa: E402


class FailingStore:
    """Key-value store whose operations can be switched to fail."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})
        self.fail_get = False
        self.fail_set = False
        self.fail_delete = False

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise ConnectionError("store unavailable")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_set:
            raise ConnectionError("store unavailable")
        self.data[key] = value

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise ConnectionError("store unavailable")
        self.data.pop(key, None)


@pytest.fixture
def kv_store():
    """Empty in-memory key-value store"""
    return MemoryKeyValueStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def token_store(kv_store):
    return TokenStore(kv_store)


@pytest.fixture
def identity(token_store):
    return IdentityProvider(token_store)


@pytest.fixture
def cart_store(kv_store, identity):
    """Cart store following the identity fixture"""
    return CartStore(store=kv_store, identity=identity)


@pytest.fixture
def sample_product():
    """Product projection as the catalog screens pass it"""
    return {
        "_id": "p1",
        "name": "Gold Hoop Earrings",
        "price": 100,
        "image": "https://cdn.test/p1.jpg",
        "variant": "18k",
    }


@pytest.fixture
def sample_user():
    """Stored user record"""
    return {
        "_id": "u42",
        "name": "Test User",
        "email": "test@example.com",
        "role": "customer",
    }
