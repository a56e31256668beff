"""Auth token and user record storage."""
import asyncio
import json
from typing import Any, Dict, Optional

from jewelcart.db import KeyValueStore, StorageKeys, get_key_value_store
from jewelcart.logging import get_logger

logger = get_logger(__name__)


class TokenStore:
    """
    Keeps the access token, refresh token and user record in the durable store.

    Writes log and re-raise on failure; reads log and return None.
    """

    def __init__(self, store: Optional[KeyValueStore] = None):
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        """Key-value store (lazy initialization)."""
        if self._store is None:
            self._store = get_key_value_store()
        return self._store

    async def store_token(self, token: str) -> None:
        try:
            await self.store.set(StorageKeys.TOKEN, token)
        except Exception as e:
            logger.error(f"Error storing token: {e}")
            raise

    async def get_token(self) -> Optional[str]:
        try:
            return await self.store.get(StorageKeys.TOKEN)
        except Exception as e:
            logger.error(f"Error retrieving token: {e}")
            return None

    async def store_refresh_token(self, refresh_token: str) -> None:
        try:
            await self.store.set(StorageKeys.REFRESH_TOKEN, refresh_token)
        except Exception as e:
            logger.error(f"Error storing refresh token: {e}")
            raise

    async def get_refresh_token(self) -> Optional[str]:
        try:
            return await self.store.get(StorageKeys.REFRESH_TOKEN)
        except Exception as e:
            logger.error(f"Error retrieving refresh token: {e}")
            return None

    async def store_user_data(self, user_data: Dict[str, Any]) -> None:
        try:
            await self.store.set(StorageKeys.USER, json.dumps(user_data))
        except Exception as e:
            logger.error(f"Error storing user data: {e}")
            raise

    async def get_user_data(self) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.store.get(StorageKeys.USER)
            if not raw:
                return None
            data = json.loads(raw)
            if not isinstance(data, dict):
                logger.warning("Stored user data is not an object; ignoring it")
                return None
            return data
        except Exception as e:
            logger.error(f"Error retrieving user data: {e}")
            return None

    async def is_authenticated(self) -> bool:
        """True if an access token is stored."""
        return bool(await self.get_token())

    async def clear_auth_data(self) -> None:
        """Remove token, refresh token and user record (logout)."""
        try:
            await self.store.delete(StorageKeys.TOKEN)
            await self.store.delete(StorageKeys.REFRESH_TOKEN)
            await self.store.delete(StorageKeys.USER)
        except Exception as e:
            logger.error(f"Error clearing auth data: {e}")
            raise

    async def store_auth_data(
        self,
        token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        user_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Store whichever of token, refresh token and user record are given."""
        writes = []
        if token:
            writes.append(self.store_token(token))
        if refresh_token:
            writes.append(self.store_refresh_token(refresh_token))
        if user_data:
            writes.append(self.store_user_data(user_data))

        try:
            await asyncio.gather(*writes)
        except Exception as e:
            logger.error(f"Error storing auth data: {e}")
            raise
