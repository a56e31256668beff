"""Identity provider: who is logged in, with change notifications."""
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from jewelcart.logging import get_logger, sanitize_id_for_logging
from .tokens import TokenStore

logger = get_logger(__name__)

User = Dict[str, Any]
IdentityListener = Callable[[Optional[User]], Awaitable[None]]


def extract_user_id(user: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Remote _id first, then id. None for guests and unusable records."""
    if not isinstance(user, Mapping):
        return None
    value = user.get("_id") or user.get("id")
    if value is None or str(value) == "":
        return None
    return str(value)


class IdentityProvider:
    """
    Tracks the current user and tells subscribers when the user id changes.

    Subscribers are notified on login, logout and when a stored session is
    loaded. Nothing polls; every change goes through set_user/login/logout/
    load_user/sync_with_token_store.
    """

    def __init__(self, tokens: Optional[TokenStore] = None):
        self._tokens = tokens or TokenStore()
        self._user: Optional[User] = None
        # Until the first set/load, the stored user record is the best answer
        self._resolved = False
        self._listeners: List[IdentityListener] = []

    @property
    def tokens(self) -> TokenStore:
        return self._tokens

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def user_id(self) -> Optional[str]:
        return extract_user_id(self._user)

    async def get_user_id(self) -> Optional[str]:
        """Current user id, or None for a guest."""
        if self._user is not None or self._resolved:
            return self.user_id
        return extract_user_id(await self._tokens.get_user_data())

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_user(self, user: Optional[User]) -> None:
        """Persist the user record (if any) and make it current."""
        if user:
            try:
                await self._tokens.store_user_data(user)
            except Exception as e:
                logger.error(f"Error updating user: {e}")
                return
        await self._apply(user)

    async def login(self, token: str, user: User, refresh_token: Optional[str] = None) -> None:
        """Store credentials, then switch to user."""
        await self._tokens.store_auth_data(token=token, refresh_token=refresh_token, user_data=user)
        await self._apply(user)

    async def logout(self) -> None:
        """Drop credentials and switch to guest."""
        try:
            await self._tokens.clear_auth_data()
        except Exception as e:
            logger.error(f"Error clearing auth data on logout: {e}")
        await self._apply(None)

    async def load_user(self) -> Optional[User]:
        """Load the stored user record into memory."""
        user = await self._tokens.get_user_data()
        await self._apply(user)
        return user

    async def sync_with_token_store(self) -> None:
        """Drop the user when the token is gone; load it when a token appears."""
        authenticated = await self._tokens.is_authenticated()
        if not authenticated and self._user is not None:
            await self._apply(None)
        elif authenticated and self._user is None:
            await self.load_user()

    async def _apply(self, user: Optional[User]) -> None:
        previous_id = self.user_id
        first = not self._resolved
        self._user = user
        self._resolved = True
        current = sanitize_id_for_logging(self.user_id) if self.user_id else "guest"
        if first:
            logger.info(f"Identity resolved: {current}")
        elif self.user_id != previous_id:
            previous = sanitize_id_for_logging(previous_id) if previous_id else "guest"
            logger.info(f"Identity changed: {previous} -> {current}")
        else:
            return
        await self._notify(user)

    async def _notify(self, user: Optional[User]) -> None:
        for listener in list(self._listeners):
            try:
                await listener(user)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}", exc_info=True)
