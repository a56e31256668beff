"""Cart store: in-memory cart mirrored to the durable key-value store."""
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from jewelcart.auth.identity import IdentityProvider
from jewelcart.logging import get_logger, sanitize_key_for_logging
from .models import Cart, CartLine
from .persistence import SnapshotWriter
from .storage import KeyValueStore, StorageKeys, get_key_value_store, encode_cart, decode_cart

logger = get_logger(__name__)


class CartStore:
    """
    Holds the current identity's cart.

    - The in-memory cart is authoritative; storage is a best-effort mirror
      written in the background after every mutation.
    - The cart is scoped to an identity key (cart_{user_id} or cart_guest)
      and is reloaded whenever the identity provider reports a new user.
    - Storage failures are logged, never raised.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        identity: Optional[IdentityProvider] = None,
    ):
        self._store = store if store is not None else get_key_value_store()
        self._identity = identity
        self._writer = SnapshotWriter(self._store)
        self._cart: Optional[Cart] = None
        self._unloaded_lines: list = []
        self._load_generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        if identity is not None:
            self._unsubscribe = identity.subscribe(self._on_identity_change)

    # ==================== STATE ====================

    @property
    def is_loaded(self) -> bool:
        return self._cart is not None

    @property
    def identity_key(self) -> Optional[str]:
        """Key of the loaded cart, None before the first load."""
        return self._cart.identity_key if self._cart else None

    @property
    def _lines(self) -> list:
        return self._cart.lines if self._cart else self._unloaded_lines

    @property
    def lines(self) -> Tuple[CartLine, ...]:
        """Snapshot of the cart lines in insertion order."""
        return tuple(line.copy() for line in self._lines)

    @property
    def cart(self) -> Cart:
        """Copy of the current cart."""
        return Cart(identity_key=self.identity_key or "", lines=list(self.lines))

    # ==================== PERSISTENCE ====================

    async def resolve_identity_key(self) -> str:
        """cart_{user_id} for a logged-in user, cart_guest otherwise."""
        user_id = None
        if self._identity is not None:
            try:
                user_id = await self._identity.get_user_id()
            except Exception as e:
                logger.warning(f"Identity lookup failed, using guest cart: {e}")
        return StorageKeys.cart_key(user_id)

    async def load(self) -> Cart:
        """Replace the in-memory cart with the stored cart of the current identity."""
        self._load_generation += 1
        generation = self._load_generation
        key = await self.resolve_identity_key()
        # A write still queued for this key holds newer state than storage
        await self._writer.flush(key)

        cart = Cart(identity_key=key)
        try:
            payload = await self._store.get(key)
            if payload:
                cart = decode_cart(key, payload)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.warning(f"Corrupted cart data under {sanitize_key_for_logging(key)}: {e}")
        except Exception as e:
            logger.error(f"Failed to load cart: {e}")

        if generation != self._load_generation:
            # A newer load started while this one awaited; it owns the cart
            logger.debug(f"Discarded stale cart load for {sanitize_key_for_logging(key)}")
            return self.cart

        self._cart = cart
        self._unloaded_lines = []
        logger.debug(f"Loaded {len(cart.lines)} cart lines for {sanitize_key_for_logging(key)}")
        return self.cart

    async def save(self, cart: Optional[Cart] = None) -> None:
        """Overwrite the stored record with the full cart."""
        if cart is None:
            if self._cart is None:
                logger.debug("Cart not loaded; nothing to save")
                return
            cart = self._cart
        key = cart.identity_key or await self.resolve_identity_key()
        self._writer.submit(key, encode_cart(cart))
        await self._writer.flush(key)

    async def clear(self) -> None:
        """Delete the stored cart of the current identity and empty the cart."""
        key = self.identity_key or await self.resolve_identity_key()
        self._cart = Cart(identity_key=key)
        self._unloaded_lines = []
        self._writer.submit(key, None)
        await self._writer.flush(key)

    async def flush(self) -> None:
        """Wait for every background write to finish."""
        await self._writer.flush()

    async def close(self) -> None:
        """Stop following the identity provider and finish pending writes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.flush()

    # ==================== MUTATIONS ====================

    def add_to_cart(self, item: Union[Mapping[str, Any], CartLine]) -> CartLine:
        """
        Add one unit of item.

        An existing line with the same id gets quantity + 1 and keeps its
        display fields; otherwise a new line with quantity 1 is appended.

        Raises:
            ValueError: if item has no id or an invalid price
        """
        if isinstance(item, CartLine):
            incoming = CartLine(item_id=item.item_id, unit_price=item.unit_price, display=dict(item.display))
            if incoming.unit_price < 0:
                raise ValueError("unit_price must be a non-negative number")
        else:
            incoming = CartLine.from_item(item)

        lines = self._lines
        existing = next((line for line in lines if line.item_id == incoming.item_id), None)
        if existing:
            existing.quantity += 1
            line = existing
        else:
            lines.append(incoming)
            line = incoming

        self._schedule_save()
        return line.copy()

    def decrease_quantity(self, item_id: str) -> None:
        """Remove one unit of item_id; the line goes away at zero. Unknown ids are ignored."""
        lines = self._lines
        item_id = str(item_id)
        for index, line in enumerate(lines):
            if line.item_id != item_id:
                continue
            line.quantity -= 1
            if line.quantity <= 0:
                del lines[index]
            self._schedule_save()
            return

    # ==================== QUERIES ====================

    def get_total_price(self) -> Decimal:
        """Sum of unit_price * quantity over all lines."""
        return sum((line.total_price for line in self._lines), Decimal("0"))

    def get_total_items(self) -> int:
        """Number of units in the cart."""
        return sum(line.quantity for line in self._lines)

    # ==================== INTERNAL ====================

    def _schedule_save(self) -> None:
        if self._cart is None:
            logger.debug("Cart not loaded yet; change kept in memory only")
            return
        # Always the loaded key; identity changes go through load()
        self._writer.submit(self._cart.identity_key, encode_cart(self._cart))

    async def _on_identity_change(self, user: Optional[dict]) -> None:
        await self.load()


# Singleton instance
_cart_store: Optional[CartStore] = None


def get_cart_store(identity: Optional[IdentityProvider] = None) -> CartStore:
    """Get CartStore singleton (identity is only used on first call)."""
    global _cart_store
    if _cart_store is None:
        _cart_store = CartStore(identity=identity)
    return _cart_store
