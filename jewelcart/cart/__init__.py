"""Cart package: models, storage, and store facade."""
from .models import CartLine, Cart
from .persistence import SnapshotWriter
from .service import CartStore, get_cart_store

__all__ = [
    "CartLine",
    "Cart",
    "SnapshotWriter",
    "CartStore",
    "get_cart_store",
]
