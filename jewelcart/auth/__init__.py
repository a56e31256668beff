"""Authentication package."""
from .tokens import TokenStore
from .identity import IdentityProvider, IdentityListener, extract_user_id

__all__ = [
    "TokenStore",
    "IdentityProvider",
    "IdentityListener",
    "extract_user_id",
]
