"""Cart models with Decimal-based pricing."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from jewelcart.errors import ERROR_INVALID_CART_ITEM
from jewelcart.services.money import to_decimal, parse_price, multiply

# Keys of a product projection that the cart interprets; the rest is display data
_ID_KEYS = ("item_id", "_id", "id")
_PRICE_KEYS = ("unit_price", "price")
_RESERVED_KEYS = frozenset(_ID_KEYS + _PRICE_KEYS + ("quantity",))


def resolve_item_id(data: Mapping[str, Any]) -> Optional[str]:
    """Explicit item_id, then the remote _id, then the local id."""
    for key in _ID_KEYS:
        value = data.get(key)
        if value is not None and str(value) != "":
            return str(value)
    return None


def _resolve_price(data: Mapping[str, Any]) -> Any:
    for key in _PRICE_KEYS:
        if key in data:
            return data[key]
    return None


@dataclass
class CartLine:
    """Single product line in the cart."""
    item_id: str
    unit_price: Decimal
    quantity: int = 1
    display: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.item_id = str(self.item_id)
        self.unit_price = to_decimal(self.unit_price)

    @property
    def total_price(self) -> Decimal:
        """Price for all units of this line."""
        return multiply(self.unit_price, self.quantity)

    def copy(self) -> "CartLine":
        return CartLine(
            item_id=self.item_id,
            unit_price=self.unit_price,
            quantity=self.quantity,
            display=dict(self.display),
        )

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "CartLine":
        """
        Build a quantity-1 line from a product projection.

        The id comes from item_id / _id / id, the price from unit_price / price.
        Every other key (name, image, variant, ...) is kept as display data.

        Raises:
            ValueError: if the item has no id or an invalid/negative price
        """
        item_id = resolve_item_id(item)
        if item_id is None:
            raise ValueError(ERROR_INVALID_CART_ITEM)
        unit_price = parse_price(_resolve_price(item))
        display = {k: v for k, v in item.items() if k not in _RESERVED_KEYS}
        return cls(item_id=item_id, unit_price=unit_price, quantity=1, display=display)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "item_id": self.item_id,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "display": dict(self.display),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        """
        Create from a stored dictionary.

        Also reads the flat shape older builds stored ({...product, "id", "price", "quantity"}).
        """
        item_id = resolve_item_id(data)
        if item_id is None:
            raise KeyError("item_id")
        if "display" in data:
            display = dict(data["display"] or {})
        else:
            display = {k: v for k, v in data.items() if k not in _RESERVED_KEYS}
        return cls(
            item_id=item_id,
            unit_price=parse_price(_resolve_price(data)),
            quantity=int(data["quantity"]),
            display=display,
        )


@dataclass
class Cart:
    """Ordered cart lines scoped to one identity key."""
    identity_key: str
    lines: List[CartLine] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_items(self) -> int:
        """Total number of units in cart."""
        return sum(line.quantity for line in self.lines)

    @property
    def total_price(self) -> Decimal:
        """Sum of unit_price * quantity over all lines."""
        return sum((line.total_price for line in self.lines), Decimal("0"))

    def find(self, item_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.item_id == item_id), None)

    def to_list(self) -> list:
        """Convert to the list stored under the identity key."""
        return [line.to_dict() for line in self.lines]

    @classmethod
    def from_list(cls, identity_key: str, data: list) -> "Cart":
        """
        Create from a stored list.

        Lines with quantity below 1 are dropped; repeated ids are merged into
        the first line with that id.

        Raises:
            TypeError, KeyError, ValueError: on a malformed payload
        """
        if not isinstance(data, list):
            raise TypeError(f"Cart payload must be a list, got {type(data).__name__}")

        cart = cls(identity_key=identity_key)
        for raw in data:
            if not isinstance(raw, dict):
                raise TypeError(f"Cart line must be an object, got {type(raw).__name__}")
            line = CartLine.from_dict(raw)
            if line.quantity < 1:
                continue
            existing = cart.find(line.item_id)
            if existing:
                existing.quantity += line.quantity
            else:
                cart.lines.append(line)
        return cart
