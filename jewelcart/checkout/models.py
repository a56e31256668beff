"""
Checkout Pydantic Models

Order payload as the remote order API expects it (camelCase on the wire).
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ShippingInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    phone_no: str = Field(min_length=1, alias="phoneNo")
    postal_code: str = Field(min_length=1, alias="postalCode")
    country: str = Field(min_length=1)

    @field_validator("address", "city", "phone_no", "postal_code", "country")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class OrderItem(BaseModel):
    product: str
    name: Optional[str] = None
    quantity: int = Field(ge=1)
    image: Optional[str] = None
    price: float = Field(ge=0)


class OrderPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    order_items: List[OrderItem] = Field(alias="orderItems", min_length=1)
    shipping_info: ShippingInfo = Field(alias="shippingInfo")
    items_price: float = Field(alias="itemsPrice")
    tax_price: float = Field(alias="taxPrice")
    shipping_price: float = Field(alias="shippingPrice")
    total_price: float = Field(alias="totalPrice")
    mode_of_payment: str = Field(default="COD", alias="modeOfPayment")

    def to_request(self) -> dict:
        """JSON body for POST /orders."""
        return self.model_dump(by_alias=True, mode="json")
