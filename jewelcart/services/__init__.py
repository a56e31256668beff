"""Shared service helpers."""
from .money import to_decimal, parse_price, round_money, to_float, multiply

__all__ = [
    "to_decimal",
    "parse_price",
    "round_money",
    "to_float",
    "multiply",
]
