"""
Common Error Constants

Centralized error messages for cart input and checkout.
"""

# User errors
ERROR_USER_NOT_FOUND = "User not found. Please log in again."

# Cart errors
ERROR_CART_EMPTY = "Your cart is empty."
ERROR_INVALID_CART_ITEM = "Cart item must have an id"

# Checkout errors
ERROR_SHIPPING_INCOMPLETE = "Please fill in all fields."
ERROR_ORDER_IN_PROGRESS = "Order is already being placed"
ERROR_ORDER_FAILED = "Failed to place order"
ERROR_ORDER_API_UNAVAILABLE = "Order service unavailable. Please try again."
