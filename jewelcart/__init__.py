"""
jewelcart - client state for the jewelry shop app

This package contains:
- cart: per-identity shopping cart mirrored to durable storage
- auth: token storage and the observable identity provider
- checkout: order payload building and the order API client
- db: durable key-value stores (Upstash Redis, in-memory)
- services: money helpers
"""

__version__ = "0.1.0"
