"""
API v1 routes package.
SimLink device-facing routes.
"""

from .relay_routes import router as relay_router

__all__ = [
    "relay_router"
]
