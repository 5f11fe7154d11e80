"""
Database package for the broker.
"""

from .base import Base
from .connection import AsyncSessionLocal, engine, make_engine, make_session_factory

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "engine",
    "make_engine",
    "make_session_factory",
]
