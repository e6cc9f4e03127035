"""
Repository layer: database and cache connectors and the aggregate that owns them.
"""

from .cache import CacheCommand, CacheHook, HookChain, RedisCache
from .database import DatabaseDriver, PostgresDatabase
from .repository import Repository

__all__ = [
    "CacheCommand",
    "CacheHook",
    "HookChain",
    "RedisCache",
    "DatabaseDriver",
    "PostgresDatabase",
    "Repository",
]
