"""
Relational database drivers.
"""

from .driver import DatabaseDriver
from .postgres import PostgresDatabase

__all__ = ["DatabaseDriver", "PostgresDatabase"]
