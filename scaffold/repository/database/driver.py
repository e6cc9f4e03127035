"""
Database driver contract.

Every relational backend the repository can own implements this protocol.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class DatabaseDriver(Protocol):
    """Lifecycle operations every database driver exposes."""

    async def close(self) -> None:
        """Release the connection pool. Must be safe to call twice."""
        ...

    def is_initialized(self) -> bool:
        """True when the pool handle exists. Does not probe liveness."""
        ...

    async def ping(self) -> bool:
        """Round-trip liveness check used by the status route."""
        ...
