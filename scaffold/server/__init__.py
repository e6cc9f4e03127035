"""
HTTP server: composition root, lifecycle, handlers and routes.
"""

from .server import Server, ServerState

__all__ = ["Server", "ServerState"]
