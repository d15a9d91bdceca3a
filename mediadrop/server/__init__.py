"""HTTP upload API (photo, video session, proxy and server-side video routes)."""

from .app import ApiError, create_server, make_handler, run_server

__all__ = ["ApiError", "create_server", "make_handler", "run_server"]
