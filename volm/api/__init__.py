"""REST API layer for volm.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by volm.app bootstrap).
"""

from volm.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
