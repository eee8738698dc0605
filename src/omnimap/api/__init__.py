"""
REST API layer for omnimap.

Provides a FastAPI application factory with typed endpoints that delegate
to the operations layer (``omnimap.ops``). This package handles only HTTP
transport concerns: serialisation, API-key gating, tenant headers, error
mapping and request context.

Quick start::

    from omnimap.api import create_app

    app = create_app()  # ready for uvicorn
"""

from omnimap.api.app import create_app

__all__ = ["create_app"]
