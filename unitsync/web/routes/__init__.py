"""unitsync Web Route Modules.

This package contains modular route definitions for the unitsync API.
Each module handles a specific functional area using FastAPI's APIRouter.

Architecture:
- Each route module exports a `router` object (APIRouter instance)
- Main app includes these routers in app.py
- Shared dependencies provided by unitsync.web.dependencies
- Shared request models defined in unitsync.web.models

Usage:
    from unitsync.web.routes import imports
    app.include_router(imports.router)
"""

from unitsync.web.routes import (
    auth,
    health,
    imports,
    mappings,
    versions,
)

__all__ = [
    "auth",
    "health",
    "imports",
    "mappings",
    "versions",
]
