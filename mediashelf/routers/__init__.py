"""API routers for mediashelf."""

from .scan import router as scan_router
from .library import router as library_router
from .settings import router as settings_router

__all__ = ["scan_router", "library_router", "settings_router"]
