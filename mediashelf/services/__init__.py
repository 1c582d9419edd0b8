"""Services for mediashelf."""

from .tmdb import TMDBService
from .storage import LibraryStore
from .ratings import RatingsStore
from .orchestrator import ScanOrchestrator

__all__ = ["TMDBService", "LibraryStore", "RatingsStore", "ScanOrchestrator"]
