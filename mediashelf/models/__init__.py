"""Database models for mediashelf."""

from .movie import Movie
from .show import Show, Season
from .episode import Episode
from .video_file import VideoFile, UnscannedFile
from .settings import ScanSource, AppSettings
from .rating import ImdbRating

__all__ = [
    "Movie", "Show", "Season", "Episode", "VideoFile", "UnscannedFile",
    "ScanSource", "AppSettings", "ImdbRating",
]
