"""Configuration management for mediashelf."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment or config file."""

    # TMDB API
    tmdb_api_key: str = ""
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_language: str = "en-US"

    # Catalog throttling (shared by every scan task)
    tmdb_max_concurrent_requests: int = 4
    tmdb_min_request_interval: float = 0.3

    # Directory walking
    max_concurrent_listings: int = 8
    webdav_retry_attempts: int = 3
    webdav_retry_delay: float = 2.0

    # Ratings dataset
    imdb_ratings_url: str = "https://datasets.imdbws.com/title.ratings.tsv.gz"

    # Server
    host: str = "0.0.0.0"
    port: int = 8096
    debug: bool = False

    class Config:
        env_prefix = "MEDIASHELF_"
        env_file = ".env"


class SourceConfig(BaseModel):
    """Connection details for a source backend."""

    url: Optional[str] = None       # WebDAV
    path: Optional[str] = None      # Local
    share: Optional[str] = None     # SMB, e.g. //nas/media
    username: Optional[str] = None
    password: Optional[str] = None
    domain: Optional[str] = None    # SMB


class DataSource(BaseModel):
    """A configured backend with one or more root paths to scan."""

    id: str
    type: Literal["local", "webdav", "smb"]
    name: str
    config: SourceConfig = Field(default_factory=SourceConfig)
    paths: list[str] = []


# Global settings instance
settings = Settings()


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_dir = get_project_root() / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def get_database_path() -> Path:
    """Get the SQLite database path."""
    return get_data_dir() / "mediashelf.db"
