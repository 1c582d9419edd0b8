"""TMDB API client service."""

import logging
from typing import Optional

import httpx

from ..config import settings
from .entities import (
    CatalogCandidate,
    EpisodeDetails,
    Movie,
    Person,
    SeasonDetails,
    Show,
    placeholder_episode_name,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

CAST_LIMIT = 10


class CatalogNotConfiguredError(ValueError):
    """Raised when the catalog is used without an API key."""


def _year_of(date: Optional[str]) -> Optional[int]:
    if date and len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None


def _english_logo(details: dict) -> Optional[str]:
    logos = (details.get("images") or {}).get("logos") or []
    for logo in logos:
        if logo.get("iso_639_1") == "en":
            return logo.get("file_path")
    return None


def _person(credit: dict) -> Person:
    return Person(
        name=credit["name"],
        profile_path=credit.get("profile_path"),
        character=credit.get("character"),
    )


def _cast(details: dict) -> list[Person]:
    cast = (details.get("credits") or {}).get("cast") or []
    return [_person(c) for c in cast[:CAST_LIMIT] if c.get("name")]


def _director(details: dict) -> Optional[Person]:
    for member in (details.get("credits") or {}).get("crew") or []:
        if member.get("job") == "Director" and member.get("name"):
            return Person(name=member["name"], profile_path=member.get("profile_path"))
    return None


class TMDBService:
    """Service for interacting with The Movie Database API.

    Every request goes through one shared ``RateLimiter`` so the whole scan
    stays under the catalog's rate limit regardless of how many tasks call in.
    """

    IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

    def __init__(
        self,
        api_key: str = "",
        limiter: Optional[RateLimiter] = None,
        base_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or settings.tmdb_api_key
        self.base_url = base_url or settings.tmdb_base_url
        self.limiter = limiter or RateLimiter(
            max_concurrent=settings.tmdb_max_concurrent_requests,
            min_interval=settings.tmdb_min_request_interval,
        )
        self._client: Optional[httpx.AsyncClient] = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, endpoint: str, params: dict = None) -> dict:
        """Make a throttled GET request to the TMDB API."""
        if not self.api_key:
            raise CatalogNotConfiguredError("TMDB API key not configured")

        client = await self._get_client()
        params = dict(params or {})
        params["api_key"] = self.api_key
        params.setdefault("language", settings.tmdb_language)

        async with self.limiter.slot():
            response = await client.get(f"{self.base_url}{endpoint}", params=params)

        response.raise_for_status()
        return response.json()

    async def search_movie(self, title: str, year: Optional[int] = None) -> list[CatalogCandidate]:
        """Search for movies by title, optionally filtered by release year."""
        params = {"query": title}
        if year:
            params["year"] = year
        data = await self._request("/search/movie", params)
        return [
            CatalogCandidate(
                id=item["id"],
                title=item.get("title") or "",
                year=_year_of(item.get("release_date")),
            )
            for item in data.get("results", [])
            if item.get("id") is not None
        ]

    async def search_show(self, title: str, year: Optional[int] = None) -> list[CatalogCandidate]:
        """Search for TV shows by name, optionally filtered by first air date year."""
        params = {"query": title}
        if year:
            params["first_air_date_year"] = year
        data = await self._request("/search/tv", params)
        return [
            CatalogCandidate(
                id=item["id"],
                title=item.get("name") or "",
                year=_year_of(item.get("first_air_date")),
            )
            for item in data.get("results", [])
            if item.get("id") is not None
        ]

    async def get_movie_details(self, movie_id: int) -> Movie:
        """Get detailed information about a movie."""
        details = await self._request(
            f"/movie/{movie_id}",
            {"append_to_response": "credits,external_ids,images", "include_image_language": "en,null"},
        )
        external_ids = details.get("external_ids") or {}
        return Movie(
            id=details["id"],
            title=details.get("title") or "",
            overview=details.get("overview") or "",
            poster_path=details.get("poster_path"),
            backdrop_path=details.get("backdrop_path"),
            logo_path=_english_logo(details),
            release_date=details.get("release_date"),
            runtime=details.get("runtime"),
            vote_average=details.get("vote_average"),
            popularity=details.get("popularity"),
            status=details.get("status"),
            tagline=details.get("tagline"),
            genres=[g["name"] for g in details.get("genres", []) if g.get("name")],
            imdb_id=external_ids.get("imdb_id") or details.get("imdb_id"),
            cast=_cast(details),
            director=_director(details),
        )

    async def get_show_details(self, show_id: int) -> Show:
        """Get detailed information about a TV show."""
        details = await self._request(
            f"/tv/{show_id}",
            {"append_to_response": "credits,external_ids,images", "include_image_language": "en,null"},
        )
        external_ids = details.get("external_ids") or {}
        return Show(
            id=details["id"],
            name=details.get("name") or "",
            overview=details.get("overview") or "",
            poster_path=details.get("poster_path"),
            backdrop_path=details.get("backdrop_path"),
            logo_path=_english_logo(details),
            first_air_date=details.get("first_air_date"),
            vote_average=details.get("vote_average"),
            popularity=details.get("popularity"),
            status=details.get("status"),
            genres=[g["name"] for g in details.get("genres", []) if g.get("name")],
            cast=_cast(details),
            created_by=[_person(p) for p in details.get("created_by") or [] if p.get("name")],
            imdb_id=external_ids.get("imdb_id"),
            tvdb_id=external_ids.get("tvdb_id"),
        )

    async def get_season_details(self, show_id: int, season_number: int) -> SeasonDetails:
        """Get details for a specific season, including its episode list."""
        data = await self._request(f"/tv/{show_id}/season/{season_number}")
        episodes = {}
        for ep in data.get("episodes", []):
            number = ep.get("episode_number")
            if number is None:
                continue
            episodes[number] = EpisodeDetails(
                id=ep.get("id") or 0,
                episode_number=number,
                name=ep.get("name") or placeholder_episode_name(number),
                overview=ep.get("overview") or "",
                still_path=ep.get("still_path"),
            )
        return SeasonDetails(
            season_number=season_number,
            name=data.get("name") or f"Season {season_number}",
            poster_path=data.get("poster_path"),
            episodes=episodes,
        )

    def get_image_url(self, path: str, size: str = "w500") -> str:
        """Get full URL for an image path."""
        if not path:
            return ""
        return f"{self.IMAGE_BASE_URL}/{size}{path}"
