import asyncio
import logging
from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from .guardrails import TTLCache
from .schemas import TMDBMovie

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
MAX_QUERY_LENGTH = 500


class TMDBError(Exception):
    pass


class TMDBQueryError(TMDBError):
    pass


class TMDBNotFoundError(TMDBError):
    pass


class TMDBUnavailableError(TMDBError):
    pass


class TMDBNotConfiguredError(TMDBUnavailableError):
    pass


class TMDBClient:
    """
    Thin async client for the TMDB v3 API.

    Parsed responses are memoized in a TTLCache: search results for a short
    time, movie details for much longer since they rarely change.
    """
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = TMDB_BASE_URL,
        image_base_url: str = TMDB_IMAGE_BASE_URL,
        language: str = "de-DE",
        cache: Optional[TTLCache] = None,
        search_ttl_seconds: float = 60,
        details_ttl_seconds: float = 3600,
        timeout: float = 10.0,
        retry_delays: Sequence[float] = (0.5, 1.0, 2.0),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_base_url = image_base_url
        self.language = language
        self.cache = cache if cache is not None else TTLCache(default_ttl=details_ttl_seconds)
        self.search_ttl_seconds = search_ttl_seconds
        self.details_ttl_seconds = details_ttl_seconds
        self.timeout = timeout
        self.retry_delays = list(retry_delays)
        self._transport = transport

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        if not self.api_key:
            raise TMDBNotConfiguredError("TMDB_API_KEY is not set.")

        query = {"api_key": self.api_key}
        query.update(params or {})
        headers = {"accept": "application/json"}

        # Retry on 5xx only; 4xx answers are final
        async with httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=self._transport) as client:
            for delay in [0.0] + self.retry_delays:
                if delay:
                    await asyncio.sleep(delay)

                try:
                    r = await client.get(f"{self.base_url}{path}", params=query)
                except httpx.TimeoutException as e:
                    raise TMDBUnavailableError(f"Timeout while contacting TMDB: {e}") from e
                except httpx.TransportError as e:
                    raise TMDBUnavailableError(f"Could not reach TMDB: {e}") from e

                if 500 <= r.status_code < 600:
                    logger.warning("TMDB %s answered %d, retrying", path, r.status_code)
                    continue
                if r.status_code == 404:
                    raise TMDBNotFoundError("Movie not found on TMDB.")
                if r.status_code != 200:
                    raise TMDBError(f"TMDB API error: {r.status_code}")

                try:
                    return r.json()
                except ValueError as e:
                    raise TMDBError(f"Invalid JSON from TMDB: {e}") from e

        raise TMDBUnavailableError("TMDB temporarily unavailable.")

    def _parse_movie(self, item: Any) -> TMDBMovie:
        try:
            movie = TMDBMovie.model_validate(item)
        except ValidationError as e:
            raise TMDBError(f"Unexpected movie payload from TMDB: {e}") from e
        movie.poster_url = self.image_url(movie.poster_path or "") or None
        return movie

    async def search_movies(self, query: str) -> list[TMDBMovie]:
        if not query:
            return []
        if len(query) > MAX_QUERY_LENGTH:
            raise TMDBQueryError("Search query is too long.")

        cache_key = f"search:{self.language}:{query}"
        cached, found = self.cache.get(cache_key)
        if found:
            return cached

        data = await self._get(
            "/search/movie",
            {"query": query, "language": self.language, "include_adult": "false"},
        )
        if not isinstance(data, dict):
            raise TMDBError("Unexpected search payload from TMDB.")
        movies = [self._parse_movie(item) for item in data.get("results") or []]
        self.cache.set(cache_key, movies, self.search_ttl_seconds)
        return movies

    async def get_movie_details(self, movie_id: int) -> TMDBMovie:
        if movie_id <= 0:
            raise TMDBQueryError("Invalid movie id.")

        cache_key = f"movie:{movie_id}"
        cached, found = self.cache.get(cache_key)
        if found:
            return cached

        data = await self._get(
            f"/movie/{movie_id}",
            {"language": self.language, "append_to_response": "credits"},
        )
        movie = self._parse_movie(data)
        self.cache.set(cache_key, movie, self.details_ttl_seconds)
        return movie

    async def test_connection(self) -> None:
        data = await self._get("/configuration")
        if not isinstance(data, dict):
            raise TMDBError("Invalid JSON response from TMDB.")

    def image_url(self, path: str) -> str:
        if not path:
            return ""
        if path.startswith("http"):
            return path
        return self.image_base_url + path
