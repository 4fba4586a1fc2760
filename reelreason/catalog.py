# ------------------------------------------------------------
# catalog.py - 외부 영화 메타데이터 제공자 인터페이스와 구현체
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Protocol

import httpx

from .config import TMDB_API_KEY, TMDB_BASE_URL, TMDB_IMAGE_BASE_URL, REQUEST_TIMEOUT_SECONDS
from .schemas import Movie

logger = logging.getLogger(__name__)


class MovieCatalog(Protocol):
    async def popular_movies(self) -> List[Movie]:
        ...

    async def movie(self, movie_id: str) -> Optional[Movie]:
        ...

    async def similar(self, movie_id: str) -> List[Movie]:
        ...

    async def search(self, query: str) -> List[Movie]:
        ...


class InMemoryCatalog:
    """고정된 영화 목록을 제공하는 카탈로그 (로컬 개발/테스트용)."""

    def __init__(self, movies: Iterable[Movie], similar: Optional[Dict[str, List[str]]] = None):
        self._movies: Dict[str, Movie] = {m.id: m for m in movies}
        self._similar = similar or {}

    async def popular_movies(self) -> List[Movie]:
        return sorted(self._movies.values(), key=lambda m: m.popularity or 0.0, reverse=True)

    async def movie(self, movie_id: str) -> Optional[Movie]:
        return self._movies.get(movie_id)

    async def similar(self, movie_id: str) -> List[Movie]:
        return [self._movies[mid] for mid in self._similar.get(movie_id, []) if mid in self._movies]

    async def search(self, query: str) -> List[Movie]:
        q = query.strip().lower()
        if not q:
            return []
        return [m for m in self._movies.values() if q in m.title.lower()]


# TMDB 장르 ID -> 이름
GENRE_MAP = {
    28: "Action", 12: "Adventure", 16: "Animation", 35: "Comedy", 80: "Crime",
    99: "Documentary", 18: "Drama", 10751: "Family", 14: "Fantasy", 36: "History",
    27: "Horror", 10402: "Music", 9648: "Mystery", 10749: "Romance", 878: "Sci-Fi",
    10770: "TV Movie", 53: "Thriller", 10752: "War", 37: "Western",
}


def _to_movie(raw: dict) -> Movie:
    is_tv = raw.get("media_type") == "tv" or not raw.get("title")
    date = raw.get("first_air_date") if is_tv else raw.get("release_date")
    if raw.get("genres"):
        genres = [g["name"] if isinstance(g, dict) else g for g in raw["genres"]]
        genres = ["Sci-Fi" if g == "Science Fiction" else g for g in genres]
    else:
        genres = [GENRE_MAP[g] for g in raw.get("genre_ids", []) if g in GENRE_MAP]
    return Movie(
        id=f"tmdb-{'tv' if is_tv else 'movie'}-{raw['id']}",
        title=raw.get("name") if is_tv else raw.get("title"),
        year=int(date[:4]) if date else None,
        genres=genres,
        overview=raw.get("overview"),
        poster_url=f"{TMDB_IMAGE_BASE_URL}{raw['poster_path']}" if raw.get("poster_path") else None,
        popularity=raw.get("popularity") or 0.0,
    )


def _split_id(movie_id: str):
    # "tmdb-movie-603" -> ("movie", "603")
    parts = movie_id.split("-")
    if len(parts) != 3 or parts[0] != "tmdb":
        return None
    return parts[1], parts[2]


class TmdbCatalog:
    """
    TMDB REST API 기반 카탈로그.
    - 실패 시 목록 조회는 빈 리스트, 단건 조회는 None 으로 대체
    """

    def __init__(self, api_key: str = TMDB_API_KEY, base_url: str = TMDB_BASE_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None, pages: int = 5):
        self.api_key = api_key
        self.pages = pages
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=REQUEST_TIMEOUT_SECONDS)

    async def _get(self, endpoint: str, **params) -> dict:
        response = await self._http.get(endpoint, params={"api_key": self.api_key, **params})
        response.raise_for_status()
        return response.json()

    async def popular_movies(self) -> List[Movie]:
        try:
            pages = await asyncio.gather(
                *(self._get("/movie/popular", page=p) for p in range(1, self.pages + 1))
            )
        except httpx.HTTPError as exc:
            logger.warning("failed to fetch movie pool: %s", exc)
            return []
        seen: Dict[str, Movie] = {}
        for page in pages:
            for raw in page.get("results", []):
                movie = _to_movie(raw)
                seen.setdefault(movie.id, movie)
        return list(seen.values())

    async def movie(self, movie_id: str) -> Optional[Movie]:
        parsed = _split_id(movie_id)
        if parsed is None:
            return None
        media, tmdb_id = parsed
        try:
            raw = await self._get(f"/{media}/{tmdb_id}")
        except httpx.HTTPError as exc:
            logger.warning("failed to fetch %s: %s", movie_id, exc)
            return None
        raw.setdefault("media_type", media)
        return _to_movie(raw)

    async def similar(self, movie_id: str) -> List[Movie]:
        parsed = _split_id(movie_id)
        if parsed is None:
            return []
        media, tmdb_id = parsed
        try:
            data = await self._get(f"/{media}/{tmdb_id}/similar")
        except httpx.HTTPError as exc:
            logger.warning("failed to fetch similar for %s: %s", movie_id, exc)
            return []
        return [_to_movie({**raw, "media_type": media}) for raw in data.get("results", [])]

    async def search(self, query: str) -> List[Movie]:
        if not query.strip():
            return []
        try:
            data = await self._get("/search/multi", query=query)
        except httpx.HTTPError as exc:
            logger.warning("search failed for %r: %s", query, exc)
            return []
        return [_to_movie(raw) for raw in data.get("results", []) if raw.get("media_type") in ("movie", "tv")]

    async def aclose(self) -> None:
        await self._http.aclose()
