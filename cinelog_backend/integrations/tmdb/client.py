from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from cinelog_backend.models.movies import MovieUpsert

TMDB_API_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

_PLACEHOLDER_API_KEY = "your_tmdb_api_key_here"

VALID_TIME_WINDOWS = ("day", "week")
FILTER_ENDPOINTS = {
    "top_rated": "/movie/top_rated",
    "now_playing": "/movie/now_playing",
    "upcoming": "/movie/upcoming",
}


class TmdbClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, body_snippet: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_snippet = body_snippet


class TmdbUnauthorizedError(TmdbClientError):
    """Credential missing, invalid or expired. Not retryable without operator action."""


class TmdbNotFoundError(TmdbClientError):
    pass


class TmdbRateLimitedError(TmdbClientError):
    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TmdbNetworkError(TmdbClientError):
    """Connection failure or timeout; transient."""


def looks_like_jwt(value: str) -> bool:
    parts = value.split(".")
    return value.startswith("eyJ") and len(parts) == 3 and all(parts)


@dataclass(frozen=True)
class TmdbConfig:
    """
    TMDb connection settings, built once at process start and passed to `TmdbClient`.

    A v4 read access token (JWT) is sent as a bearer header; a v3 API key is sent
    as the `api_key` query parameter.
    """

    credential: str | None
    base_url: str = TMDB_API_BASE_URL
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> TmdbConfig:
        api_key = (os.getenv("TMDB_API_KEY") or "").strip()
        if api_key == _PLACEHOLDER_API_KEY:
            api_key = ""
        raw = api_key or (os.getenv("TMDB_BEARER") or "").strip()
        base_url = (os.getenv("TMDB_BASE_URL") or "").strip() or TMDB_API_BASE_URL
        timeout_raw = (os.getenv("TMDB_TIMEOUT_SECONDS") or "").strip()
        try:
            timeout_seconds = float(timeout_raw) if timeout_raw else 10.0
        except ValueError:
            timeout_seconds = 10.0
        return cls(credential=raw or None, base_url=base_url.rstrip("/"), timeout_seconds=timeout_seconds)

    @property
    def uses_bearer(self) -> bool:
        return bool(self.credential) and looks_like_jwt(self.credential or "")

    def auth_headers(self) -> dict[str, str]:
        if self.uses_bearer:
            return {"Authorization": f"Bearer {self.credential}"}
        return {}

    def auth_params(self) -> dict[str, str]:
        if self.credential and not self.uses_bearer:
            return {"api_key": self.credential}
        return {}


def _retry_after_seconds(resp: requests.Response) -> float | None:
    retry_after = (resp.headers.get("Retry-After") or "").strip()
    if retry_after.isdigit():
        return float(retry_after)
    return None


def classify_response(resp: requests.Response, *, operation: str) -> None:
    """
    Raise the typed error for a non-200 TMDb response.
    """

    status = resp.status_code
    if status == 200:
        return
    body_snippet = (resp.text or "")[:400]
    if status in (401, 403):
        raise TmdbUnauthorizedError(
            f"TMDb rejected the configured credential during {operation} (HTTP {status}). "
            "Check TMDB_API_KEY.",
            status_code=status,
            body_snippet=body_snippet,
        )
    if status == 404:
        raise TmdbNotFoundError(
            f"TMDb resource not found ({operation}).",
            status_code=status,
            body_snippet=body_snippet,
        )
    if status == 429:
        raise TmdbRateLimitedError(
            f"TMDb rate limit exceeded ({operation}).",
            retry_after=_retry_after_seconds(resp),
            status_code=status,
            body_snippet=body_snippet,
        )
    raise TmdbClientError(
        f"TMDb request failed with HTTP {status} ({operation}).",
        status_code=status,
        body_snippet=body_snippet,
    )


def _request_json(
    session: requests.Session,
    config: TmdbConfig,
    path: str,
    *,
    params: Mapping[str, Any] | None = None,
    operation: str,
) -> dict[str, Any]:
    if not config.credential:
        raise TmdbUnauthorizedError("TMDB_API_KEY is not set.")

    headers = {"accept": "application/json", **config.auth_headers()}
    query: dict[str, Any] = {**(params or {}), **config.auth_params()}
    url = f"{config.base_url}{path}"

    # No retries here; callers decide between cache fallback and propagation.
    try:
        resp = session.get(url, params=query, headers=headers, timeout=config.timeout_seconds)
    except requests.Timeout as exc:
        raise TmdbNetworkError(f"TMDb request timed out ({operation}).") from exc
    except requests.RequestException as exc:
        raise TmdbNetworkError(f"TMDb request failed ({operation}): {exc}") from exc

    classify_response(resp, operation=operation)

    try:
        payload = resp.json()
    except ValueError as exc:
        raise TmdbClientError(
            "TMDb returned non-JSON response.",
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
        ) from exc

    if not isinstance(payload, dict):
        raise TmdbClientError("TMDb returned unexpected JSON shape (not an object).")
    return payload


class TmdbClient:
    """
    Thin TMDb movie client. Every method performs exactly one GET.
    """

    def __init__(self, config: TmdbConfig, *, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _get(self, path: str, *, operation: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return _request_json(self.session, self.config, path, params=params, operation=operation)

    def fetch_movie_details(self, tmdb_id: int, *, append_credits: bool = True) -> dict[str, Any]:
        params = {"append_to_response": "credits"} if append_credits else None
        return self._get(f"/movie/{int(tmdb_id)}", params=params, operation="fetch_movie_details")

    def search_movies(self, query: str, *, page: int = 1) -> dict[str, Any]:
        if not query or not query.strip():
            raise ValueError("Search query cannot be empty.")
        return self._get(
            "/search/movie",
            params={"query": query.strip(), "page": page, "include_adult": "false"},
            operation="search_movies",
        )

    def fetch_trending(self, time_window: str = "day", *, page: int = 1) -> dict[str, Any]:
        if time_window not in VALID_TIME_WINDOWS:
            raise ValueError('Time window must be "day" or "week".')
        return self._get(f"/trending/movie/{time_window}", params={"page": page}, operation="fetch_trending")

    def fetch_popular(self, *, page: int = 1) -> dict[str, Any]:
        return self._get("/movie/popular", params={"page": page}, operation="fetch_popular")

    def discover_by_genre(self, genre_id: int, *, page: int = 1) -> dict[str, Any]:
        return self._get(
            "/discover/movie",
            params={"with_genres": int(genre_id), "page": page, "sort_by": "popularity.desc"},
            operation="discover_by_genre",
        )

    def discover_by_year(self, year: int, *, page: int = 1) -> dict[str, Any]:
        return self._get(
            "/discover/movie",
            params={"primary_release_year": int(year), "page": page, "sort_by": "popularity.desc"},
            operation="discover_by_year",
        )

    def discover_by_provider(self, provider_id: int, *, page: int = 1, region: str = "US") -> dict[str, Any]:
        return self._get(
            "/discover/movie",
            params={
                "with_watch_providers": int(provider_id),
                "watch_region": region,
                "page": page,
                "sort_by": "popularity.desc",
            },
            operation="discover_by_provider",
        )

    def fetch_by_filter(self, filter_type: str, *, page: int = 1) -> dict[str, Any]:
        endpoint = FILTER_ENDPOINTS.get(filter_type)
        if endpoint is None:
            raise ValueError(f"Invalid filter type: {filter_type}")
        return self._get(endpoint, params={"page": page}, operation="fetch_by_filter")

    def fetch_genres(self) -> list[dict[str, Any]]:
        payload = self._get("/genre/movie/list", operation="fetch_genres")
        genres = payload.get("genres")
        return [g for g in genres if isinstance(g, dict)] if isinstance(genres, list) else []

    def fetch_watch_providers(self, *, region: str = "US") -> list[dict[str, Any]]:
        """
        Streaming (flatrate) providers for `region`.
        """

        payload = self._get("/watch/providers/movie", params={"watch_region": region}, operation="fetch_watch_providers")
        results = payload.get("results")
        # Depending on the endpoint version TMDb returns either a flat list or a region map.
        if isinstance(results, list):
            return [p for p in results if isinstance(p, dict)]
        if isinstance(results, Mapping):
            region_data = results.get(region)
            if isinstance(region_data, Mapping) and isinstance(region_data.get("flatrate"), list):
                return [p for p in region_data["flatrate"] if isinstance(p, dict)]
        return []


def image_url(path: object, size: str) -> str:
    if isinstance(path, str) and path.strip():
        return f"{TMDB_IMAGE_BASE_URL}/{size}{path.strip()}"
    return ""


def transform_movie_data(payload: Mapping[str, Any]) -> MovieUpsert:
    """
    Map a TMDb movie object (details or list item) onto the cached fields.
    """

    tmdb_id = payload.get("id")
    if not isinstance(tmdb_id, int) or isinstance(tmdb_id, bool):
        raise TmdbClientError("TMDb movie payload is missing an integer id.")

    genres_raw = payload.get("genres")
    genres = (
        [g["name"] for g in genres_raw if isinstance(g, Mapping) and isinstance(g.get("name"), str)]
        if isinstance(genres_raw, list)
        else []
    )
    rating = payload.get("vote_average")
    release_date = payload.get("release_date")

    return MovieUpsert(
        tmdb_id=tmdb_id,
        title=str(payload.get("title") or payload.get("original_title") or ""),
        overview=str(payload.get("overview") or ""),
        poster=image_url(payload.get("poster_path"), "w500"),
        backdrop=image_url(payload.get("backdrop_path"), "w1280"),
        release_date=release_date if isinstance(release_date, str) and release_date else None,
        genres=genres,
        rating=float(rating) if isinstance(rating, (int, float)) else 0.0,
    )


def extract_credits(payload: Mapping[str, Any], *, max_actors: int = 10) -> dict[str, Any]:
    """
    Director and top-billed actors from an `append_to_response=credits` payload.
    """

    credits = payload.get("credits")
    credits = credits if isinstance(credits, Mapping) else {}
    crew = credits.get("crew") if isinstance(credits.get("crew"), list) else []
    cast = credits.get("cast") if isinstance(credits.get("cast"), list) else []

    director = next((p for p in crew if isinstance(p, Mapping) and p.get("job") == "Director"), None)
    actors = [p for p in cast if isinstance(p, Mapping)][:max_actors]

    return {
        "director": (
            {
                "name": director.get("name"),
                "profile_path": image_url(director.get("profile_path"), "w200") or None,
            }
            if director
            else None
        ),
        "actors": [
            {
                "name": actor.get("name"),
                "character": actor.get("character"),
                "profile_path": image_url(actor.get("profile_path"), "w200") or None,
            }
            for actor in actors
        ],
    }
