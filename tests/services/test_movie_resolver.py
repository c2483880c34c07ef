from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from cinelog_backend.integrations.tmdb.client import (
    TmdbNetworkError,
    TmdbRateLimitedError,
    TmdbUnauthorizedError,
)
from cinelog_backend.models.movies import ByExternalId, ByLocalKey, MovieRef
from cinelog_backend.repositories import movies as movie_repo
from cinelog_backend.services.movie_resolver import (
    CatalogUnauthorizedError,
    CatalogUnavailableError,
    InvalidMovieIdentifierError,
    MovieNotFoundError,
    MovieResolver,
    validate_ref,
)


def _seed(store, tmdb_id: int, title: str, *, cached_at: str = "2025-01-01T00:00:00+00:00") -> dict:  # noqa: ANN001
    return store.insert_row(
        {
            "tmdb_id": tmdb_id,
            "title": title,
            "overview": "cached overview",
            "poster": "",
            "backdrop": "",
            "release_date": None,
            "genres": ["Drama"],
            "rating": 7.0,
            "cached_at": cached_at,
        }
    )


def test_first_lookup_fetches_and_caches(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.add(550, "Fight Club")
    resolver = MovieResolver(movie_store, catalog)

    resolved = resolver.resolve(ByExternalId(550))

    assert resolved.created is True
    assert resolved.movie.tmdb_id == 550
    assert resolved.movie.title == "Fight Club"
    assert resolved.movie.poster == "https://image.tmdb.org/t/p/w500/poster550.jpg"
    assert resolved.movie.genres == ("Drama",)
    assert len(movie_store.rows) == 1
    assert catalog.calls == [550]


def test_repeat_lookup_is_served_from_cache(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.add(550, "Fight Club")
    resolver = MovieResolver(movie_store, catalog)

    first = resolver.resolve(ByExternalId(550))
    second = resolver.resolve(ByExternalId(550))

    assert second.created is False
    assert second.movie.id == first.movie.id
    assert catalog.calls == [550]
    assert movie_store.count("insert") == 1


def test_detail_view_resolution_bumps_cached_at(movie_store, catalog, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    catalog.add(550, "Fight Club")
    stamps = iter(["2025-12-18T00:00:00+00:00", "2025-12-18T00:05:00+00:00"])
    monkeypatch.setattr(movie_repo, "_now_utc_iso", lambda: next(stamps))
    resolver = MovieResolver(movie_store, catalog)

    first = resolver.resolve(ByExternalId(550), refresh=True)
    second = resolver.resolve(ByExternalId(550), refresh=True)

    assert first.created is True
    assert first.movie.cached_at is not None
    assert second.refreshed is True
    assert second.movie.id == first.movie.id
    assert second.movie.cached_at > first.movie.cached_at
    assert len(movie_store.rows) == 1


def test_concurrent_first_lookups_produce_one_row(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.add(603, "The Matrix")
    # Both callers have missed the cache and fetched before either inserts.
    barrier = threading.Barrier(2, timeout=5)
    catalog.before_return = barrier.wait
    resolver = MovieResolver(movie_store, catalog)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _i: resolver.resolve(ByExternalId(603)), range(2)))

    assert len(movie_store.rows) == 1
    assert results[0].movie.id == results[1].movie.id
    assert sorted(r.created for r in results) == [False, True]
    assert movie_store.count("insert") == 2


def test_refresh_updates_fields_and_keeps_identity(movie_store, catalog, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    row = _seed(movie_store, 550, "Old Title")
    catalog.add(550, "Fight Club")
    stamps = iter(["2025-02-01T00:00:00+00:00", "2025-03-01T00:00:00+00:00"])
    monkeypatch.setattr(movie_repo, "_now_utc_iso", lambda: next(stamps))
    resolver = MovieResolver(movie_store, catalog)

    first = resolver.resolve(ByExternalId(550), refresh=True)
    second = resolver.resolve(ByExternalId(550), refresh=True)

    assert first.refreshed is True
    assert first.movie.title == "Fight Club"
    assert first.details is not None
    assert str(first.movie.id) == row["id"]
    assert second.movie.id == first.movie.id
    assert second.movie.cached_at >= first.movie.cached_at
    assert len(movie_store.rows) == 1


def test_failed_refresh_serves_cached_copy(movie_store, catalog) -> None:  # noqa: ANN001
    row = _seed(movie_store, 42, "Cached Only")
    catalog.error = TmdbNetworkError("TMDb request timed out (fetch_movie_details).")
    resolver = MovieResolver(movie_store, catalog)

    resolved = resolver.resolve(ByExternalId(42), refresh=True)

    assert resolved.refreshed is False
    assert resolved.details is None
    assert str(resolved.movie.id) == row["id"]
    assert resolved.movie.title == "Cached Only"
    assert movie_store.count("update") == 0


def test_true_miss_raises_not_found(movie_store, catalog) -> None:  # noqa: ANN001
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(MovieNotFoundError):
        resolver.resolve(ByExternalId(999999))
    assert movie_store.rows == {}


@pytest.mark.parametrize("tmdb_id", [-5, 0, True, "550", 2_147_483_648])
def test_invalid_tmdb_id_is_rejected_before_io(movie_store, catalog, tmdb_id) -> None:  # noqa: ANN001
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(InvalidMovieIdentifierError):
        resolver.resolve(ByExternalId(tmdb_id))
    assert catalog.calls == []
    assert movie_store.calls == []


def test_empty_ref_is_invalid() -> None:
    with pytest.raises(InvalidMovieIdentifierError):
        validate_ref(MovieRef())


def test_unsupported_lookup_is_invalid() -> None:
    with pytest.raises(InvalidMovieIdentifierError):
        validate_ref(550)  # type: ignore[arg-type]


def test_local_key_lookup(movie_store, catalog) -> None:  # noqa: ANN001
    row = _seed(movie_store, 13, "Forrest Gump")
    resolver = MovieResolver(movie_store, catalog)

    resolved = resolver.resolve(ByLocalKey(uuid.UUID(row["id"])))

    assert resolved.movie.tmdb_id == 13
    assert catalog.calls == []


def test_unknown_local_key_is_not_found_without_fetch(movie_store, catalog) -> None:  # noqa: ANN001
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(MovieNotFoundError):
        resolver.resolve(ByLocalKey(uuid.uuid4()))
    assert catalog.calls == []


def test_unknown_local_key_falls_back_to_tmdb_id(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.add(550, "Fight Club")
    resolver = MovieResolver(movie_store, catalog)

    resolved = resolver.resolve(MovieRef(local_key=uuid.uuid4(), tmdb_id=550))

    assert resolved.created is True
    assert resolved.movie.tmdb_id == 550


def test_assume_uncached_reuses_existing_row(movie_store, catalog) -> None:  # noqa: ANN001
    row = _seed(movie_store, 550, "Fight Club")
    catalog.add(550, "Fight Club")
    resolver = MovieResolver(movie_store, catalog)

    resolved = resolver.resolve(ByExternalId(550), assume_uncached=True)

    assert resolved.created is False
    assert str(resolved.movie.id) == row["id"]
    assert len(movie_store.rows) == 1


def test_rejected_credential_maps_to_unauthorized(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.error = TmdbUnauthorizedError("TMDB_API_KEY is not set.")
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(CatalogUnauthorizedError):
        resolver.resolve(ByExternalId(550))


def test_rate_limit_maps_to_unavailable_with_retry_after(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.error = TmdbRateLimitedError("TMDb rate limit exceeded.", retry_after=30.0, status_code=429)
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(CatalogUnavailableError) as excinfo:
        resolver.resolve(ByExternalId(550))
    assert excinfo.value.retry_after == 30.0


def test_network_failure_on_miss_is_unavailable(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.error = TmdbNetworkError("TMDb request failed.")
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(CatalogUnavailableError) as excinfo:
        resolver.resolve(ByExternalId(42))
    assert excinfo.value.retry_after is None
    assert movie_store.rows == {}


def test_resolve_many_skips_failures_and_dedupes(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.add(550, "Fight Club")
    catalog.add(603, "The Matrix")
    resolver = MovieResolver(movie_store, catalog)

    movies = resolver.resolve_many(
        [
            ByExternalId(550),
            ByExternalId(-1),
            ByExternalId(999999),
            ByExternalId(603),
            ByExternalId(550),
        ]
    )

    assert [m.tmdb_id for m in movies] == [550, 603]


def test_resolve_many_propagates_credential_errors(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.error = TmdbUnauthorizedError("TMDb rejected the configured credential.", status_code=401)
    resolver = MovieResolver(movie_store, catalog)

    with pytest.raises(CatalogUnauthorizedError):
        resolver.resolve_many([ByExternalId(550)])


def test_largest_integer_tmdb_id_is_accepted() -> None:
    assert validate_ref(ByExternalId(2_147_483_647)).tmdb_id == 2_147_483_647


def test_rejected_credential_on_refresh_serves_cache_and_logs_error(
    movie_store, catalog, caplog: pytest.LogCaptureFixture  # noqa: ANN001
) -> None:
    row = _seed(movie_store, 42, "Cached Only")
    catalog.error = TmdbUnauthorizedError("TMDb rejected the configured credential.", status_code=401)
    resolver = MovieResolver(movie_store, catalog)

    with caplog.at_level(logging.WARNING, logger="cinelog_backend.services.movie_resolver"):
        resolved = resolver.resolve(ByExternalId(42), refresh=True)

    assert str(resolved.movie.id) == row["id"]
    assert resolved.refreshed is False
    assert [r.levelno for r in caplog.records] == [logging.ERROR]
    assert "credential rejected" in caplog.records[0].getMessage()


def test_network_failure_on_refresh_logs_warning(movie_store, catalog, caplog: pytest.LogCaptureFixture) -> None:  # noqa: ANN001
    _seed(movie_store, 42, "Cached Only")
    catalog.error = TmdbNetworkError("TMDb request timed out (fetch_movie_details).")
    resolver = MovieResolver(movie_store, catalog)

    with caplog.at_level(logging.WARNING, logger="cinelog_backend.services.movie_resolver"):
        resolver.resolve(ByExternalId(42), refresh=True)

    assert [r.levelno for r in caplog.records] == [logging.WARNING]
