from __future__ import annotations

import pytest

import scripts.warm_movie_cache as mod
from cinelog_backend.integrations.tmdb.client import TmdbUnauthorizedError


def _seed(store, tmdb_id: int) -> dict:  # noqa: ANN001
    return store.insert_row({"tmdb_id": tmdb_id, "title": f"Movie {tmdb_id}", "cached_at": "2025-01-01T00:00:00+00:00"})


def test_dry_run_lists_missing_ids_only(movie_store, catalog, capsys: pytest.CaptureFixture[str]) -> None:  # noqa: ANN001
    _seed(movie_store, 550)

    code = mod.run(movie_store, catalog, mod._parse_args(["--tmdb-id", "550", "--tmdb-id", "603", "--dry-run"]))

    assert code == 0
    out = capsys.readouterr().out
    assert "MISSING tmdb_id=603" in out
    assert "tmdb_id=550" not in out
    assert catalog.calls == []


def test_warms_missing_movies_and_reports_failures(movie_store, catalog, capsys: pytest.CaptureFixture[str]) -> None:  # noqa: ANN001
    _seed(movie_store, 550)
    catalog.add(603, "The Matrix")

    code = mod.run(
        movie_store,
        catalog,
        mod._parse_args(["--tmdb-id", "550", "--tmdb-id", "603", "--tmdb-id", "999999", "--tmdb-id", "603"]),
    )

    assert code == 1
    assert catalog.calls == [603, 999999]
    assert len(movie_store.rows) == 2
    assert "requested=3 created=1 refreshed=0 failed=1" in capsys.readouterr().out


def test_refresh_touches_cached_movies(movie_store, catalog, capsys: pytest.CaptureFixture[str]) -> None:  # noqa: ANN001
    _seed(movie_store, 550)
    catalog.add(550, "Fight Club")

    code = mod.run(movie_store, catalog, mod._parse_args(["--tmdb-id", "550", "--refresh"]))

    assert code == 0
    assert "created=0 refreshed=1 failed=0" in capsys.readouterr().out
    (row,) = movie_store.rows.values()
    assert row["title"] == "Fight Club"


def test_ids_can_come_from_a_file(movie_store, catalog, tmp_path) -> None:  # noqa: ANN001
    ids_file = tmp_path / "ids.txt"
    ids_file.write_text("550\n# comment\n\n603  # trailing\n", encoding="utf-8")
    args = mod._parse_args(["--file", str(ids_file), "--tmdb-id", "13"])

    assert mod._read_ids(args) == [13, 550, 603]


def test_rejected_credential_stops_the_run(movie_store, catalog) -> None:  # noqa: ANN001
    catalog.error = TmdbUnauthorizedError("TMDB_API_KEY is not set.")

    code = mod.run(movie_store, catalog, mod._parse_args(["--tmdb-id", "550", "--tmdb-id", "603"]))

    assert code == 1
    assert catalog.calls == [550]


def test_no_ids_is_a_usage_error(movie_store, catalog) -> None:  # noqa: ANN001
    assert mod.run(movie_store, catalog, mod._parse_args([])) == 2


def test_bad_line_in_file_is_a_usage_error(movie_store, catalog, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:  # noqa: ANN001
    ids_file = tmp_path / "ids.txt"
    ids_file.write_text("550\nabc\n", encoding="utf-8")

    code = mod.run(movie_store, catalog, mod._parse_args(["--file", str(ids_file)]))

    assert code == 2
    assert "ids.txt:2: not a TMDb id: 'abc'" in capsys.readouterr().err
    assert catalog.calls == []
    assert movie_store.calls == []
