from __future__ import annotations

import threading
import uuid
from types import SimpleNamespace
from typing import Any

import pytest


class FakeUniqueViolation(Exception):
    """Shape of `postgrest.exceptions.APIError` for a duplicate key."""

    def __init__(self, constraint: str = "movies_tmdb_id_key") -> None:
        super().__init__(f'duplicate key value violates unique constraint "{constraint}"')
        self.code = "23505"
        self.message = str(self)


class _FakeQuery:
    def __init__(self, store: FakeMovieStore, table: str) -> None:
        self._store = store
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: list[tuple[str, str, Any]] = []
        self._limit: int | None = None

    def select(self, *_args, **_kwargs):  # noqa: ANN001, ANN002
        self._op = "select"
        return self

    def insert(self, payload):  # noqa: ANN001
        self._op = "insert"
        self._payload = payload
        return self

    def update(self, payload):  # noqa: ANN001
        self._op = "update"
        self._payload = payload
        return self

    def eq(self, column: str, value):  # noqa: ANN001
        self._filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values):  # noqa: ANN001
        self._filters.append(("in", column, list(values)))
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for kind, column, value in self._filters:
            if kind == "eq" and str(row.get(column)) != str(value):
                return False
            if kind == "in" and str(row.get(column)) not in {str(v) for v in value}:
                return False
        return True

    def execute(self):
        store = self._store
        with store.lock:
            store.calls.append((self._op, self._table))
            if self._op == "insert":
                return SimpleNamespace(data=[store.insert_row(dict(self._payload))], error=None)

            matched = [row for row in store.rows.values() if self._matches(row)]
            if self._op == "update":
                for row in matched:
                    row.update(self._payload)
            if self._limit is not None:
                matched = matched[: self._limit]
            return SimpleNamespace(data=[dict(row) for row in matched], error=None)


class FakeMovieStore:
    """
    In-memory stand-in for the Supabase client, scoped to `core.movies`.

    Enforces the unique constraint on `tmdb_id` the same way Postgres does: the
    second insert raises instead of overwriting.
    """

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []

    def schema(self, _name: str):  # noqa: ANN001
        return self

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    def insert_row(self, row: dict[str, Any]) -> dict[str, Any]:
        if any(existing["tmdb_id"] == row["tmdb_id"] for existing in self.rows.values()):
            raise FakeUniqueViolation()
        row.setdefault("id", str(uuid.uuid4()))
        self.rows[row["id"]] = row
        return dict(row)

    def count(self, op: str) -> int:
        return sum(1 for call_op, _table in self.calls if call_op == op)


class FakeCatalog:
    """TMDb stand-in: canned movie payloads, optional failure, call log."""

    def __init__(self) -> None:
        self.movies: dict[int, dict[str, Any]] = {}
        self.error: Exception | None = None
        self.calls: list[int] = []
        self.before_return = None
        self._lock = threading.Lock()

    def add(self, tmdb_id: int, title: str, **extra: Any) -> dict[str, Any]:
        payload = {
            "id": tmdb_id,
            "title": title,
            "overview": extra.pop("overview", f"{title} overview"),
            "poster_path": extra.pop("poster_path", f"/poster{tmdb_id}.jpg"),
            "backdrop_path": extra.pop("backdrop_path", f"/backdrop{tmdb_id}.jpg"),
            "release_date": extra.pop("release_date", "1999-10-15"),
            "genres": extra.pop("genres", [{"id": 18, "name": "Drama"}]),
            "vote_average": extra.pop("vote_average", 8.4),
            **extra,
        }
        self.movies[tmdb_id] = payload
        return payload

    def fetch_movie_details(self, tmdb_id: int, *, append_credits: bool = True) -> dict[str, Any]:
        from cinelog_backend.integrations.tmdb.client import TmdbNotFoundError

        with self._lock:
            self.calls.append(tmdb_id)
        if self.error is not None:
            raise self.error
        if tmdb_id not in self.movies:
            raise TmdbNotFoundError("TMDb resource not found (fetch_movie_details).", status_code=404)
        if self.before_return is not None:
            self.before_return()
        return dict(self.movies[tmdb_id])


@pytest.fixture
def movie_store() -> FakeMovieStore:
    return FakeMovieStore()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()
