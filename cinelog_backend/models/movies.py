from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Union
from uuid import UUID


def _parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class MovieRecord:
    """
    Cached catalog movie (maps to `core.movies`).

    `id` is the local key every review, list entry and playlist row points at.
    `tmdb_id` is unique across the table.
    """

    id: UUID
    tmdb_id: int
    title: str
    overview: str = ""
    poster: str = ""
    backdrop: str = ""
    release_date: str | None = None
    genres: tuple[str, ...] = ()
    rating: float = 0.0
    cached_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> MovieRecord:
        genres = row.get("genres")
        rating = row.get("rating")
        return cls(
            id=UUID(str(row["id"])),
            tmdb_id=int(row["tmdb_id"]),
            title=str(row.get("title") or ""),
            overview=str(row.get("overview") or ""),
            poster=str(row.get("poster") or ""),
            backdrop=str(row.get("backdrop") or ""),
            release_date=row.get("release_date") or None,
            genres=tuple(g for g in genres if isinstance(g, str)) if isinstance(genres, list) else (),
            rating=float(rating) if isinstance(rating, (int, float)) else 0.0,
            cached_at=_parse_timestamp(row.get("cached_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "tmdb_id": self.tmdb_id,
            "title": self.title,
            "overview": self.overview,
            "poster": self.poster,
            "backdrop": self.backdrop,
            "release_date": self.release_date,
            "genres": list(self.genres),
            "rating": self.rating,
            "cached_at": self.cached_at.isoformat() if self.cached_at else None,
        }


@dataclass(frozen=True)
class MovieUpsert:
    tmdb_id: int
    title: str
    overview: str = ""
    poster: str = ""
    backdrop: str = ""
    release_date: str | None = None  # YYYY-MM-DD when available
    genres: list[str] = field(default_factory=list)
    rating: float = 0.0


@dataclass(frozen=True)
class ByLocalKey:
    local_key: UUID


@dataclass(frozen=True)
class ByExternalId:
    tmdb_id: int


@dataclass(frozen=True)
class MovieRef:
    """
    Whatever identifying information a caller already has for a movie.

    When both are set the local key wins if it resolves; the TMDb id is the fallback.
    """

    local_key: UUID | None = None
    tmdb_id: int | None = None

    @classmethod
    def of(cls, lookup: MovieLookup | MovieRef) -> MovieRef:
        if isinstance(lookup, MovieRef):
            return lookup
        if isinstance(lookup, ByLocalKey):
            return cls(local_key=lookup.local_key)
        if isinstance(lookup, ByExternalId):
            return cls(tmdb_id=lookup.tmdb_id)
        raise TypeError(f"Unsupported movie lookup: {lookup!r}")


MovieLookup = Union[ByLocalKey, ByExternalId]
