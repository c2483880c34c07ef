"""
User playlists: named, optionally public collections of cached movies.

Public playlists are readable by anyone; everything else requires the owner.
Movie references in create/update/add requests are resolved through the movie
cache; references that cannot be resolved are skipped.
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.auth import CurrentUser, OptionalUser, get_user_supabase_client
from api.deps import Resolver, SupabaseClient, get_list_result, raise_for_supabase_error, require_single_result
from api.errors import to_http_exception
from api.movie_refs import MovieRefIn
from cinelog_backend.models.movies import MovieRecord
from cinelog_backend.repositories.movies import MovieRepositoryError, attach_movies
from cinelog_backend.services.movie_resolver import MovieResolutionError, MovieResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/playlists", tags=["playlists"])


# --- Pydantic models ---


class PlaylistMovie(BaseModel):
    movie_id: UUID
    added_at: str
    notes: str | None = None
    movie: dict | None = None


class Playlist(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    description: str | None = None
    is_public: bool
    created_at: str
    updated_at: str | None = None
    movies: list[PlaylistMovie] = []


class PlaylistCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    is_public: bool = True
    movies: list[MovieRefIn] = []


class PlaylistUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    is_public: bool | None = None
    movies: list[MovieRefIn] | None = None


class PlaylistMoviesAdd(BaseModel):
    movies: list[MovieRefIn] = Field(min_length=1)


# --- Helpers ---


def _now_utc_iso() -> str:
    return datetime.now(UTC).isoformat()


def _resolve_movies(resolver: MovieResolver, refs: list[MovieRefIn]) -> list[MovieRecord]:
    try:
        return resolver.resolve_many(ref.to_ref() for ref in refs)
    except (MovieResolutionError, MovieRepositoryError) as exc:
        raise to_http_exception(exc) from exc


def _hydrate(db, read_db, playlists: list[dict]) -> list[dict]:  # noqa: ANN001
    """Attach ordered `movies` (with cached movie rows) to each playlist."""
    if not playlists:
        return playlists
    ids = [p["id"] for p in playlists]
    response = (
        read_db.schema("social")
        .table("playlist_movies")
        .select("playlist_id, movie_id, added_at, notes")
        .in_("playlist_id", ids)
        .order("added_at")
        .execute()
    )
    memberships = get_list_result(response, "listing playlist movies")
    try:
        attach_movies(db, memberships)
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc

    by_playlist: dict[str, list[dict]] = {}
    for m in memberships:
        by_playlist.setdefault(str(m["playlist_id"]), []).append(m)
    for playlist in playlists:
        playlist["movies"] = by_playlist.get(str(playlist["id"]), [])
    return playlists


def _get_owned_playlist(user_db, playlist_id: UUID, user: dict) -> dict:  # noqa: ANN001
    response = user_db.schema("social").table("playlists").select("*").eq("id", str(playlist_id)).limit(1).execute()
    playlist = require_single_result(response, "Playlist")
    if str(playlist["user_id"]) != user["id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return playlist


def _existing_movie_ids(user_db, playlist_id: UUID) -> set[str]:  # noqa: ANN001
    response = (
        user_db.schema("social")
        .table("playlist_movies")
        .select("movie_id")
        .eq("playlist_id", str(playlist_id))
        .execute()
    )
    return {str(row["movie_id"]) for row in get_list_result(response, "listing playlist movies")}


def _insert_memberships(user_db, playlist_id: UUID | str, movies: list[MovieRecord]) -> None:  # noqa: ANN001
    if not movies:
        return
    added_at = _now_utc_iso()
    rows = [{"playlist_id": str(playlist_id), "movie_id": str(movie.id), "added_at": added_at} for movie in movies]
    response = user_db.schema("social").table("playlist_movies").insert(rows).execute()
    raise_for_supabase_error(response, "adding playlist movies")


# --- Endpoints ---


@router.get("", response_model=list[Playlist])
def list_my_playlists(db: SupabaseClient, user: CurrentUser) -> list[dict]:
    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("playlists")
        .select("*")
        .eq("user_id", user["id"])
        .order("created_at", desc=True)
        .execute()
    )
    return _hydrate(db, user_db, get_list_result(response, "listing playlists"))


@router.get("/user/{user_id}", response_model=list[Playlist])
def list_user_playlists(db: SupabaseClient, user_id: UUID, user: OptionalUser) -> list[dict]:
    """
    A user's playlists. Other viewers only see public ones.
    """
    is_owner = user is not None and user["id"] == str(user_id)
    read_db = get_user_supabase_client(user) if is_owner else db
    query = read_db.schema("social").table("playlists").select("*").eq("user_id", str(user_id))
    if not is_owner:
        query = query.eq("is_public", True)
    response = query.order("created_at", desc=True).execute()
    return _hydrate(db, read_db, get_list_result(response, "listing user playlists"))


@router.get("/{playlist_id}", response_model=Playlist)
def get_playlist(db: SupabaseClient, playlist_id: UUID, user: OptionalUser) -> dict:
    read_db = get_user_supabase_client(user) if user else db
    response = read_db.schema("social").table("playlists").select("*").eq("id", str(playlist_id)).limit(1).execute()
    playlist = require_single_result(response, "Playlist")

    if not playlist.get("is_public") and (user is None or str(playlist["user_id"]) != user["id"]):
        raise HTTPException(status_code=403, detail="Access denied")
    return _hydrate(db, read_db, [playlist])[0]


@router.post("", response_model=Playlist, status_code=201)
def create_playlist(db: SupabaseClient, body: PlaylistCreate, user: CurrentUser, resolver: Resolver) -> dict:
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Playlist name is required")

    movies = _resolve_movies(resolver, body.movies)

    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("playlists")
        .insert(
            {
                "user_id": user["id"],
                "name": name,
                "description": (body.description or "").strip(),
                "is_public": body.is_public,
            }
        )
        .execute()
    )
    raise_for_supabase_error(response, "creating playlist")
    if not response.data:
        raise HTTPException(status_code=500, detail="Failed to create playlist")

    playlist = response.data[0]
    _insert_memberships(user_db, playlist["id"], movies)
    return _hydrate(db, user_db, [playlist])[0]


@router.put("/{playlist_id}", response_model=Playlist)
def update_playlist(
    db: SupabaseClient,
    playlist_id: UUID,
    body: PlaylistUpdate,
    user: CurrentUser,
    resolver: Resolver,
) -> dict:
    """
    Update playlist fields. When `movies` is given it replaces the playlist's movies.
    """
    user_db = get_user_supabase_client(user)
    playlist = _get_owned_playlist(user_db, playlist_id, user)

    changes: dict = {}
    if body.name is not None:
        changes["name"] = body.name.strip()
    if body.description is not None:
        changes["description"] = body.description.strip()
    if body.is_public is not None:
        changes["is_public"] = body.is_public

    if changes:
        response = user_db.schema("social").table("playlists").update(changes).eq("id", str(playlist_id)).execute()
        raise_for_supabase_error(response, "updating playlist")
        if response.data:
            playlist = response.data[0]

    if body.movies is not None:
        movies = _resolve_movies(resolver, body.movies)
        existing = _existing_movie_ids(user_db, playlist_id)
        wanted = {str(m.id) for m in movies}

        # New memberships go in before stale ones are deleted.
        _insert_memberships(user_db, playlist_id, [m for m in movies if str(m.id) not in existing])
        stale = sorted(existing - wanted)
        if stale:
            delete_response = (
                user_db.schema("social")
                .table("playlist_movies")
                .delete()
                .eq("playlist_id", str(playlist_id))
                .in_("movie_id", stale)
                .execute()
            )
            raise_for_supabase_error(delete_response, "removing playlist movies")

    return _hydrate(db, user_db, [playlist])[0]


@router.delete("/{playlist_id}")
def delete_playlist(playlist_id: UUID, user: CurrentUser) -> dict:
    user_db = get_user_supabase_client(user)
    _get_owned_playlist(user_db, playlist_id, user)

    response = user_db.schema("social").table("playlists").delete().eq("id", str(playlist_id)).execute()
    raise_for_supabase_error(response, "deleting playlist")
    return {"deleted": True, "id": str(playlist_id)}


@router.post("/{playlist_id}/movies", response_model=Playlist)
def add_movies_to_playlist(
    db: SupabaseClient,
    playlist_id: UUID,
    body: PlaylistMoviesAdd,
    user: CurrentUser,
    resolver: Resolver,
) -> dict:
    user_db = get_user_supabase_client(user)
    playlist = _get_owned_playlist(user_db, playlist_id, user)

    existing = _existing_movie_ids(user_db, playlist_id)
    movies = [m for m in _resolve_movies(resolver, body.movies) if str(m.id) not in existing]
    _insert_memberships(user_db, playlist_id, movies)
    return _hydrate(db, user_db, [playlist])[0]


@router.delete("/{playlist_id}/movies/{movie_id}", response_model=Playlist)
def remove_movie_from_playlist(db: SupabaseClient, playlist_id: UUID, movie_id: UUID, user: CurrentUser) -> dict:
    user_db = get_user_supabase_client(user)
    playlist = _get_owned_playlist(user_db, playlist_id, user)

    response = (
        user_db.schema("social")
        .table("playlist_movies")
        .delete()
        .eq("playlist_id", str(playlist_id))
        .eq("movie_id", str(movie_id))
        .execute()
    )
    raise_for_supabase_error(response, "removing playlist movie")
    return _hydrate(db, user_db, [playlist])[0]
