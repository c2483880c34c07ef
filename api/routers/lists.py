"""
Personal movie lists (watched, watching, wishlist, favorites).

All endpoints require authentication; user_id is always server-derived.
Adding a movie resolves it through the movie cache first, so every entry points
at an existing `core.movies` row.
"""
from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.auth import CurrentUser, get_user_supabase_client
from api.deps import Resolver, SupabaseClient, get_list_result, raise_for_supabase_error, require_single_result
from api.errors import to_http_exception
from api.movie_refs import MovieRefIn, resolve_movie_or_raise
from cinelog_backend.repositories.movies import MovieRepositoryError, attach_movies

router = APIRouter(prefix="/lists", tags=["lists"])

VALID_LIST_TYPES = ("watched", "watching", "wishlist", "favorites")


# --- Pydantic models ---


class ListEntry(BaseModel):
    id: UUID
    user_id: UUID
    movie_id: UUID
    list_type: str
    rating_integer: int | None = None
    rating_stars: float | None = None
    review_text: str | None = None
    date_added: str
    date_watched: str | None = None
    movie: dict | None = None


class ListEntryCreate(MovieRefIn):
    list_type: str
    rating_integer: int | None = Field(default=None, ge=1, le=10)
    rating_stars: float | None = Field(default=None, ge=0, le=10, multiple_of=0.5)
    review_text: str | None = Field(default=None, max_length=5000)
    date_watched: date | None = None


class ListEntryUpdate(BaseModel):
    list_type: str | None = None
    rating_integer: int | None = Field(default=None, ge=1, le=10)
    rating_stars: float | None = Field(default=None, ge=0, le=10, multiple_of=0.5)
    review_text: str | None = Field(default=None, max_length=5000)
    date_watched: date | None = None


def _validate_list_type(list_type: str) -> None:
    if list_type not in VALID_LIST_TYPES:
        raise HTTPException(
            status_code=400, detail=f"Invalid list type. Must be one of: {', '.join(VALID_LIST_TYPES)}"
        )


def _with_movies(db, rows: list[dict]) -> list[dict]:  # noqa: ANN001
    try:
        return attach_movies(db, rows)
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc


# --- Endpoints ---


@router.get("")
def get_all_lists(db: SupabaseClient, user: CurrentUser) -> dict:
    """All four lists for the current user, newest first."""
    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("list_entries")
        .select("*")
        .eq("user_id", user["id"])
        .order("date_added", desc=True)
        .execute()
    )
    entries = _with_movies(db, get_list_result(response, "listing list entries"))

    lists: dict[str, list[dict]] = {list_type: [] for list_type in VALID_LIST_TYPES}
    for entry in entries:
        lists.setdefault(entry.get("list_type"), []).append(entry)
    return {"lists": lists}


@router.get("/{list_type}", response_model=list[ListEntry])
def get_list(db: SupabaseClient, list_type: str, user: CurrentUser) -> list[dict]:
    _validate_list_type(list_type)
    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("list_entries")
        .select("*")
        .eq("user_id", user["id"])
        .eq("list_type", list_type)
        .order("date_added", desc=True)
        .execute()
    )
    return _with_movies(db, get_list_result(response, "listing list entries"))


@router.post("", response_model=ListEntry, status_code=201)
def add_to_list(db: SupabaseClient, entry: ListEntryCreate, user: CurrentUser, resolver: Resolver) -> dict:
    """
    Add a movie to one of the current user's lists.
    The movie may be referenced by cached id, TMDb id, or both.
    """
    _validate_list_type(entry.list_type)
    movie = resolve_movie_or_raise(resolver, entry)

    user_db = get_user_supabase_client(user)
    existing_response = (
        user_db.schema("social")
        .table("list_entries")
        .select("id")
        .eq("user_id", user["id"])
        .eq("movie_id", str(movie.id))
        .eq("list_type", entry.list_type)
        .execute()
    )
    if get_list_result(existing_response, "checking list entry"):
        raise HTTPException(status_code=400, detail="Movie already exists in this list")

    insert_data = {
        "user_id": user["id"],
        "movie_id": str(movie.id),
        "list_type": entry.list_type,
        "rating_integer": entry.rating_integer,
        "rating_stars": entry.rating_stars,
        "review_text": entry.review_text,
    }
    if entry.date_watched and entry.list_type == "watched":
        insert_data["date_watched"] = entry.date_watched.isoformat()

    response = user_db.schema("social").table("list_entries").insert(insert_data).execute()
    raise_for_supabase_error(response, "adding list entry")
    if not response.data:
        raise HTTPException(status_code=500, detail="Failed to add movie to list")

    created = response.data[0]
    created["movie"] = movie.to_dict()
    return created


@router.put("/{entry_id}", response_model=ListEntry)
def update_list_entry(db: SupabaseClient, entry_id: UUID, patch: ListEntryUpdate, user: CurrentUser) -> dict:
    user_db = get_user_supabase_client(user)
    existing_response = (
        user_db.schema("social")
        .table("list_entries")
        .select("id")
        .eq("id", str(entry_id))
        .eq("user_id", user["id"])
        .limit(1)
        .execute()
    )
    require_single_result(existing_response, "List entry")

    changes = patch.model_dump(exclude_unset=True)
    if "list_type" in changes:
        _validate_list_type(changes["list_type"])
    if "date_watched" in changes and changes["date_watched"] is not None:
        changes["date_watched"] = changes["date_watched"].isoformat()
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    response = (
        user_db.schema("social")
        .table("list_entries")
        .update(changes)
        .eq("id", str(entry_id))
        .eq("user_id", user["id"])
        .execute()
    )
    raise_for_supabase_error(response, "updating list entry")
    if not response.data:
        raise HTTPException(status_code=404, detail="List entry not found")
    return _with_movies(db, [response.data[0]])[0]


@router.delete("/{entry_id}")
def remove_from_list(entry_id: UUID, user: CurrentUser) -> dict:
    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("list_entries")
        .delete()
        .eq("id", str(entry_id))
        .eq("user_id", user["id"])
        .execute()
    )
    raise_for_supabase_error(response, "removing list entry")
    if not response.data:
        raise HTTPException(status_code=404, detail="List entry not found")
    return {"deleted": True, "id": str(entry_id)}
