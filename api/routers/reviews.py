"""
Movie reviews and replies.

Reads of public reviews are open; writes require authentication and user_id is
always server-derived. A new top-level review resolves its movie through the
movie cache; replies inherit the movie of the review they answer.
"""
from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from api.auth import CurrentUser, OptionalUser, get_user_supabase_client
from api.deps import Resolver, SupabaseClient, get_list_result, raise_for_supabase_error, require_single_result
from api.errors import to_http_exception
from api.movie_refs import MovieRefIn, resolve_movie_or_raise
from cinelog_backend.repositories.movies import (
    MovieRepositoryError,
    attach_movies,
    find_movie_by_tmdb_id,
    get_movie_by_id,
)
from cinelog_backend.services.movie_resolver import MAX_TMDB_ID

router = APIRouter(prefix="/reviews", tags=["reviews"])

VALID_VISIBILITY = ("public", "private")


# --- Pydantic models ---


class Review(BaseModel):
    id: UUID
    user_id: UUID
    movie_id: UUID
    parent_review_id: UUID | None = None
    rating_integer: int | None = None
    rating_stars: float | None = None
    review_text: str | None = None
    visibility: str
    created_at: str
    updated_at: str | None = None
    movie: dict | None = None


class ReviewWithReplies(Review):
    replies: list[Review] = []


class ReviewPage(BaseModel):
    reviews: list[ReviewWithReplies]
    page: int
    total_pages: int
    total: int


class ReviewCreate(MovieRefIn):
    """
    Review creation payload.
    Note: user_id is server-derived from auth token, not from client.
    """

    rating_integer: int | None = Field(default=None, ge=1, le=10)
    rating_stars: float | None = Field(default=None, ge=0, le=10, multiple_of=0.5)
    review_text: str | None = Field(default=None, max_length=5000)
    visibility: str = "public"
    parent_review_id: UUID | None = None


class ReviewUpdate(BaseModel):
    rating_integer: int | None = Field(default=None, ge=1, le=10)
    rating_stars: float | None = Field(default=None, ge=0, le=10, multiple_of=0.5)
    review_text: str | None = Field(default=None, max_length=5000)
    visibility: str | None = None


# --- Helpers ---


def _validate_visibility(visibility: str) -> None:
    if visibility not in VALID_VISIBILITY:
        raise HTTPException(
            status_code=400, detail=f"Invalid visibility. Must be one of: {', '.join(VALID_VISIBILITY)}"
        )


def _total_count(response, fallback: int) -> int:  # noqa: ANN001
    count = getattr(response, "count", None)
    return count if isinstance(count, int) else fallback


def _list_movie_reviews(db, movie_id: str, page: int, limit: int) -> dict:  # noqa: ANN001
    offset = (page - 1) * limit
    response = (
        db.schema("social")
        .table("reviews")
        .select("*", count="exact")
        .eq("movie_id", movie_id)
        .eq("visibility", "public")
        .is_("parent_review_id", "null")
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    reviews = get_list_result(response, "listing movie reviews")
    total = _total_count(response, offset + len(reviews))

    if reviews:
        replies_response = (
            db.schema("social")
            .table("reviews")
            .select("*")
            .in_("parent_review_id", [r["id"] for r in reviews])
            .eq("visibility", "public")
            .order("created_at")
            .execute()
        )
        replies_by_parent: dict[str, list[dict]] = {}
        for reply in get_list_result(replies_response, "listing review replies"):
            replies_by_parent.setdefault(str(reply["parent_review_id"]), []).append(reply)
        for review in reviews:
            review["replies"] = replies_by_parent.get(str(review["id"]), [])

    return {
        "reviews": reviews,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        "total": total,
    }


# --- Endpoints ---


@router.get("/movies/{movie_id}", response_model=ReviewPage)
def list_reviews_for_movie(
    db: SupabaseClient,
    movie_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
) -> dict:
    """Public top-level reviews (with replies) for a cached movie."""
    try:
        movie = get_movie_by_id(db, movie_id)
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")
    return _list_movie_reviews(db, str(movie["id"]), page, limit)


@router.get("/tmdb/{tmdb_id}", response_model=ReviewPage)
def list_reviews_for_tmdb_movie(
    db: SupabaseClient,
    tmdb_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
) -> dict:
    """Same as above, addressed by TMDb id. Movies nobody has cached have no reviews."""
    if not 0 < tmdb_id <= MAX_TMDB_ID:
        raise HTTPException(status_code=400, detail="TMDb id must be a positive 32-bit integer")
    try:
        movie = find_movie_by_tmdb_id(db, tmdb_id)
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")
    return _list_movie_reviews(db, str(movie["id"]), page, limit)


@router.get("/popular", response_model=list[Review])
def list_popular_reviews(db: SupabaseClient, limit: int = Query(default=10, ge=1, le=50)) -> list[dict]:
    """Public reviews from the last seven days, newest first."""
    since = (datetime.now(UTC) - timedelta(days=7)).isoformat()
    response = (
        db.schema("social")
        .table("reviews")
        .select("*")
        .eq("visibility", "public")
        .gte("created_at", since)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    reviews = get_list_result(response, "listing popular reviews")
    try:
        return attach_movies(db, reviews)
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc


@router.get("/user/{user_id}", response_model=list[Review])
def list_user_reviews(
    db: SupabaseClient,
    user_id: UUID,
    user: OptionalUser,
    limit: int = Query(default=10, ge=1, le=50),
    offset: int = Query(default=0, ge=0),
) -> list[dict]:
    """A user's reviews. Owners see private reviews too."""
    is_owner = user is not None and user["id"] == str(user_id)
    read_db = get_user_supabase_client(user) if is_owner else db
    query = read_db.schema("social").table("reviews").select("*").eq("user_id", str(user_id))
    if not is_owner:
        query = query.eq("visibility", "public")
    response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
    reviews = get_list_result(response, "listing user reviews")
    try:
        return attach_movies(db, reviews)
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc


@router.post("", response_model=Review, status_code=201)
def create_review(db: SupabaseClient, review: ReviewCreate, user: CurrentUser, resolver: Resolver) -> dict:
    """
    Create a review, or a reply when `parent_review_id` is set.
    Requires authentication.
    """
    user_db = get_user_supabase_client(user)

    if review.parent_review_id:
        if not review.review_text or not review.review_text.strip():
            raise HTTPException(status_code=400, detail="Reply text is required")
        parent_response = (
            db.schema("social")
            .table("reviews")
            .select("id, movie_id")
            .eq("id", str(review.parent_review_id))
            .limit(1)
            .execute()
        )
        parent = require_single_result(parent_response, "Parent review")
        insert_data = {
            "user_id": user["id"],
            "movie_id": str(parent["movie_id"]),
            "review_text": review.review_text,
            "visibility": "public",  # replies are always public
            "parent_review_id": str(review.parent_review_id),
        }
    else:
        if review.rating_integer is None and review.rating_stars is None:
            raise HTTPException(status_code=400, detail="At least one rating (integer or stars) is required")
        _validate_visibility(review.visibility)
        movie = resolve_movie_or_raise(resolver, review)

        existing_response = (
            user_db.schema("social")
            .table("reviews")
            .select("id")
            .eq("user_id", user["id"])
            .eq("movie_id", str(movie.id))
            .is_("parent_review_id", "null")
            .execute()
        )
        if get_list_result(existing_response, "checking existing review"):
            raise HTTPException(status_code=400, detail="Review already exists for this movie. Use update instead.")

        insert_data = {
            "user_id": user["id"],
            "movie_id": str(movie.id),
            "rating_integer": review.rating_integer,
            "rating_stars": review.rating_stars,
            "review_text": review.review_text,
            "visibility": review.visibility,
        }

    response = user_db.schema("social").table("reviews").insert(insert_data).execute()
    raise_for_supabase_error(response, "creating review")
    if not response.data:
        raise HTTPException(status_code=500, detail="Failed to create review")

    try:
        return attach_movies(db, [response.data[0]])[0]
    except MovieRepositoryError as exc:
        raise to_http_exception(exc) from exc


@router.put("/{review_id}", response_model=Review)
def update_review(review_id: UUID, patch: ReviewUpdate, user: CurrentUser) -> dict:
    changes = patch.model_dump(exclude_unset=True)
    if "visibility" in changes:
        _validate_visibility(changes["visibility"])
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("reviews")
        .update(changes)
        .eq("id", str(review_id))
        .eq("user_id", user["id"])
        .execute()
    )
    raise_for_supabase_error(response, "updating review")
    if not response.data:
        raise HTTPException(status_code=404, detail="Review not found")
    return response.data[0]


@router.delete("/{review_id}")
def delete_review(review_id: UUID, user: CurrentUser) -> dict:
    user_db = get_user_supabase_client(user)
    response = (
        user_db.schema("social")
        .table("reviews")
        .delete()
        .eq("id", str(review_id))
        .eq("user_id", user["id"])
        .execute()
    )
    raise_for_supabase_error(response, "deleting review")
    if not response.data:
        raise HTTPException(status_code=404, detail="Review not found")
    return {"deleted": True, "id": str(review_id)}
