#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from supabase import Client

from cinelog_backend.db.supabase import create_supabase_admin_client
from cinelog_backend.integrations.tmdb.client import TmdbClient, TmdbConfig
from cinelog_backend.models.movies import ByExternalId
from cinelog_backend.repositories.movies import assert_core_movies_table_exists, find_movies_by_tmdb_ids
from cinelog_backend.services.movie_resolver import (
    CatalogUnauthorizedError,
    MAX_TMDB_ID,
    CatalogUnavailableError,
    InvalidMovieIdentifierError,
    MovieNotFoundError,
    MovieResolver,
)
from cinelog_backend.utils.env import load_env


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="warm_movie_cache",
        description="Resolve TMDb movie ids into core.movies.",
    )
    parser.add_argument("--tmdb-id", action="append", type=int, default=[], help="TMDb movie id. Repeatable.")
    parser.add_argument("--file", type=Path, default=None, help="File with one TMDb movie id per line.")
    parser.add_argument("--refresh", action="store_true", help="Also refresh movies that are already cached.")
    parser.add_argument("--dry-run", action="store_true", help="Only report which ids are missing from the cache.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def _read_ids(args: argparse.Namespace) -> list[int]:
    ids: list[int] = list(args.tmdb_id or [])
    if args.file is not None:
        for lineno, line in enumerate(args.file.read_text(encoding="utf-8").splitlines(), start=1):
            line = line.split("#", 1)[0].strip()
            if not line:
                continue
            try:
                ids.append(int(line))
            except ValueError as exc:
                raise ValueError(f"{args.file}:{lineno}: not a TMDb id: {line!r}") from exc
    # Keep first-seen order.
    return list(dict.fromkeys(ids))


def run(db: Client, tmdb: TmdbClient, args: argparse.Namespace) -> int:
    try:
        ids = _read_ids(args)
    except ValueError as exc:
        print(f"warm_movie_cache: {exc}", file=sys.stderr)
        return 2
    if not ids:
        print("warm_movie_cache: no TMDb ids given", file=sys.stderr)
        return 2

    cached = find_movies_by_tmdb_ids(db, [i for i in ids if 0 < i <= MAX_TMDB_ID])
    missing = [i for i in ids if i not in cached]
    if args.verbose:
        print(f"warm_movie_cache: requested={len(ids)} cached={len(cached)} missing={len(missing)}")

    if args.dry_run:
        for tmdb_id in missing:
            print(f"MISSING tmdb_id={tmdb_id}")
        return 0

    resolver = MovieResolver(db, tmdb)
    created = 0
    refreshed = 0
    failed = 0

    targets = ids if args.refresh else missing
    for tmdb_id in targets:
        try:
            resolved = resolver.resolve(
                ByExternalId(tmdb_id),
                refresh=args.refresh,
                assume_uncached=tmdb_id not in cached,
            )
        except CatalogUnauthorizedError as exc:
            print(f"ERROR: TMDb credential rejected: {exc}", file=sys.stderr)
            return 1
        except (InvalidMovieIdentifierError, MovieNotFoundError, CatalogUnavailableError) as exc:
            failed += 1
            print(f"ERROR: tmdb_id={tmdb_id} error={exc}")
            continue

        if resolved.created:
            created += 1
        elif resolved.refreshed:
            refreshed += 1
        if args.verbose:
            print(f"CACHED tmdb_id={tmdb_id} id={resolved.movie.id} title={resolved.movie.title}")

    print(f"warm_movie_cache: requested={len(ids)} created={created} refreshed={refreshed} failed={failed}")
    return 0 if failed == 0 else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    load_env()
    db = create_supabase_admin_client()
    assert_core_movies_table_exists(db)
    return run(db, TmdbClient(TmdbConfig.from_env()), args)


if __name__ == "__main__":
    raise SystemExit(main())
