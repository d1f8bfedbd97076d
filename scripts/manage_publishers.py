#!/usr/bin/env python3
"""Find and merge duplicate publishers in the archive catalog.

Subcommands:

  list      Print all publishers, optionally filtered by a search term.
  show      Print one publisher and the publications that reference it.
  similar   Print groups of publishers whose names look like duplicates.
  merge     Move all publications of SOURCE to TARGET, then delete SOURCE.
  rename    Change a publisher's name.

Usage:
    python scripts/manage_publishers.py list [--search TERM]
    python scripts/manage_publishers.py show ID
    python scripts/manage_publishers.py similar [--threshold 0.7] [--reject 12:34 ...]
    python scripts/manage_publishers.py merge SOURCE TARGET [--name NAME] [--atomic]
    python scripts/manage_publishers.py rename ID NAME

Environment variables:
    DATABASE_URL                    Default for --database-url.
    PUBLISHER_SIMILARITY_THRESHOLD  Default for --threshold.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
from lib.errors import PublisherError, StoreError  # noqa: E402
from lib.merge import merge_publishers, rename_publisher  # noqa: E402
from lib.publisher_store import PostgresPublisherStore  # noqa: E402
from lib.similarity import (  # noqa: E402
    DEFAULT_THRESHOLD,
    SimilarityGroup,
    compute_similarity_groups,
    exclude_rejected,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "postgresql://localhost:5432/archive"


def parse_pair(value: str) -> tuple[int, int]:
    """Parse an ANCHOR:SUGGESTION id pair."""
    anchor, sep, suggestion = value.partition(":")
    try:
        if not sep:
            raise ValueError(value)
        return int(anchor), int(suggestion)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"expected ANCHOR:SUGGESTION publisher ids, got {value!r}"
        ) from None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
        help=f"PostgreSQL connection URL (default: DATABASE_URL env var or {DEFAULT_DATABASE_URL}).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List publishers.")
    list_cmd.add_argument("--search", type=str, default="", metavar="TERM")

    show = commands.add_parser("show", help="Show a publisher and its publications.")
    show.add_argument("id", type=int)

    similar = commands.add_parser("similar", help="Show likely duplicate publishers.")
    similar.add_argument(
        "--threshold",
        type=float,
        default=os.environ.get("PUBLISHER_SIMILARITY_THRESHOLD", str(DEFAULT_THRESHOLD)),
        help=f"Minimum similarity ratio, 0-1 (default: {DEFAULT_THRESHOLD}).",
    )
    similar.add_argument(
        "--reject",
        type=parse_pair,
        action="append",
        default=[],
        metavar="ANCHOR:SUGGESTION",
        help="Hide a dismissed suggestion. May be repeated.",
    )

    merge = commands.add_parser("merge", help="Merge SOURCE into TARGET.")
    merge.add_argument("source", type=int, help="Publisher id to remove.")
    merge.add_argument("target", type=int, help="Publisher id to keep.")
    merge.add_argument("--name", type=str, default=None, help="New name for TARGET.")
    merge.add_argument(
        "--atomic",
        action="store_true",
        default=False,
        help="Run the merge in a single transaction (all or nothing).",
    )

    rename = commands.add_parser("rename", help="Rename a publisher.")
    rename.add_argument("id", type=int)
    rename.add_argument("name", type=str)

    args = parser.parse_args(argv)
    if args.command == "similar" and args.threshold <= 0:
        parser.error("--threshold must be greater than 0")
    return args


def print_groups(groups: list[SimilarityGroup]) -> None:
    """Print similarity groups, best match first."""
    if not groups:
        print("No similar publisher names detected.")
        return
    print(f"{len(groups)} group(s) of similar publisher names:\n")
    for group in groups:
        print(f"[{group.id}] {group.name}  ({round(group.confidence * 100)}% similarity)")
        for suggestion in group.suggestions:
            print(f"    [{suggestion.id}] {suggestion.name}")


async def run(args: argparse.Namespace) -> int:
    store = await PostgresPublisherStore.connect(args.database_url)
    try:
        if args.command == "list":
            publishers = await store.search_publishers(args.search)
            for publisher in publishers:
                print(f"[{publisher.id}] {publisher.name}")
            print(f"\n{len(publishers)} publisher(s)")

        elif args.command == "show":
            publisher = await store.get_publisher(args.id)
            publications = await store.list_publications(args.id)
            print(f"[{publisher.id}] {publisher.name}")
            for publication in publications:
                details = ", ".join(
                    str(value)
                    for value in (
                        publication.plate_number,
                        publication.publication_year,
                        publication.edition_note,
                    )
                    if value is not None
                )
                print(f"    publication {publication.id} (work {publication.work_id}) {details}".rstrip())
            print(f"\n{len(publications)} publication(s)")

        elif args.command == "similar":
            publishers = await store.list_publishers()
            groups = compute_similarity_groups(publishers, args.threshold)
            print_groups(exclude_rejected(groups, set(args.reject)))

        elif args.command == "merge":
            result = await merge_publishers(
                store, args.source, args.target, args.name, atomic=args.atomic
            )
            print(
                f"Merged publisher {result.source_id} into {result.target_id} "
                f"({result.repointed} publication(s) moved)."
            )
            if not result.complete:
                print(f"Rename to {args.name!r} did not apply: {result.rename_error}")
                return 1

        elif args.command == "rename":
            publisher = await rename_publisher(store, args.id, args.name)
            print(f"Publisher {publisher.id} is now {publisher.name!r}.")
    finally:
        await store.close()
    return 0


def report_failure(exc: PublisherError) -> None:
    """Tell the user whether a failed command changed anything."""
    if isinstance(exc, StoreError) and exc.partial:
        logger.error(
            "%s. %d publication(s) were already moved; the source publisher still "
            "exists with no publications. Re-run the merge to delete it.",
            exc,
            exc.repointed,
        )
    else:
        logger.error("%s. No changes were made.", exc)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        code = asyncio.run(run(args))
    except PublisherError as exc:
        report_failure(exc)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
