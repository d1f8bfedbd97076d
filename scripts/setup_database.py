#!/usr/bin/env python3
"""Create the catalog tables (publisher, work, publication).

Waits for PostgreSQL to accept connections, then applies
schema/create_database.sql. The schema only creates missing objects, so
re-running is harmless.

Usage:
    python scripts/setup_database.py [--database-url URL]

Environment variables:
    DATABASE_URL  Default database URL when --database-url is not specified.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

import psycopg

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent.parent / "schema"
DEFAULT_DATABASE_URL = "postgresql://localhost:5432/archive"

# Maximum seconds to wait for Postgres to become ready.
PG_CONNECT_TIMEOUT = 30


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
    parser.add_argument(
        "--schema",
        type=Path,
        default=SCHEMA_DIR / "create_database.sql",
        metavar="FILE",
        help="SQL file to apply (default: schema/create_database.sql).",
    )
    return parser.parse_args(argv)


def wait_for_postgres(db_url: str, timeout: float = PG_CONNECT_TIMEOUT) -> None:
    """Poll Postgres until a connection succeeds or timeout is reached."""
    logger.info("Waiting for PostgreSQL at %s ...", db_url)
    deadline = time.monotonic() + timeout
    delay = 0.5
    while True:
        try:
            conn = psycopg.connect(db_url, connect_timeout=5)
            conn.close()
            logger.info("PostgreSQL is ready.")
            return
        except psycopg.OperationalError:
            if time.monotonic() >= deadline:
                logger.error("Timed out waiting for PostgreSQL after %ds", timeout)
                sys.exit(1)
            time.sleep(delay)
            delay = min(delay * 2, 3)


def run_sql_file(db_url: str, sql_file: Path) -> None:
    """Execute a SQL file against the database using psycopg."""
    logger.info("Running %s ...", sql_file.name)
    sql = sql_file.read_text()

    conn = psycopg.connect(db_url, autocommit=True)
    try:
        with conn.cursor() as cur:
            cur.execute(sql)
    except psycopg.Error as exc:
        logger.error("SQL execution failed for %s: %s", sql_file.name, exc)
        conn.close()
        sys.exit(1)
    conn.close()
    logger.info("  done.")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    if not args.schema.exists():
        logger.error("Schema file not found: %s", args.schema)
        sys.exit(1)
    wait_for_postgres(args.database_url)
    run_sql_file(args.database_url, args.schema)


if __name__ == "__main__":
    main()
