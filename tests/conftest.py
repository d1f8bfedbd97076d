"""Shared Postgres fixtures for integration tests.

The fixtures create a temporary test database, apply the schema, and clean up
on teardown.  Tests that need Postgres should use the ``db_url`` fixture and
be marked with ``@pytest.mark.postgres``.

Connection target:
    DATABASE_URL_TEST env var, default ``postgresql://localhost:5433/postgres``.
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path

import psycopg
import pytest
from psycopg import sql

ADMIN_URL = os.environ.get("DATABASE_URL_TEST", "postgresql://localhost:5433/postgres")
SCHEMA_DIR = Path(__file__).parent.parent / "schema"


def _postgres_available() -> bool:
    """Return True if we can connect to the test Postgres instance."""
    try:
        conn = psycopg.connect(ADMIN_URL, connect_timeout=3, autocommit=True)
        conn.close()
        return True
    except psycopg.OperationalError:
        return False


@pytest.fixture(scope="module")
def db_url():
    """Create a temporary database with the catalog schema, yield its URL, drop it on teardown.

    Skips the entire module if Postgres is not reachable.
    """
    if not _postgres_available():
        pytest.skip("PostgreSQL not available (set DATABASE_URL_TEST)")

    db_name = f"archive_test_{uuid.uuid4().hex[:8]}"
    admin_conn = psycopg.connect(ADMIN_URL, autocommit=True)

    with admin_conn.cursor() as cur:
        cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db_name)))

    test_url = f"{ADMIN_URL.rsplit('/', 1)[0]}/{db_name}"

    conn = psycopg.connect(test_url, autocommit=True)
    with conn.cursor() as cur:
        cur.execute(SCHEMA_DIR.joinpath("create_database.sql").read_text())
    conn.close()

    yield test_url

    # Force-disconnect any remaining connections first.
    with admin_conn.cursor() as cur:
        cur.execute(
            sql.SQL(
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                "WHERE datname = {} AND pid <> pg_backend_pid()"
            ).format(sql.Literal(db_name))
        )
        cur.execute(sql.SQL("DROP DATABASE IF EXISTS {}").format(sql.Identifier(db_name)))
    admin_conn.close()


@pytest.fixture()
def seeded_db(db_url):
    """Reset the catalog tables to the Norsk Musikforlag fixture rows.

    Publishers: 1 Norsk Musikforlag, 2 Norsk Musikkforlag, 3 Warner.
    Publications: 10 -> 2, 11 -> 1, 12 -> 3.
    """
    conn = psycopg.connect(db_url, autocommit=True)
    with conn.cursor() as cur:
        cur.execute("TRUNCATE publication, work, publisher RESTART IDENTITY CASCADE")
        cur.execute(
            "INSERT INTO publisher (id, name) VALUES "
            "(1, 'Norsk Musikforlag'), (2, 'Norsk Musikkforlag'), (3, 'Warner')"
        )
        cur.execute("INSERT INTO work (id, title) VALUES (1, 'Vårsøg'), (2, 'Solveigs sang')")
        cur.execute(
            "INSERT INTO publication (id, work_id, publisher_id, plate_number) VALUES "
            "(10, 1, 2, 'N.M.F. 112'), (11, 2, 1, 'N.M.F. 7'), (12, 1, 3, NULL)"
        )
    conn.close()
    return db_url
