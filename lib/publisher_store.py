"""Data access for publishers and the publications that reference them.

PublisherStore is the capability the merge coordinator needs. The Postgres
implementation runs each call as its own statement; wrapping a merge in
transaction() makes the whole merge atomic where the caller asks for it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

import asyncpg

from lib.errors import NotFound, StoreError
from lib.publishers import Publication, Publisher, filter_publishers

logger = logging.getLogger(__name__)

# A closed connection raises InterfaceError, not PostgresError.
DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PublisherStore(Protocol):
    async def list_publishers(self) -> list[Publisher]: ...

    async def update_publisher_name(self, publisher_id: int, name: str) -> Publisher: ...

    async def repoint_publications(self, source_id: int, target_id: int) -> int: ...

    async def delete_publisher(self, publisher_id: int) -> None: ...

    def transaction(self): ...


def _rowcount(status: str) -> int:
    """Parse the affected-row count from an asyncpg status string ("UPDATE 3")."""
    return int(status.split()[-1])


class PostgresPublisherStore:
    """PublisherStore over an asyncpg connection.

    Driver errors are re-raised as StoreError; missing ids as NotFound.
    """

    def __init__(self, conn: asyncpg.Connection) -> None:
        self.conn = conn

    @classmethod
    async def connect(cls, db_url: str) -> PostgresPublisherStore:
        """Open a connection to db_url and wrap it."""
        try:
            conn = await asyncpg.connect(db_url)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Could not connect to {db_url}: {exc}") from exc
        return cls(conn)

    async def close(self) -> None:
        await self.conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed store calls in one database transaction."""
        try:
            async with self.conn.transaction():
                yield
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Transaction failed: {exc}") from exc

    async def list_publishers(self) -> list[Publisher]:
        """Return all publishers ordered by name."""
        try:
            rows = await self.conn.fetch(
                "SELECT id, name, created_at FROM publisher ORDER BY name, id"
            )
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Failed to list publishers: {exc}") from exc
        return [Publisher.from_row(row) for row in rows]

    async def search_publishers(self, term: str) -> list[Publisher]:
        """Return publishers whose name contains term, case-insensitively."""
        return filter_publishers(await self.list_publishers(), term)

    async def get_publisher(self, publisher_id: int) -> Publisher:
        try:
            row = await self.conn.fetchrow(
                "SELECT id, name, created_at FROM publisher WHERE id = $1", publisher_id
            )
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Failed to read publisher {publisher_id}: {exc}") from exc
        if row is None:
            raise NotFound(publisher_id)
        return Publisher.from_row(row)

    async def update_publisher_name(self, publisher_id: int, name: str) -> Publisher:
        """Overwrite a publisher's name and return the updated record."""
        try:
            row = await self.conn.fetchrow(
                "UPDATE publisher SET name = $2 WHERE id = $1 RETURNING id, name, created_at",
                publisher_id,
                name,
            )
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Failed to rename publisher {publisher_id}: {exc}") from exc
        if row is None:
            raise NotFound(publisher_id)
        return Publisher.from_row(row)

    async def repoint_publications(self, source_id: int, target_id: int) -> int:
        """Move every publication of source_id to target_id.

        Raises:
            NotFound: If either publisher no longer exists.

        Returns:
            Number of publications updated.
        """
        try:
            found = {
                row["id"]
                for row in await self.conn.fetch(
                    "SELECT id FROM publisher WHERE id = ANY($1::integer[])",
                    [source_id, target_id],
                )
            }
            for publisher_id in (source_id, target_id):
                if publisher_id not in found:
                    raise NotFound(publisher_id)
            status = await self.conn.execute(
                "UPDATE publication SET publisher_id = $2 WHERE publisher_id = $1",
                source_id,
                target_id,
            )
        except DRIVER_ERRORS as exc:
            raise StoreError(
                f"Failed to move publications from {source_id} to {target_id}: {exc}"
            ) from exc
        count = _rowcount(status)
        logger.debug("Repointed %d publications %d -> %d", count, source_id, target_id)
        return count

    async def delete_publisher(self, publisher_id: int) -> None:
        try:
            status = await self.conn.execute("DELETE FROM publisher WHERE id = $1", publisher_id)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"Failed to delete publisher {publisher_id}: {exc}") from exc
        if _rowcount(status) == 0:
            raise NotFound(publisher_id)

    async def list_publications(self, publisher_id: int) -> list[Publication]:
        """Return the publications that reference publisher_id, ordered by id."""
        try:
            rows = await self.conn.fetch(
                """
                SELECT id, work_id, publisher_id, plate_number, publication_year, edition_note
                FROM publication
                WHERE publisher_id = $1
                ORDER BY id
                """,
                publisher_id,
            )
        except DRIVER_ERRORS as exc:
            raise StoreError(
                f"Failed to list publications of publisher {publisher_id}: {exc}"
            ) from exc
        return [Publication.from_row(row) for row in rows]
