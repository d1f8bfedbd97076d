"""Integration tests for lib/publisher_store.py and lib/merge.py against a real PostgreSQL database."""

from __future__ import annotations

from unittest.mock import AsyncMock

import psycopg
import pytest

from lib.errors import MergeStep, NotFound, StoreError, ValidationError
from lib.merge import merge_publishers, rename_publisher
from lib.publisher_store import PostgresPublisherStore
from lib.publishers import Publication
from lib.similarity import find_similar_groups

pytestmark = pytest.mark.postgres


def _publication_publishers(db_url: str) -> dict[int, int | None]:
    """Return {publication_id: publisher_id} for every publication."""
    with psycopg.connect(db_url) as conn, conn.cursor() as cur:
        cur.execute("SELECT id, publisher_id FROM publication ORDER BY id")
        return dict(cur.fetchall())


def _publisher_names(db_url: str) -> dict[int, str]:
    """Return {publisher_id: name} for every publisher."""
    with psycopg.connect(db_url) as conn, conn.cursor() as cur:
        cur.execute("SELECT id, name FROM publisher ORDER BY id")
        return dict(cur.fetchall())


class TestListPublishers:
    @pytest.mark.asyncio
    async def test_ordered_by_name(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            publishers = await store.list_publishers()
        finally:
            await store.close()
        assert [p.name for p in publishers] == [
            "Norsk Musikforlag",
            "Norsk Musikkforlag",
            "Warner",
        ]
        assert all(p.created_at is not None for p in publishers)

    @pytest.mark.asyncio
    async def test_feeds_similarity_groups(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            groups = find_similar_groups(await store.list_publishers(), threshold=0.8)
        finally:
            await store.close()
        assert [(g.id, [s.id for s in g.suggestions]) for g in groups] == [(1, [2])]


class TestListPublications:
    @pytest.mark.asyncio
    async def test_returns_publications_of_publisher(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            publications = await store.list_publications(2)
        finally:
            await store.close()
        assert publications == [
            Publication(id=10, work_id=1, publisher_id=2, plate_number="N.M.F. 112")
        ]

    @pytest.mark.asyncio
    async def test_unknown_publisher_has_none(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            assert await store.list_publications(99) == []
        finally:
            await store.close()


class TestMerge:
    """Merging through a real connection keeps publication links valid."""

    @pytest.mark.asyncio
    async def test_merge_repoints_and_deletes(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            result = await merge_publishers(store, 2, 1)
            kept = await store.list_publications(1)
            retired = await store.list_publications(2)
        finally:
            await store.close()
        assert result.repointed == 1
        assert [(p.id, p.plate_number) for p in kept] == [(10, "N.M.F. 112"), (11, "N.M.F. 7")]
        assert retired == []
        assert _publication_publishers(seeded_db) == {10: 1, 11: 1, 12: 3}
        assert set(_publisher_names(seeded_db)) == {1, 3}

    @pytest.mark.asyncio
    async def test_merge_with_rename(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            result = await merge_publishers(store, 2, 1, "Norsk Musikkforlag AS")
        finally:
            await store.close()
        assert result.complete
        assert _publisher_names(seeded_db)[1] == "Norsk Musikkforlag AS"

    @pytest.mark.asyncio
    async def test_atomic_merge(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            await merge_publishers(store, 1, 2, "Norsk Musikkforlag", atomic=True)
        finally:
            await store.close()
        assert _publication_publishers(seeded_db) == {10: 2, 11: 2, 12: 3}
        assert _publisher_names(seeded_db) == {2: "Norsk Musikkforlag", 3: "Warner"}

    @pytest.mark.asyncio
    async def test_missing_target_changes_nothing(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            with pytest.raises(NotFound) as excinfo:
                await merge_publishers(store, 2, 99)
        finally:
            await store.close()
        assert excinfo.value.step == MergeStep.REPOINT
        assert _publication_publishers(seeded_db) == {10: 2, 11: 1, 12: 3}
        assert set(_publisher_names(seeded_db)) == {1, 2, 3}

    @pytest.mark.asyncio
    async def test_self_merge_rejected(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            with pytest.raises(ValidationError):
                await merge_publishers(store, 1, 1)
        finally:
            await store.close()
        assert set(_publisher_names(seeded_db)) == {1, 2, 3}

    @pytest.mark.asyncio
    async def test_atomic_rename_failure_rolls_back(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        store.update_publisher_name = AsyncMock(side_effect=StoreError("rename rejected"))
        try:
            with pytest.raises(StoreError) as excinfo:
                await merge_publishers(store, 2, 1, "Norsk Musikkforlag AS", atomic=True)
        finally:
            await store.close()
        assert excinfo.value.step == MergeStep.RENAME
        assert not excinfo.value.partial
        assert _publication_publishers(seeded_db) == {10: 2, 11: 1, 12: 3}
        assert _publisher_names(seeded_db)[2] == "Norsk Musikkforlag"

    @pytest.mark.asyncio
    async def test_schema_rejects_blank_name(self, seeded_db) -> None:
        """A direct store update is still checked by the database."""
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            with pytest.raises(StoreError):
                await store.update_publisher_name(1, " ")
        finally:
            await store.close()
        assert _publisher_names(seeded_db)[1] == "Norsk Musikforlag"


class TestRename:
    @pytest.mark.asyncio
    async def test_rename_is_idempotent(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            await rename_publisher(store, 1, "X")
            first = _publisher_names(seeded_db)
            await rename_publisher(store, 1, "X")
        finally:
            await store.close()
        assert _publisher_names(seeded_db) == first
        assert first[1] == "X"
        assert _publication_publishers(seeded_db) == {10: 2, 11: 1, 12: 3}

    @pytest.mark.asyncio
    async def test_rename_missing(self, seeded_db) -> None:
        store = await PostgresPublisherStore.connect(seeded_db)
        try:
            with pytest.raises(NotFound):
                await rename_publisher(store, 99, "X")
        finally:
            await store.close()
