"""Publisher and publication records shared by the dedup core."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Publisher:
    """A named publishing house from the catalog."""

    id: int
    name: str
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> Publisher:
        """Build a Publisher from a database row (asyncpg Record or mapping)."""
        return cls(id=row["id"], name=row["name"], created_at=row["created_at"])


@dataclass(frozen=True)
class Publication:
    """A printed edition of a work, optionally linked to a publisher."""

    id: int
    work_id: int | None
    publisher_id: int | None
    plate_number: str | None = None
    publication_year: int | None = None
    edition_note: str | None = None

    @classmethod
    def from_row(cls, row) -> Publication:
        return cls(
            id=row["id"],
            work_id=row["work_id"],
            publisher_id=row["publisher_id"],
            plate_number=row["plate_number"],
            publication_year=row["publication_year"],
            edition_note=row["edition_note"],
        )


def filter_publishers(publishers: list[Publisher], term: str) -> list[Publisher]:
    """Return publishers whose name contains term (case-insensitive).

    An empty or whitespace-only term matches everything. Input order is kept.
    """
    needle = term.strip().lower()
    if not needle:
        return list(publishers)
    return [p for p in publishers if needle in p.name.lower()]
