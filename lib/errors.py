"""Errors raised by the publisher dedup core.

ValidationError is raised before any write. NotFound and StoreError come from
the data store and record which merge step failed, so a caller can tell a
merge that changed nothing from one that moved publications but left the
source publisher behind.
"""

from __future__ import annotations

import enum


class MergeStep(enum.Enum):
    """Store operation a failure is attributed to."""

    READ = "read"
    REPOINT = "repoint"
    DELETE = "delete"
    RENAME = "rename"


class PublisherError(Exception):
    """Base class for publisher dedup errors."""


class ValidationError(PublisherError, ValueError):
    """Caller-supplied arguments violate a precondition."""


class StoreError(PublisherError):
    """The backing store rejected or failed a read or write.

    Attributes:
        step: Store operation that failed, if known.
        partial: True when publications were already repointed before the
            failure (the source publisher still exists but nothing references it).
        repointed: Number of publications moved before the failure.
    """

    def __init__(
        self,
        message: str,
        step: MergeStep | None = None,
        *,
        partial: bool = False,
        repointed: int = 0,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.partial = partial
        self.repointed = repointed

    def at_step(self, step: MergeStep, *, partial: bool = False, repointed: int = 0):
        """Record the merge step on this error and return it for re-raising."""
        self.step = step
        self.partial = partial
        self.repointed = repointed
        return self


class NotFound(StoreError, LookupError):
    """A referenced publisher id no longer exists."""

    def __init__(self, publisher_id: int, step: MergeStep | None = None) -> None:
        super().__init__(f"Publisher {publisher_id} does not exist", step)
        self.publisher_id = publisher_id
