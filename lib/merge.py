"""Merge duplicate publishers and rename them.

A merge runs three store calls in order, each awaited before the next:

  1. repoint every publication of the source publisher to the target
  2. delete the source publisher
  3. rename the target (only when a new name is given)

Nothing is retried or rolled back here. If step 2 fails the source publisher
is left behind with no publications; deleting it again finishes the merge.
If step 3 fails the duplicate is still gone, so the merge is reported as done
with the rename error attached instead of raised.

With atomic=True the steps run inside the store's transaction, and any
failure (rename included) undoes all of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lib.errors import MergeStep, StoreError, ValidationError
from lib.publisher_store import PublisherStore
from lib.publishers import Publisher

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of a merge that removed the source publisher."""

    source_id: int
    target_id: int
    repointed: int
    target: Publisher | None = None
    rename_error: StoreError | None = None

    @property
    def renamed(self) -> bool:
        return self.target is not None

    @property
    def complete(self) -> bool:
        """True when every requested step applied, rename included."""
        return self.rename_error is None


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Publisher name must not be empty")
    return cleaned


async def rename_publisher(store: PublisherStore, publisher_id: int, new_name: str) -> Publisher:
    """Set a publisher's display name. Publications are untouched.

    Raises:
        ValidationError: If new_name is blank (no write is made).
        NotFound: If the publisher does not exist.
        StoreError: If the store rejects the update.
    """
    name = _clean_name(new_name)
    try:
        publisher = await store.update_publisher_name(publisher_id, name)
    except StoreError as exc:
        logger.error("Renaming publisher %d failed: %s", publisher_id, exc)
        raise exc.at_step(MergeStep.RENAME)
    logger.info("Renamed publisher %d to %r", publisher_id, name)
    return publisher


async def merge_publishers(
    store: PublisherStore,
    source_id: int,
    target_id: int,
    new_name: str | None = None,
    *,
    atomic: bool = False,
) -> MergeResult:
    """Fold source_id into target_id and delete source_id.

    Args:
        store: Data store holding publishers and publications.
        source_id: Publisher to retire.
        target_id: Publisher to keep.
        new_name: Optional new name for the kept publisher.
        atomic: Run all steps in one store transaction.

    Returns:
        MergeResult; check ``complete`` to see whether the rename applied.

    Raises:
        ValidationError: source_id == target_id or new_name is blank. No
            store call is made.
        StoreError: Repoint or delete failed. ``partial`` is True when
            publications were already moved to the target.
    """
    if source_id == target_id:
        raise ValidationError(f"Cannot merge publisher {source_id} into itself")
    name = _clean_name(new_name) if new_name is not None else None

    if not atomic:
        return await _run_steps(store, source_id, target_id, name, keep_rename_error=True)

    try:
        async with store.transaction():
            return await _run_steps(store, source_id, target_id, name, keep_rename_error=False)
    except StoreError as exc:
        # The transaction rolled back whatever had been applied.
        exc.partial = False
        exc.repointed = 0
        raise


async def _run_steps(
    store: PublisherStore,
    source_id: int,
    target_id: int,
    name: str | None,
    *,
    keep_rename_error: bool,
) -> MergeResult:
    logger.info("Merging publisher %d into %d", source_id, target_id)

    try:
        repointed = await store.repoint_publications(source_id, target_id)
    except StoreError as exc:
        logger.error("Merge %d -> %d failed, no changes made: %s", source_id, target_id, exc)
        raise exc.at_step(MergeStep.REPOINT)
    logger.info("  moved %d publications to publisher %d", repointed, target_id)

    try:
        await store.delete_publisher(source_id)
    except StoreError as exc:
        logger.warning(
            "Merge %d -> %d incomplete: publications moved but publisher %d was not deleted: %s",
            source_id,
            target_id,
            source_id,
            exc,
        )
        raise exc.at_step(MergeStep.DELETE, partial=True, repointed=repointed)
    logger.info("  deleted publisher %d", source_id)

    result = MergeResult(source_id=source_id, target_id=target_id, repointed=repointed)
    if name is None:
        return result

    try:
        result.target = await store.update_publisher_name(target_id, name)
    except StoreError as exc:
        exc.at_step(MergeStep.RENAME, partial=True, repointed=repointed)
        if not keep_rename_error:
            raise
        logger.warning("Merged %d into %d but rename to %r failed: %s", source_id, target_id, name, exc)
        result.rename_error = exc
        return result
    logger.info("  renamed publisher %d to %r", target_id, name)
    return result
