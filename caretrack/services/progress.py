"""Task progress: percentage arithmetic and cross-package synchronization.

Progress is stored per (carer, package, task) but behaves as a property
of the carer: an update in one package is written to every package where
the carer and the task are both actively linked.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.core.errors import InvalidInputError, NotLinkedError
from caretrack.database import dialect_insert, lock_pair, unit_of_work
from caretrack.models.progress import TaskProgress
from caretrack.services.audit import Actor, AuditEvent, AuditSink
from caretrack.services.records import get_carer, get_task, linked_package_ids
from caretrack.utils.clock import utcnow

logger = logging.getLogger(__name__)

# Largest value the INTEGER count column holds
MAX_COMPLETION_COUNT = 2_147_483_647


def completion_percentage(completion_count: int, target_count: int) -> int:
    """min(100, round(count / target * 100)), halves rounded up."""
    if target_count <= 0:
        raise InvalidInputError("Task target count must be positive")
    return min(100, (completion_count * 200 + target_count) // (2 * target_count))


async def upsert_progress(
    db: AsyncSession,
    carer_id: int,
    package_id: int,
    task_id: int,
    completion_count: int,
    percentage: int,
    now: datetime,
) -> None:
    """Insert or overwrite one progress row in a single statement."""
    stmt = dialect_insert(db, TaskProgress).values(
        carer_id=carer_id,
        package_id=package_id,
        task_id=task_id,
        completion_count=completion_count,
        completion_percentage=percentage,
        last_updated=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["carer_id", "package_id", "task_id"],
        set_={
            "completion_count": stmt.excluded.completion_count,
            "completion_percentage": stmt.excluded.completion_percentage,
            "last_updated": stmt.excluded.last_updated,
        },
    )
    await db.execute(stmt)


async def load_progress(
    db: AsyncSession, carer_id: int, task_id: int, package_ids: Optional[Iterable[int]] = None
) -> List[TaskProgress]:
    query = select(TaskProgress).where(
        TaskProgress.carer_id == carer_id, TaskProgress.task_id == task_id
    )
    if package_ids is not None:
        query = query.where(TaskProgress.package_id.in_(list(package_ids)))
    result = await db.execute(
        query.order_by(TaskProgress.package_id).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _snapshot(record: Optional[TaskProgress]) -> Optional[dict]:
    if record is None:
        return None
    return {
        "completionCount": record.completion_count,
        "completionPercentage": record.completion_percentage,
    }


async def _validate_target(db: AsyncSession, carer_id: int, package_id: int, task_id: int, completion_count: int = 0):
    await get_carer(db, carer_id)
    task = await get_task(db, task_id)
    package_ids = await linked_package_ids(db, carer_id, task_id)
    if package_id not in package_ids:
        raise NotLinkedError("Carer is not assigned to this package, or the task is not part of it")
    if completion_count < 0:
        raise InvalidInputError("Completion count cannot be negative")
    if completion_count > MAX_COMPLETION_COUNT:
        raise InvalidInputError(f"Completion count cannot exceed {MAX_COMPLETION_COUNT}")
    return task, package_ids


async def update_progress(
    db: AsyncSession,
    carer_id: int,
    package_id: int,
    task_id: int,
    completion_count: int,
    actor: Actor,
    audit: AuditSink,
    now: Optional[datetime] = None,
) -> List[TaskProgress]:
    """Set the carer's count for a task and synchronize it across packages.

    Returns every progress row that was written, one per actively linked
    package. The whole fan-out commits together or not at all.
    """
    now = now or utcnow()
    async with unit_of_work(db):
        task, package_ids = await _validate_target(db, carer_id, package_id, task_id, completion_count)

        await lock_pair(db, carer_id, task_id)
        existing = await load_progress(db, carer_id, task_id, [package_id])
        before = _snapshot(existing[0] if existing else None)

        percentage = completion_percentage(completion_count, task.target_count)
        for pid in sorted(package_ids):
            await upsert_progress(db, carer_id, pid, task_id, completion_count, percentage, now)

        records = await load_progress(db, carer_id, task_id, package_ids)
        target = next(r for r in records if r.package_id == package_id)
        await audit.emit(
            AuditEvent(
                action="UPDATE_TASK_PROGRESS",
                entity_type="TaskProgress",
                entity_id=str(target.id),
                actor=actor,
                old_values=before,
                new_values={
                    "completionCount": completion_count,
                    "completionPercentage": percentage,
                    "synchronizedPackageIds": sorted(package_ids),
                },
            )
        )
    logger.info(
        "Progress for carer %s task %s set to %s (%s%%) across %d package(s)",
        carer_id, task_id, completion_count, percentage, len(records),
    )
    return records


async def reset_progress(
    db: AsyncSession,
    carer_id: int,
    package_id: int,
    task_id: int,
    actor: Actor,
    audit: AuditSink,
    now: Optional[datetime] = None,
) -> TaskProgress:
    """Zero a single package's record. Other packages are left alone."""
    now = now or utcnow()
    async with unit_of_work(db):
        await _validate_target(db, carer_id, package_id, task_id)
        await lock_pair(db, carer_id, task_id)
        existing = await load_progress(db, carer_id, task_id, [package_id])
        before = _snapshot(existing[0] if existing else None)

        await upsert_progress(db, carer_id, package_id, task_id, 0, 0, now)
        record = (await load_progress(db, carer_id, task_id, [package_id]))[0]
        await audit.emit(
            AuditEvent(
                action="RESET_TASK_PROGRESS",
                entity_type="TaskProgress",
                entity_id=str(record.id),
                actor=actor,
                old_values=before,
                new_values={"completionCount": 0, "completionPercentage": 0},
            )
        )
    return record
