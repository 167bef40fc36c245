"""Progress inheritance when a carer or a task joins a package.

The new package record starts from the carer's best count for the task
anywhere in the system, so reassignment never shows a regression. These
functions run inside the caller's transaction and do not commit.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.core.errors import CompetencyError
from caretrack.database import lock_pair
from caretrack.models.package import CarerPackageAssignment, PackageTaskAssignment
from caretrack.models.progress import TaskProgress
from caretrack.models.user import User
from caretrack.services.progress import completion_percentage, load_progress, upsert_progress
from caretrack.services.records import get_task
from caretrack.utils.clock import utcnow

logger = logging.getLogger(__name__)


async def best_completion_count(db: AsyncSession, carer_id: int, task_id: int) -> int:
    result = await db.execute(
        select(func.max(TaskProgress.completion_count))
        .where(TaskProgress.carer_id == carer_id)
        .where(TaskProgress.task_id == task_id)
    )
    return result.scalar_one() or 0


async def _seed(db: AsyncSession, carer_id: int, package_id: int, task_id: int, now: datetime) -> TaskProgress:
    task = await get_task(db, task_id)
    await lock_pair(db, carer_id, task_id)
    count = await best_completion_count(db, carer_id, task_id)
    percentage = completion_percentage(count, task.target_count)
    await upsert_progress(db, carer_id, package_id, task_id, count, percentage, now)
    return (await load_progress(db, carer_id, task_id, [package_id]))[0]


async def on_carer_linked_to_package(
    db: AsyncSession, carer_id: int, package_id: int, now: Optional[datetime] = None
) -> List[TaskProgress]:
    now = now or utcnow()
    result = await db.execute(
        select(PackageTaskAssignment.task_id)
        .where(PackageTaskAssignment.package_id == package_id)
        .where(PackageTaskAssignment.is_active.is_(True))
        .order_by(PackageTaskAssignment.task_id)
    )
    seeded = []
    for task_id in result.scalars().all():
        try:
            seeded.append(await _seed(db, carer_id, package_id, task_id, now))
        except CompetencyError as exc:
            logger.warning(
                "Skipping progress inheritance for carer %s, task %s in package %s: %s",
                carer_id, task_id, package_id, exc.message,
            )
    return seeded


async def on_task_linked_to_package(
    db: AsyncSession, task_id: int, package_id: int, now: Optional[datetime] = None
) -> List[TaskProgress]:
    now = now or utcnow()
    result = await db.execute(
        select(CarerPackageAssignment.carer_id)
        .join(User, User.id == CarerPackageAssignment.carer_id)
        .where(CarerPackageAssignment.package_id == package_id)
        .where(CarerPackageAssignment.is_active.is_(True))
        .where(User.is_active.is_(True))
        .order_by(CarerPackageAssignment.carer_id)
    )
    seeded = []
    for carer_id in result.scalars().all():
        try:
            seeded.append(await _seed(db, carer_id, package_id, task_id, now))
        except CompetencyError as exc:
            logger.warning(
                "Skipping progress inheritance for carer %s, task %s in package %s: %s",
                carer_id, task_id, package_id, exc.message,
            )
    return seeded
