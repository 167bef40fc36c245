"""Lookups of the master records the engine relies on but does not own."""
from typing import Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.core.errors import NotFoundError
from caretrack.models.user import User
from caretrack.models.task import Task
from caretrack.models.package import CarePackage, CarerPackageAssignment, PackageTaskAssignment


async def get_carer(db: AsyncSession, carer_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == carer_id, User.role == "carer", User.is_active.is_(True))
    )
    carer = result.scalar_one_or_none()
    if not carer:
        raise NotFoundError("Carer not found or inactive")
    return carer


async def get_task(db: AsyncSession, task_id: int) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id, Task.is_active.is_(True)))
    task = result.scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    return task


async def get_package(db: AsyncSession, package_id: int) -> CarePackage:
    result = await db.execute(
        select(CarePackage).where(CarePackage.id == package_id, CarePackage.is_active.is_(True))
    )
    package = result.scalar_one_or_none()
    if not package:
        raise NotFoundError("Care package not found")
    return package


async def linked_package_ids(db: AsyncSession, carer_id: int, task_id: int) -> Set[int]:
    """Packages where the carer is actively assigned and the task is actively linked."""
    result = await db.execute(
        select(CarerPackageAssignment.package_id)
        .join(
            PackageTaskAssignment,
            PackageTaskAssignment.package_id == CarerPackageAssignment.package_id,
        )
        .where(CarerPackageAssignment.carer_id == carer_id)
        .where(CarerPackageAssignment.is_active.is_(True))
        .where(PackageTaskAssignment.task_id == task_id)
        .where(PackageTaskAssignment.is_active.is_(True))
    )
    return set(result.scalars().all())
