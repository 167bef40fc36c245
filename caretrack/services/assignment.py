"""Carer-to-package and task-to-package links.

Linking runs progress inheritance in the same transaction. Unlinking is
a soft deactivation so progress history stays attached to the package.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.core.errors import ConflictError, NotLinkedError
from caretrack.database import unit_of_work
from caretrack.models.package import CarerPackageAssignment, PackageTaskAssignment
from caretrack.models.progress import TaskProgress
from caretrack.services.audit import Actor, AuditEvent, AuditSink
from caretrack.services.inheritance import on_carer_linked_to_package, on_task_linked_to_package
from caretrack.services.records import get_carer, get_package, get_task
from caretrack.utils.clock import utcnow

logger = logging.getLogger(__name__)


async def _find_carer_link(db, carer_id, package_id) -> Optional[CarerPackageAssignment]:
    result = await db.execute(
        select(CarerPackageAssignment)
        .where(CarerPackageAssignment.carer_id == carer_id)
        .where(CarerPackageAssignment.package_id == package_id)
    )
    return result.scalar_one_or_none()


async def _find_task_link(db, task_id, package_id) -> Optional[PackageTaskAssignment]:
    result = await db.execute(
        select(PackageTaskAssignment)
        .where(PackageTaskAssignment.task_id == task_id)
        .where(PackageTaskAssignment.package_id == package_id)
    )
    return result.scalar_one_or_none()


def _inherited(records: List[TaskProgress], key: str) -> dict:
    return {str(getattr(r, key)): r.completion_count for r in records}


async def link_carer_to_package(
    db: AsyncSession, carer_id: int, package_id: int, actor: Actor, audit: AuditSink
) -> Tuple[CarerPackageAssignment, List[TaskProgress]]:
    now = utcnow()
    async with unit_of_work(db):
        await get_carer(db, carer_id)
        await get_package(db, package_id)

        assignment = await _find_carer_link(db, carer_id, package_id)
        if assignment and assignment.is_active:
            raise ConflictError("Carer is already assigned to this package")
        if assignment:
            # Reactivate existing assignment
            assignment.is_active = True
            assignment.assigned_at = now
        else:
            assignment = CarerPackageAssignment(carer_id=carer_id, package_id=package_id, assigned_at=now)
            db.add(assignment)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError("Carer is already assigned to this package") from exc

        seeded = await on_carer_linked_to_package(db, carer_id, package_id, now=now)
        await audit.emit(
            AuditEvent(
                action="ASSIGN_CARER_TO_PACKAGE",
                entity_type="CarerPackageAssignment",
                entity_id=str(assignment.id),
                actor=actor,
                new_values={
                    "carerId": carer_id,
                    "packageId": package_id,
                    "inheritedProgress": _inherited(seeded, "task_id"),
                },
            )
        )
    return assignment, seeded


async def link_task_to_package(
    db: AsyncSession, task_id: int, package_id: int, actor: Actor, audit: AuditSink
) -> Tuple[PackageTaskAssignment, List[TaskProgress]]:
    now = utcnow()
    async with unit_of_work(db):
        await get_task(db, task_id)
        await get_package(db, package_id)

        assignment = await _find_task_link(db, task_id, package_id)
        if assignment and assignment.is_active:
            raise ConflictError("Task is already assigned to this package")
        if assignment:
            assignment.is_active = True
            assignment.assigned_at = now
        else:
            assignment = PackageTaskAssignment(task_id=task_id, package_id=package_id, assigned_at=now)
            db.add(assignment)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError("Task is already assigned to this package") from exc

        seeded = await on_task_linked_to_package(db, task_id, package_id, now=now)
        await audit.emit(
            AuditEvent(
                action="ASSIGN_TASK_TO_PACKAGE",
                entity_type="PackageTaskAssignment",
                entity_id=str(assignment.id),
                actor=actor,
                new_values={
                    "taskId": task_id,
                    "packageId": package_id,
                    "inheritedProgress": _inherited(seeded, "carer_id"),
                },
            )
        )
    return assignment, seeded


async def unlink_carer_from_package(
    db: AsyncSession, carer_id: int, package_id: int, actor: Actor, audit: AuditSink
) -> CarerPackageAssignment:
    async with unit_of_work(db):
        assignment = await _find_carer_link(db, carer_id, package_id)
        if not assignment or not assignment.is_active:
            raise NotLinkedError("Assignment not found or already inactive")
        assignment.is_active = False
        await audit.emit(
            AuditEvent(
                action="REMOVE_CARER_FROM_PACKAGE",
                entity_type="CarerPackageAssignment",
                entity_id=str(assignment.id),
                actor=actor,
                old_values={"isActive": True},
                new_values={"isActive": False},
            )
        )
    logger.info("Carer %s unlinked from package %s; progress preserved", carer_id, package_id)
    return assignment


async def unlink_task_from_package(
    db: AsyncSession, task_id: int, package_id: int, actor: Actor, audit: AuditSink
) -> PackageTaskAssignment:
    async with unit_of_work(db):
        assignment = await _find_task_link(db, task_id, package_id)
        if not assignment or not assignment.is_active:
            raise NotLinkedError("Assignment not found or already inactive")
        assignment.is_active = False
        await audit.emit(
            AuditEvent(
                action="REMOVE_TASK_FROM_PACKAGE",
                entity_type="PackageTaskAssignment",
                entity_id=str(assignment.id),
                actor=actor,
                old_values={"isActive": True},
                new_values={"isActive": False},
            )
        )
    logger.info("Task %s unlinked from package %s; progress preserved", task_id, package_id)
    return assignment
