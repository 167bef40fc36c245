from collections import defaultdict
from typing import List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.config import settings
from caretrack.models.assessment import Assessment, AssessmentTaskCoverage
from caretrack.models.competency import CompetencyLevel, CompetencyRating
from caretrack.models.package import CarePackage, CarerPackageAssignment, PackageTaskAssignment
from caretrack.models.progress import TaskProgress
from caretrack.models.task import Task
from caretrack.models.user import User
from caretrack.schemas.progress import (
    CarerProgressDetail,
    CarerProgressSummary,
    CarerReadyForAssessment,
    CarerSummary,
    CompetencyRatingDetail,
    PackageProgress,
    ReadyTask,
    TaskProgressDetail,
)
from caretrack.services.records import get_carer


def average_percentage(values: List[int]) -> int:
    if not values:
        return 0
    return (sum(values) * 2 + len(values)) // (2 * len(values))


async def carer_progress_detail(db: AsyncSession, carer_id: int) -> CarerProgressDetail:
    """Per-package view of a carer's tasks with their global competency."""
    carer = await get_carer(db, carer_id)

    assignments = (await db.execute(
        select(CarerPackageAssignment, CarePackage)
        .join(CarePackage, CarePackage.id == CarerPackageAssignment.package_id)
        .where(CarerPackageAssignment.carer_id == carer_id)
        .where(CarerPackageAssignment.is_active.is_(True))
        .order_by(CarerPackageAssignment.assigned_at.desc(), CarePackage.id)
    )).all()
    package_ids = [package.id for _, package in assignments]

    tasks_by_package = defaultdict(list)
    if package_ids:
        rows = await db.execute(
            select(PackageTaskAssignment.package_id, Task)
            .join(Task, Task.id == PackageTaskAssignment.task_id)
            .where(PackageTaskAssignment.package_id.in_(package_ids))
            .where(PackageTaskAssignment.is_active.is_(True))
            .where(Task.is_active.is_(True))
            .order_by(Task.name)
        )
        for package_id, task in rows.all():
            tasks_by_package[package_id].append(task)

    progress_rows = await db.execute(select(TaskProgress).where(TaskProgress.carer_id == carer_id))
    progress = {(p.package_id, p.task_id): p for p in progress_rows.scalars()}

    rating_rows = (await db.execute(
        select(CompetencyRating, Task.name)
        .join(Task, Task.id == CompetencyRating.task_id)
        .where(CompetencyRating.carer_id == carer_id)
        .order_by(CompetencyRating.set_at.desc())
    )).all()
    ratings = {rating.task_id: rating for rating, _ in rating_rows}

    task_ids = {task.id for tasks in tasks_by_package.values() for task in tasks}
    coverage = {}
    if task_ids:
        rows = await db.execute(
            select(AssessmentTaskCoverage.task_id, Assessment)
            .join(Assessment, Assessment.id == AssessmentTaskCoverage.assessment_id)
            .where(AssessmentTaskCoverage.task_id.in_(task_ids))
            .where(Assessment.is_active.is_(True))
        )
        for task_id, assessment in rows.all():
            coverage.setdefault(task_id, assessment)

    packages = []
    for assignment, package in assignments:
        details = []
        for task in tasks_by_package[package.id]:
            record = progress.get((package.id, task.id))
            rating = ratings.get(task.id)
            assessment = coverage.get(task.id)
            percentage = record.completion_percentage if record else 0
            details.append(
                TaskProgressDetail(
                    task_id=task.id,
                    task_name=task.name,
                    target_count=task.target_count,
                    completion_count=record.completion_count if record else 0,
                    completion_percentage=percentage,
                    competency_level=rating.level if rating else CompetencyLevel.NOT_ASSESSED.value,
                    competency_source=rating.source if rating else "NONE",
                    last_updated=record.last_updated if record else assignment.assigned_at,
                    can_take_assessment=(
                        percentage >= settings.ASSESSMENT_READY_THRESHOLD
                        and rating is None
                        and assessment is not None
                    ),
                    assessment_id=assessment.id if assessment else None,
                    assessment_name=assessment.name if assessment else None,
                )
            )
        packages.append(
            PackageProgress(
                package_id=package.id,
                package_name=package.name,
                package_postcode=package.postcode,
                assigned_at=assignment.assigned_at,
                tasks=details,
                average_progress=average_percentage([d.completion_percentage for d in details]),
            )
        )

    return CarerProgressDetail(
        carer=CarerSummary.model_validate(carer),
        packages=packages,
        competency_ratings=[
            CompetencyRatingDetail(
                task_id=rating.task_id,
                task_name=task_name,
                level=rating.level,
                source=rating.source,
                set_at=rating.set_at,
                set_by_admin_name=rating.set_by_admin_name,
                notes=rating.notes,
            )
            for rating, task_name in rating_rows
        ],
    )


async def carers_ready_for_assessment(
    db: AsyncSession, threshold: Optional[int] = None
) -> List[CarerReadyForAssessment]:
    """Active carers who have reached the threshold on a task they hold no rating for."""
    threshold = settings.ASSESSMENT_READY_THRESHOLD if threshold is None else threshold
    rows = await db.execute(
        select(User, TaskProgress, Task, CarePackage)
        .join(TaskProgress, TaskProgress.carer_id == User.id)
        .join(Task, Task.id == TaskProgress.task_id)
        .join(CarePackage, CarePackage.id == TaskProgress.package_id)
        .join(
            CarerPackageAssignment,
            and_(
                CarerPackageAssignment.carer_id == TaskProgress.carer_id,
                CarerPackageAssignment.package_id == TaskProgress.package_id,
                CarerPackageAssignment.is_active.is_(True),
            ),
        )
        .join(
            PackageTaskAssignment,
            and_(
                PackageTaskAssignment.package_id == TaskProgress.package_id,
                PackageTaskAssignment.task_id == TaskProgress.task_id,
                PackageTaskAssignment.is_active.is_(True),
            ),
        )
        .outerjoin(
            CompetencyRating,
            and_(
                CompetencyRating.carer_id == TaskProgress.carer_id,
                CompetencyRating.task_id == TaskProgress.task_id,
            ),
        )
        .where(User.role == "carer", User.is_active.is_(True), Task.is_active.is_(True))
        .where(TaskProgress.completion_percentage >= threshold)
        .where(CompetencyRating.id.is_(None))
        .order_by(User.name, User.id, Task.name, CarePackage.name)
    )

    carers = {}
    seen = set()
    for user, record, task, package in rows.all():
        # Synced records repeat per package; list each task once
        if (user.id, task.id) in seen:
            continue
        seen.add((user.id, task.id))
        entry = carers.get(user.id)
        if entry is None:
            entry = carers[user.id] = CarerReadyForAssessment(
                id=user.id, name=user.name, email=user.email, ready_tasks=[]
            )
        entry.ready_tasks.append(
            ReadyTask(
                task_id=task.id,
                task_name=task.name,
                package_id=package.id,
                package_name=package.name,
                completion_percentage=record.completion_percentage,
                completed_at=record.last_updated,
            )
        )
    return list(carers.values())


async def carer_progress_summaries(
    db: AsyncSession, search: Optional[str] = None
) -> List[CarerProgressSummary]:
    """One line per active carer for the admin progress list."""
    query = select(User).where(User.role == "carer", User.is_active.is_(True))
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    carers = (await db.execute(query.order_by(User.name, User.id))).scalars().all()
    if not carers:
        return []
    carer_ids = [carer.id for carer in carers]

    package_counts = dict((await db.execute(
        select(CarerPackageAssignment.carer_id, func.count(CarerPackageAssignment.id))
        .where(CarerPackageAssignment.carer_id.in_(carer_ids))
        .where(CarerPackageAssignment.is_active.is_(True))
        .group_by(CarerPackageAssignment.carer_id)
    )).all())

    progress = defaultdict(list)
    rows = await db.execute(
        select(
            TaskProgress.carer_id,
            TaskProgress.task_id,
            TaskProgress.completion_percentage,
            TaskProgress.last_updated,
        ).where(TaskProgress.carer_id.in_(carer_ids))
    )
    for carer_id, task_id, percentage, last_updated in rows.all():
        progress[carer_id].append((task_id, percentage, last_updated))

    rated_rows = await db.execute(
        select(CompetencyRating.carer_id, CompetencyRating.task_id)
        .where(CompetencyRating.carer_id.in_(carer_ids))
    )
    rated = {(carer_id, task_id) for carer_id, task_id in rated_rows.all()}

    summaries = []
    for carer in carers:
        records = progress[carer.id]
        summaries.append(
            CarerProgressSummary(
                id=carer.id,
                name=carer.name,
                email=carer.email,
                is_active=carer.is_active,
                package_count=package_counts.get(carer.id, 0),
                overall_progress=average_percentage([percentage for _, percentage, _ in records]),
                needs_assessment=any(
                    percentage >= settings.ASSESSMENT_SUGGESTED_THRESHOLD and (carer.id, task_id) not in rated
                    for task_id, percentage, _ in records
                ),
                last_activity=max((updated for _, _, updated in records), default=None),
            )
        )
    return summaries
