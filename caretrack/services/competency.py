"""Competency ratings and the confirmation gate in front of them.

A rating is global per (carer, task). The first rating a carer receives
for a task is a compliance event: it is queued as a confirmation request
and only becomes a rating once the carer accepts it. Corrections to an
existing rating, explicit skips, and resets to NOT_ASSESSED apply
immediately.

    NoRating --set--> Pending --confirm--> Rated
                         |----reject---> discarded
                         '----timeout--> expired (inert)
    NoRating/Rated --set(skip) or Rated --set--> Rated
    any --set(NOT_ASSESSED)--> NoRating, progress zeroed everywhere
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.config import settings
from caretrack.core.errors import (
    AlreadyResolvedError,
    ConfirmationExpiredError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from caretrack.database import dialect_insert, lock_pair, unit_of_work
from caretrack.models.competency import (
    CompetencyConfirmation,
    CompetencyLevel,
    CompetencyRating,
    CompetencySource,
    ConfirmationStatus,
)
from caretrack.models.progress import TaskProgress
from caretrack.services.audit import Actor, AuditEvent, AuditSink
from caretrack.services.records import get_carer, get_task
from caretrack.utils.clock import utcnow

logger = logging.getLogger(__name__)


class RatingDecision(str, enum.Enum):
    RESET = "reset"
    PENDING_CONFIRMATION = "pending_confirmation"
    APPLIED = "applied"


@dataclass
class RatingOutcome:
    decision: RatingDecision
    carer_id: int
    task_id: int
    rating: Optional[CompetencyRating] = None
    confirmation: Optional[CompetencyConfirmation] = None
    progress_records_reset: int = 0


def coerce_level(level: Union[str, CompetencyLevel]) -> CompetencyLevel:
    try:
        return CompetencyLevel(level)
    except ValueError:
        raise InvalidInputError(f"Invalid competency level: {level}")


def coerce_source(source: Union[str, CompetencySource]) -> CompetencySource:
    try:
        return CompetencySource(source)
    except ValueError:
        raise InvalidInputError(f"Invalid competency source: {source}")


async def get_rating(db: AsyncSession, carer_id: int, task_id: int) -> Optional[CompetencyRating]:
    result = await db.execute(
        select(CompetencyRating)
        .where(CompetencyRating.carer_id == carer_id, CompetencyRating.task_id == task_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _upsert_rating(
    db: AsyncSession,
    carer_id: int,
    task_id: int,
    level: CompetencyLevel,
    source: CompetencySource,
    set_by: Actor,
    notes: Optional[str],
    assessment_response_id: Optional[int],
    now: datetime,
) -> CompetencyRating:
    stmt = dialect_insert(db, CompetencyRating).values(
        carer_id=carer_id,
        task_id=task_id,
        level=level.value,
        source=source.value,
        set_by_admin_id=set_by.id,
        set_by_admin_name=set_by.name,
        set_at=now,
        notes=notes,
        assessment_response_id=assessment_response_id,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["carer_id", "task_id"],
        set_={
            "level": stmt.excluded.level,
            "source": stmt.excluded.source,
            "set_by_admin_id": stmt.excluded.set_by_admin_id,
            "set_by_admin_name": stmt.excluded.set_by_admin_name,
            "set_at": stmt.excluded.set_at,
            "notes": stmt.excluded.notes,
            "assessment_response_id": stmt.excluded.assessment_response_id,
        },
    )
    await db.execute(stmt)
    return await get_rating(db, carer_id, task_id)


async def _expire_stale_requests(db: AsyncSession, carer_id: int, task_id: int, now: datetime) -> None:
    # Lapsed requests give up the one-pending-per-pair slot.
    await db.execute(
        update(CompetencyConfirmation)
        .where(CompetencyConfirmation.carer_id == carer_id)
        .where(CompetencyConfirmation.task_id == task_id)
        .where(CompetencyConfirmation.status == ConfirmationStatus.PENDING.value)
        .where(CompetencyConfirmation.expires_at < now)
        .values(status=ConfirmationStatus.EXPIRED.value)
        .execution_options(synchronize_session="fetch")
    )


async def _reset(db, carer_id, task_id, existing, proposer, audit, now) -> RatingOutcome:
    old_level = existing.level if existing else None
    await db.execute(
        delete(CompetencyRating)
        .where(CompetencyRating.carer_id == carer_id, CompetencyRating.task_id == task_id)
        .execution_options(synchronize_session="fetch")
    )
    await db.execute(
        delete(CompetencyConfirmation)
        .where(CompetencyConfirmation.carer_id == carer_id)
        .where(CompetencyConfirmation.task_id == task_id)
        .where(CompetencyConfirmation.status == ConfirmationStatus.PENDING.value)
        .execution_options(synchronize_session="fetch")
    )
    zeroed = (await db.execute(
        select(func.count(TaskProgress.id))
        .where(TaskProgress.carer_id == carer_id, TaskProgress.task_id == task_id)
    )).scalar_one()
    await db.execute(
        update(TaskProgress)
        .where(TaskProgress.carer_id == carer_id, TaskProgress.task_id == task_id)
        .values(completion_count=0, completion_percentage=0, last_updated=now)
        .execution_options(synchronize_session="fetch")
    )
    await audit.emit(
        AuditEvent(
            action="RESET_COMPETENCY_AND_PROGRESS",
            entity_type="CompetencyRating",
            entity_id=f"{carer_id}-{task_id}",
            actor=proposer,
            old_values={"level": old_level},
            new_values={
                "level": CompetencyLevel.NOT_ASSESSED.value,
                "progressReset": True,
                "progressRecordsReset": zeroed,
            },
        )
    )
    logger.info("Competency for carer %s task %s reset; %s progress record(s) zeroed",
                carer_id, task_id, zeroed)
    return RatingOutcome(RatingDecision.RESET, carer_id, task_id, progress_records_reset=zeroed)


async def _request_confirmation(
    db, carer_id, task_id, level, source, proposer, notes, assessment_response_id, audit, now
) -> RatingOutcome:
    await _expire_stale_requests(db, carer_id, task_id, now)
    outstanding = await db.execute(
        select(CompetencyConfirmation.id)
        .where(CompetencyConfirmation.carer_id == carer_id)
        .where(CompetencyConfirmation.task_id == task_id)
        .where(CompetencyConfirmation.status == ConfirmationStatus.PENDING.value)
    )
    if outstanding.first() is not None:
        raise ConflictError("A competency rating for this task is already awaiting the carer's confirmation")

    confirmation = CompetencyConfirmation(
        carer_id=carer_id,
        task_id=task_id,
        new_level=level.value,
        source=source.value,
        assessment_response_id=assessment_response_id,
        proposed_by_id=proposer.id,
        proposed_by_name=proposer.name,
        notes=notes,
        status=ConfirmationStatus.PENDING.value,
        created_at=now,
        expires_at=now + timedelta(days=settings.CONFIRMATION_EXPIRY_DAYS),
    )
    db.add(confirmation)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Another request won the race for the pending slot
        raise ConflictError(
            "A competency rating for this task is already awaiting the carer's confirmation"
        ) from exc

    await audit.emit(
        AuditEvent(
            action="CREATE_COMPETENCY_CONFIRMATION",
            entity_type="CompetencyConfirmation",
            entity_id=str(confirmation.id),
            actor=proposer,
            new_values={
                "carerId": carer_id,
                "taskId": task_id,
                "level": level.value,
                "source": source.value,
                "expiresAt": confirmation.expires_at.isoformat(),
            },
        )
    )
    logger.info("Competency %s for carer %s task %s awaits confirmation (request %s)",
                level.value, carer_id, task_id, confirmation.id)
    return RatingOutcome(RatingDecision.PENDING_CONFIRMATION, carer_id, task_id, confirmation=confirmation)


async def apply_rating(
    db: AsyncSession,
    carer_id: int,
    task_id: int,
    level: Union[str, CompetencyLevel],
    source: Union[str, CompetencySource],
    proposer: Actor,
    audit: AuditSink,
    notes: Optional[str] = None,
    skip_confirmation: bool = False,
    assessment_response_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RatingOutcome:
    """Run one rating through the gate inside the caller's transaction."""
    level = coerce_level(level)
    source = coerce_source(source)
    now = now or utcnow()
    await get_carer(db, carer_id)
    await get_task(db, task_id)

    await lock_pair(db, carer_id, task_id)
    existing = await get_rating(db, carer_id, task_id)

    if level is CompetencyLevel.NOT_ASSESSED:
        return await _reset(db, carer_id, task_id, existing, proposer, audit, now)

    if existing is None and not skip_confirmation:
        return await _request_confirmation(
            db, carer_id, task_id, level, source, proposer, notes, assessment_response_id, audit, now
        )

    old_values = {"level": existing.level, "source": existing.source} if existing else None
    rating = await _upsert_rating(
        db, carer_id, task_id, level, source, proposer, notes, assessment_response_id, now
    )
    action = "SET_MANUAL_COMPETENCY" if source is CompetencySource.MANUAL else "SET_ASSESSMENT_COMPETENCY"
    await audit.emit(
        AuditEvent(
            action=action,
            entity_type="CompetencyRating",
            entity_id=str(rating.id),
            actor=proposer,
            old_values=old_values,
            new_values={"level": level.value, "source": source.value, "notes": notes},
        )
    )
    return RatingOutcome(RatingDecision.APPLIED, carer_id, task_id, rating=rating)


async def set_rating(
    db: AsyncSession,
    carer_id: int,
    task_id: int,
    level: Union[str, CompetencyLevel],
    source: Union[str, CompetencySource],
    proposer: Actor,
    audit: AuditSink,
    notes: Optional[str] = None,
    skip_confirmation: bool = False,
    now: Optional[datetime] = None,
) -> RatingOutcome:
    async with unit_of_work(db):
        return await apply_rating(
            db, carer_id, task_id, level, source, proposer, audit,
            notes=notes, skip_confirmation=skip_confirmation, now=now,
        )


async def resolve_confirmation(
    db: AsyncSession,
    confirmation_id: int,
    confirmed: bool,
    actor: Actor,
    audit: AuditSink,
    now: Optional[datetime] = None,
) -> CompetencyConfirmation:
    """Accept or reject a pending request on behalf of the carer it concerns.

    Expired requests are refused and left exactly as they were.
    """
    now = now or utcnow()
    async with unit_of_work(db):
        confirmation = await db.get(CompetencyConfirmation, confirmation_id)
        if confirmation is None or confirmation.carer_id != actor.id:
            raise NotFoundError("Competency confirmation not found")

        # Pair lock before the row lock, in the same order as apply_rating
        await lock_pair(db, confirmation.carer_id, confirmation.task_id)
        result = await db.execute(
            select(CompetencyConfirmation)
            .where(CompetencyConfirmation.id == confirmation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        confirmation = result.scalar_one_or_none()
        if confirmation is None:
            raise NotFoundError("Competency confirmation not found")

        state = confirmation.state_at(now)
        if state in (ConfirmationStatus.CONFIRMED, ConfirmationStatus.REJECTED):
            raise AlreadyResolvedError("This competency confirmation has already been processed")
        if state is ConfirmationStatus.EXPIRED:
            raise ConfirmationExpiredError(
                "This competency confirmation has expired; the rating must be submitted again"
            )

        if confirmed:
            await _upsert_rating(
                db,
                confirmation.carer_id,
                confirmation.task_id,
                CompetencyLevel(confirmation.new_level),
                CompetencySource(confirmation.source),
                Actor(id=confirmation.proposed_by_id, name=confirmation.proposed_by_name),
                confirmation.notes,
                confirmation.assessment_response_id,
                now,
            )

        confirmation.status = (
            ConfirmationStatus.CONFIRMED.value if confirmed else ConfirmationStatus.REJECTED.value
        )
        confirmation.confirmed = confirmed
        confirmation.confirmed_at = now
        await db.flush()

        await audit.emit(
            AuditEvent(
                action="CONFIRM_COMPETENCY" if confirmed else "REJECT_COMPETENCY",
                entity_type="CompetencyConfirmation",
                entity_id=str(confirmation.id),
                actor=actor,
                old_values={"status": ConfirmationStatus.PENDING.value},
                new_values={
                    "status": confirmation.status,
                    "level": confirmation.new_level,
                    "taskId": confirmation.task_id,
                },
            )
        )
    logger.info("Carer %s %s competency request %s",
                actor.id, "confirmed" if confirmed else "rejected", confirmation_id)
    return confirmation


async def list_pending_confirmations(
    db: AsyncSession, carer_id: Optional[int] = None, now: Optional[datetime] = None
) -> List[CompetencyConfirmation]:
    now = now or utcnow()
    query = (
        select(CompetencyConfirmation)
        .where(CompetencyConfirmation.status == ConfirmationStatus.PENDING.value)
        .where(CompetencyConfirmation.expires_at >= now)
    )
    if carer_id is not None:
        query = query.where(CompetencyConfirmation.carer_id == carer_id)
    result = await db.execute(query.order_by(CompetencyConfirmation.created_at.desc()))
    return list(result.scalars().all())
