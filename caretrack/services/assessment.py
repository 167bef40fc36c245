"""Feeds a submitted assessment's overall rating through the rating gate.

Every task the assessment covers gets the same rating, tagged with the
ASSESSMENT source and attributed to the assessor. The submission is one
transaction: if any covered task is refused, nothing is recorded.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.core.errors import NotFoundError
from caretrack.database import unit_of_work
from caretrack.models.assessment import Assessment, AssessmentResponse, AssessmentTaskCoverage
from caretrack.models.competency import CompetencyLevel, CompetencySource
from caretrack.services.audit import Actor, AuditEvent, AuditSink
from caretrack.services.competency import RatingOutcome, apply_rating, coerce_level
from caretrack.services.records import get_carer
from caretrack.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class AssessmentOutcome:
    response: AssessmentResponse
    outcomes: Dict[int, RatingOutcome] = field(default_factory=dict)  # keyed by task id


async def submit_assessment_outcome(
    db: AsyncSession,
    assessment_id: int,
    carer_id: int,
    overall_rating: Union[str, CompetencyLevel],
    assessor: Actor,
    audit: AuditSink,
    now: Optional[datetime] = None,
) -> AssessmentOutcome:
    now = now or utcnow()
    async with unit_of_work(db):
        result = await db.execute(
            select(Assessment).where(Assessment.id == assessment_id, Assessment.is_active.is_(True))
        )
        if not result.scalar_one_or_none():
            raise NotFoundError("Assessment not found or inactive")
        await get_carer(db, carer_id)
        level = coerce_level(overall_rating)

        response = AssessmentResponse(
            assessment_id=assessment_id,
            carer_id=carer_id,
            assessor_id=assessor.id,
            assessor_name=assessor.name,
            overall_rating=level.value,
            completed_at=now,
        )
        db.add(response)
        await db.flush()

        covered = await db.execute(
            select(AssessmentTaskCoverage.task_id)
            .where(AssessmentTaskCoverage.assessment_id == assessment_id)
            .order_by(AssessmentTaskCoverage.task_id)
        )
        outcome = AssessmentOutcome(response=response)
        for task_id in covered.scalars().all():
            outcome.outcomes[task_id] = await apply_rating(
                db,
                carer_id,
                task_id,
                level,
                CompetencySource.ASSESSMENT,
                assessor,
                audit,
                assessment_response_id=response.id,
                now=now,
            )

        await audit.emit(
            AuditEvent(
                action="SUBMIT_ASSESSMENT_RESPONSE",
                entity_type="AssessmentResponse",
                entity_id=str(response.id),
                actor=assessor,
                new_values={
                    "assessmentId": assessment_id,
                    "carerId": carer_id,
                    "overallRating": level.value,
                    "tasks": {str(tid): o.decision.value for tid, o in outcome.outcomes.items()},
                },
            )
        )
    logger.info("Assessment %s submitted for carer %s covering %d task(s)",
                assessment_id, carer_id, len(outcome.outcomes))
    return outcome


async def revise_assessment_outcome(
    db: AsyncSession,
    response_id: int,
    overall_rating: Union[str, CompetencyLevel],
    assessor: Actor,
    audit: AuditSink,
    now: Optional[datetime] = None,
) -> AssessmentOutcome:
    """Change a submitted response's overall rating.

    A changed rating goes back through the gate for every covered task;
    an unchanged one only re-attributes the response to the assessor.
    """
    now = now or utcnow()
    async with unit_of_work(db):
        result = await db.execute(
            select(AssessmentResponse)
            .where(AssessmentResponse.id == response_id)
            .execution_options(populate_existing=True)
        )
        response = result.scalar_one_or_none()
        if not response:
            raise NotFoundError("Assessment response not found")
        level = coerce_level(overall_rating)
        previous = response.overall_rating

        response.overall_rating = level.value
        response.assessor_id = assessor.id
        response.assessor_name = assessor.name
        await db.flush()

        outcome = AssessmentOutcome(response=response)
        if level.value != previous:
            covered = await db.execute(
                select(AssessmentTaskCoverage.task_id)
                .where(AssessmentTaskCoverage.assessment_id == response.assessment_id)
                .order_by(AssessmentTaskCoverage.task_id)
            )
            for task_id in covered.scalars().all():
                outcome.outcomes[task_id] = await apply_rating(
                    db,
                    response.carer_id,
                    task_id,
                    level,
                    CompetencySource.ASSESSMENT,
                    assessor,
                    audit,
                    assessment_response_id=response.id,
                    now=now,
                )

        await audit.emit(
            AuditEvent(
                action="UPDATE_ASSESSMENT_RESPONSE",
                entity_type="AssessmentResponse",
                entity_id=str(response.id),
                actor=assessor,
                old_values={"overallRating": previous},
                new_values={
                    "overallRating": level.value,
                    "tasks": {str(tid): o.decision.value for tid, o in outcome.outcomes.items()},
                },
            )
        )
    logger.info("Assessment response %s revised to %s", response_id, level.value)
    return outcome
