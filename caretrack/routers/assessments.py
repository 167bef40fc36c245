from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from caretrack.database import get_db
from caretrack.core.auth import get_current_admin
from caretrack.core.request import get_audit_sink
from caretrack.routers.competency import outcome_response
from caretrack.schemas.assessment import (
    AssessmentSubmission, AssessmentRevision, AssessmentOutcomeResponse, AssessmentResponseOut
)
from caretrack.services.audit import Actor
from caretrack.services.assessment import revise_assessment_outcome, submit_assessment_outcome

router = APIRouter(prefix="/assessments", tags=["assessments"])


@router.post("/{assessment_id}/responses", response_model=AssessmentOutcomeResponse,
             status_code=status.HTTP_201_CREATED)
async def submit_assessment_response(
    assessment_id: int,
    submission: AssessmentSubmission,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    result = await submit_assessment_outcome(
        db, assessment_id, submission.carer_id, submission.overall_rating, Actor.from_user(admin), audit
    )
    return AssessmentOutcomeResponse(
        response=AssessmentResponseOut.model_validate(result.response),
        tasks={task_id: outcome_response(o) for task_id, o in result.outcomes.items()}
    )


@router.put("/responses/{response_id}", response_model=AssessmentOutcomeResponse)
async def update_assessment_response(
    response_id: int,
    revision: AssessmentRevision,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    result = await revise_assessment_outcome(
        db, response_id, revision.overall_rating, Actor.from_user(admin), audit
    )
    return AssessmentOutcomeResponse(
        response=AssessmentResponseOut.model_validate(result.response),
        tasks={task_id: outcome_response(o) for task_id, o in result.outcomes.items()}
    )
