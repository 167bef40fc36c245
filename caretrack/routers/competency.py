from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from caretrack.database import get_db
from caretrack.core.auth import get_current_admin
from caretrack.core.request import get_audit_sink
from caretrack.schemas.competency import (
    RatingCreate, RatingOutcomeResponse, CompetencyRatingResponse, ConfirmationResponse
)
from caretrack.services.audit import Actor
from caretrack.services.competency import RatingDecision, RatingOutcome, set_rating

router = APIRouter(prefix="/competencies", tags=["competencies"])

MESSAGES = {
    RatingDecision.RESET: "Competency reset and task progress cleared successfully",
    RatingDecision.PENDING_CONFIRMATION: "Competency rating sent to the carer for confirmation",
    RatingDecision.APPLIED: "Competency rating set successfully",
}


def outcome_response(outcome: RatingOutcome) -> RatingOutcomeResponse:
    return RatingOutcomeResponse(
        decision=outcome.decision.value,
        carer_id=outcome.carer_id,
        task_id=outcome.task_id,
        message=MESSAGES[outcome.decision],
        rating=CompetencyRatingResponse.model_validate(outcome.rating) if outcome.rating else None,
        confirmation=(
            ConfirmationResponse.model_validate(outcome.confirmation) if outcome.confirmation else None
        ),
        progress_records_reset=outcome.progress_records_reset,
    )


@router.post("", response_model=RatingOutcomeResponse)
async def set_competency(
    rating_in: RatingCreate,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    outcome = await set_rating(
        db,
        rating_in.carer_id,
        rating_in.task_id,
        rating_in.level,
        rating_in.source,
        Actor.from_user(admin),
        audit,
        notes=rating_in.notes,
        skip_confirmation=rating_in.skip_confirmation,
    )
    return outcome_response(outcome)
