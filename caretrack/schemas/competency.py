from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from caretrack.models.competency import CompetencyLevel, CompetencySource

class RatingCreate(BaseModel):
    carer_id: int
    task_id: int
    level: CompetencyLevel
    source: CompetencySource = CompetencySource.MANUAL
    notes: Optional[str] = Field(None, max_length=2000)
    skip_confirmation: bool = False

class CompetencyRatingResponse(BaseModel):
    id: int
    carer_id: int
    task_id: int
    level: CompetencyLevel
    source: CompetencySource
    set_by_admin_id: Optional[int]
    set_by_admin_name: Optional[str]
    set_at: datetime
    notes: Optional[str]

    model_config = {"from_attributes": True}

class ConfirmationResponse(BaseModel):
    id: int
    carer_id: int
    task_id: int
    new_level: CompetencyLevel
    source: CompetencySource
    proposed_by_id: Optional[int]
    proposed_by_name: Optional[str]
    notes: Optional[str]
    status: str  # PENDING, CONFIRMED, REJECTED, EXPIRED
    created_at: datetime
    expires_at: datetime
    confirmed_at: Optional[datetime]
    confirmed: Optional[bool]

    model_config = {"from_attributes": True}

class ConfirmationResolve(BaseModel):
    confirmed: bool

class RatingOutcomeResponse(BaseModel):
    decision: str  # reset, pending_confirmation, applied
    carer_id: int
    task_id: int
    message: str
    rating: Optional[CompetencyRatingResponse] = None
    confirmation: Optional[ConfirmationResponse] = None
    progress_records_reset: int = 0
