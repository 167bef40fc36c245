from pydantic import BaseModel
from datetime import datetime
from typing import Dict, Optional
from caretrack.models.competency import CompetencyLevel
from caretrack.schemas.competency import RatingOutcomeResponse

class AssessmentSubmission(BaseModel):
    carer_id: int
    overall_rating: CompetencyLevel

class AssessmentRevision(BaseModel):
    overall_rating: CompetencyLevel

class AssessmentResponseOut(BaseModel):
    id: int
    assessment_id: int
    carer_id: int
    assessor_id: Optional[int]
    assessor_name: Optional[str]
    overall_rating: CompetencyLevel
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}

class AssessmentOutcomeResponse(BaseModel):
    response: AssessmentResponseOut
    tasks: Dict[int, RatingOutcomeResponse]
