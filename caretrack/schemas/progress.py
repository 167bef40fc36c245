from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import List, Optional

class ProgressUpdate(BaseModel):
    carer_id: int
    package_id: int
    task_id: int
    completion_count: int

class ProgressReset(BaseModel):
    carer_id: int
    package_id: int
    task_id: int

class TaskProgressResponse(BaseModel):
    id: int
    carer_id: int
    package_id: int
    task_id: int
    completion_count: int
    completion_percentage: int = Field(..., ge=0, le=100)
    last_updated: datetime

    model_config = {"from_attributes": True}

class ProgressSyncResponse(BaseModel):
    carer_id: int
    task_id: int
    completion_count: int
    completion_percentage: int
    records: List[TaskProgressResponse]


class TaskProgressDetail(BaseModel):
    task_id: int
    task_name: str
    target_count: int
    completion_count: int
    completion_percentage: int
    competency_level: str
    competency_source: str  # ASSESSMENT, MANUAL, NONE
    last_updated: Optional[datetime]
    can_take_assessment: bool
    assessment_id: Optional[int] = None
    assessment_name: Optional[str] = None

class PackageProgress(BaseModel):
    package_id: int
    package_name: str
    package_postcode: Optional[str]
    assigned_at: Optional[datetime]
    tasks: List[TaskProgressDetail]
    average_progress: int

class CompetencyRatingDetail(BaseModel):
    task_id: int
    task_name: str
    level: str
    source: str
    set_at: datetime
    set_by_admin_name: Optional[str] = None
    notes: Optional[str] = None

class CarerSummary(BaseModel):
    id: int
    name: Optional[str]
    email: EmailStr
    is_active: bool

    model_config = {"from_attributes": True}

class CarerProgressDetail(BaseModel):
    carer: CarerSummary
    packages: List[PackageProgress]
    competency_ratings: List[CompetencyRatingDetail]


class ReadyTask(BaseModel):
    task_id: int
    task_name: str
    package_id: int
    package_name: str
    completion_percentage: int
    completed_at: Optional[datetime]

class CarerReadyForAssessment(BaseModel):
    id: int
    name: Optional[str]
    email: EmailStr
    ready_tasks: List[ReadyTask]


class CarerProgressSummary(BaseModel):
    id: int
    name: Optional[str]
    email: EmailStr
    is_active: bool
    package_count: int
    overall_progress: int
    needs_assessment: bool
    last_activity: Optional[datetime] = None
