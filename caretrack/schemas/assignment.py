from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from caretrack.schemas.progress import TaskProgressResponse

class CarerPackageLink(BaseModel):
    carer_id: int
    package_id: int

class TaskPackageLink(BaseModel):
    task_id: int
    package_id: int

class AssignmentResponse(BaseModel):
    id: int
    package_id: int
    carer_id: Optional[int] = None
    task_id: Optional[int] = None
    is_active: bool
    assigned_at: Optional[datetime]

    model_config = {"from_attributes": True}

class LinkResponse(BaseModel):
    assignment: AssignmentResponse
    inherited_progress: List[TaskProgressResponse]
    message: str
