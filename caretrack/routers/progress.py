from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from caretrack.database import get_db
from caretrack.core.auth import get_current_admin
from caretrack.core.request import get_audit_sink
from caretrack.schemas.progress import (
    ProgressUpdate, ProgressReset, ProgressSyncResponse, TaskProgressResponse,
    CarerProgressDetail, CarerProgressSummary, CarerReadyForAssessment
)
from caretrack.services.audit import Actor
from caretrack.services import progress as progress_service
from caretrack.services import overview

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("/update", response_model=ProgressSyncResponse)
async def update_task_progress(
    update_in: ProgressUpdate,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    records = await progress_service.update_progress(
        db,
        update_in.carer_id,
        update_in.package_id,
        update_in.task_id,
        update_in.completion_count,
        Actor.from_user(admin),
        audit,
    )
    return ProgressSyncResponse(
        carer_id=update_in.carer_id,
        task_id=update_in.task_id,
        completion_count=update_in.completion_count,
        completion_percentage=records[0].completion_percentage,
        records=[TaskProgressResponse.model_validate(r) for r in records]
    )


@router.post("/reset", response_model=TaskProgressResponse)
async def reset_task_progress(
    reset_in: ProgressReset,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    return await progress_service.reset_progress(
        db, reset_in.carer_id, reset_in.package_id, reset_in.task_id, Actor.from_user(admin), audit
    )


@router.get("/ready-for-assessment", response_model=List[CarerReadyForAssessment])
async def get_carers_ready_for_assessment(
    threshold: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    return await overview.carers_ready_for_assessment(db, threshold)


@router.get("/carers", response_model=List[CarerProgressSummary])
async def get_carer_progress_summaries(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    return await overview.carer_progress_summaries(db, search)


@router.get("/carers/{carer_id}", response_model=CarerProgressDetail)
async def get_carer_detailed_progress(
    carer_id: int,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    return await overview.carer_progress_detail(db, carer_id)
