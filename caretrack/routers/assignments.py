from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from caretrack.database import get_db
from caretrack.core.auth import get_current_admin
from caretrack.core.request import get_audit_sink
from caretrack.schemas.assignment import CarerPackageLink, TaskPackageLink, AssignmentResponse, LinkResponse
from caretrack.schemas.progress import TaskProgressResponse
from caretrack.services.audit import Actor
from caretrack.services import assignment as assignment_service

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("/carers", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def assign_carer_to_package(
    link_in: CarerPackageLink,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    assignment, seeded = await assignment_service.link_carer_to_package(
        db, link_in.carer_id, link_in.package_id, Actor.from_user(admin), audit
    )
    return LinkResponse(
        assignment=AssignmentResponse.model_validate(assignment),
        inherited_progress=[TaskProgressResponse.model_validate(r) for r in seeded],
        message="Carer assigned to package successfully"
    )


@router.delete("/carers/{carer_id}/packages/{package_id}", response_model=AssignmentResponse)
async def remove_carer_from_package(
    carer_id: int,
    package_id: int,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    return await assignment_service.unlink_carer_from_package(
        db, carer_id, package_id, Actor.from_user(admin), audit
    )


@router.post("/tasks", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def assign_task_to_package(
    link_in: TaskPackageLink,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    assignment, seeded = await assignment_service.link_task_to_package(
        db, link_in.task_id, link_in.package_id, Actor.from_user(admin), audit
    )
    return LinkResponse(
        assignment=AssignmentResponse.model_validate(assignment),
        inherited_progress=[TaskProgressResponse.model_validate(r) for r in seeded],
        message="Task assigned to package successfully"
    )


@router.delete("/tasks/{task_id}/packages/{package_id}", response_model=AssignmentResponse)
async def remove_task_from_package(
    task_id: int,
    package_id: int,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin),
    audit = Depends(get_audit_sink)
):
    return await assignment_service.unlink_task_from_package(
        db, task_id, package_id, Actor.from_user(admin), audit
    )
