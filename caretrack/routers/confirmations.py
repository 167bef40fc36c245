from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from caretrack.database import get_db
from caretrack.core.auth import get_current_user, get_current_carer
from caretrack.core.request import get_audit_sink
from caretrack.schemas.competency import ConfirmationResponse, ConfirmationResolve
from caretrack.services.audit import Actor
from caretrack.services.competency import list_pending_confirmations, resolve_confirmation

router = APIRouter(prefix="/confirmations", tags=["confirmations"])


@router.get("", response_model=List[ConfirmationResponse])
async def get_pending_confirmations(
    carer_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user)
):
    # Carers only ever see their own requests
    if current_user.role != "admin":
        carer_id = current_user.id
    return await list_pending_confirmations(db, carer_id)


@router.post("/{confirmation_id}/resolve", response_model=ConfirmationResponse)
async def resolve_competency_confirmation(
    confirmation_id: int,
    resolve_in: ConfirmationResolve,
    db: AsyncSession = Depends(get_db),
    carer = Depends(get_current_carer),
    audit = Depends(get_audit_sink)
):
    return await resolve_confirmation(
        db, confirmation_id, resolve_in.confirmed, Actor.from_user(carer), audit
    )
