from typing import Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from caretrack.database import get_db
from caretrack.services.audit import DatabaseAuditSink


def get_client_ip(request: Request) -> Optional[str]:
    """
    Get client IP from trusted header (X-Real-IP) set by the frontend.
    Falls back to X-Forwarded-For, then request.client.host.
    """
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    return request.client.host if request.client else None


async def get_audit_sink(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> DatabaseAuditSink:
    return DatabaseAuditSink(
        db,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
