"""Audit sink for domain events.

Every mutating engine operation emits exactly one ``AuditEvent``. The
engine only talks to the ``AuditSink`` interface; the database-backed
sink writes an ``AuditLog`` row inside the caller's transaction, so the
event commits or rolls back together with the change it describes.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from caretrack.models.audit import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: Optional[int]
    name: str

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, name=user.name or user.email)


@dataclass
class AuditEvent:
    action: str
    entity_type: str
    entity_id: str
    actor: Actor
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None


class AuditSink:
    async def emit(self, event: AuditEvent) -> None:
        raise NotImplementedError


class DatabaseAuditSink(AuditSink):
    def __init__(self, db: AsyncSession, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address
        self.user_agent = user_agent

    async def emit(self, event: AuditEvent) -> None:
        self.db.add(
            AuditLog(
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                old_values=event.old_values,
                new_values=event.new_values,
                performed_by_id=event.actor.id,
                performed_by_name=event.actor.name,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
            )
        )
        logger.info("%s %s:%s by %s", event.action, event.entity_type, event.entity_id, event.actor.name)


class RecordingAuditSink(AuditSink):
    """Keeps events in memory; for callers that persist audit history elsewhere."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)
