import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Index, text
from caretrack.database import Base
from caretrack.utils.clock import as_utc


class CompetencyLevel(str, enum.Enum):
    NOT_ASSESSED = "NOT_ASSESSED"
    NOT_COMPETENT = "NOT_COMPETENT"
    ADVANCED_BEGINNER = "ADVANCED_BEGINNER"
    COMPETENT = "COMPETENT"
    PROFICIENT = "PROFICIENT"
    EXPERT = "EXPERT"


class CompetencySource(str, enum.Enum):
    ASSESSMENT = "ASSESSMENT"
    MANUAL = "MANUAL"


class ConfirmationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class CompetencyRating(Base):
    __tablename__ = "competency_ratings"

    id = Column(Integer, primary_key=True, index=True)
    carer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    level = Column(String, nullable=False)   # CompetencyLevel, never NOT_ASSESSED
    source = Column(String, nullable=False)  # ASSESSMENT, MANUAL
    assessment_response_id = Column(Integer, ForeignKey("assessment_responses.id"), nullable=True)
    set_by_admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    set_by_admin_name = Column(String, nullable=True)
    set_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("carer_id", "task_id", name="uq_carer_task_rating"),)


class CompetencyConfirmation(Base):
    __tablename__ = "competency_confirmations"

    id = Column(Integer, primary_key=True, index=True)
    carer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    new_level = Column(String, nullable=False)
    source = Column(String, nullable=False)
    assessment_response_id = Column(Integer, ForeignKey("assessment_responses.id"), nullable=True)
    proposed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    proposed_by_name = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=ConfirmationStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed = Column(Boolean, nullable=True)  # set only once resolved

    # One outstanding request per carer/task
    __table_args__ = (
        Index(
            "uq_pending_confirmation",
            "carer_id",
            "task_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    def state_at(self, now: datetime) -> ConfirmationStatus:
        """Resolved rows keep their status; an unresolved one reads as EXPIRED once past expires_at."""
        status = ConfirmationStatus(self.status)
        if status is ConfirmationStatus.PENDING and now > as_utc(self.expires_at):
            return ConfirmationStatus.EXPIRED
        return status
