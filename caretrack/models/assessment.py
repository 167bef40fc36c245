from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, func
from caretrack.database import Base

class Assessment(Base):
    __tablename__ = "assessments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AssessmentTaskCoverage(Base):
    __tablename__ = "assessment_task_coverage"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)

    __table_args__ = (UniqueConstraint("assessment_id", "task_id", name="uq_assessment_task"),)


class AssessmentResponse(Base):
    __tablename__ = "assessment_responses"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False)
    carer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assessor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    assessor_name = Column(String, nullable=True)
    overall_rating = Column(String, nullable=False)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())
