from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, CheckConstraint, func
from caretrack.database import Base

class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    target_count = Column(Integer, nullable=False)  # completions required for 100%
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("target_count > 0", name="ck_task_target_positive"),
    )
