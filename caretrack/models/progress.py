from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, func
from caretrack.database import Base

class TaskProgress(Base):
    __tablename__ = "task_progress"

    id = Column(Integer, primary_key=True, index=True)
    carer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("care_packages.id"), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    completion_count = Column(Integer, nullable=False, default=0)
    completion_percentage = Column(Integer, nullable=False, default=0)  # 0–100
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("carer_id", "package_id", "task_id", name="uq_carer_package_task"),
        CheckConstraint("completion_count >= 0", name="ck_progress_count_non_negative"),
    )
