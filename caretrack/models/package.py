from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, func
from caretrack.database import Base

class CarePackage(Base):
    __tablename__ = "care_packages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    postcode = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CarerPackageAssignment(Base):
    __tablename__ = "carer_package_assignments"

    id = Column(Integer, primary_key=True, index=True)
    carer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("care_packages.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)  # False = unlinked, history kept
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("carer_id", "package_id", name="uq_carer_package"),)


class PackageTaskAssignment(Base):
    __tablename__ = "package_task_assignments"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("care_packages.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("package_id", "task_id", name="uq_package_task"),)
