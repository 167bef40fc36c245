from sqlalchemy import Column, Integer, String, DateTime, JSON, func
from caretrack.database import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    performed_by_id = Column(Integer, nullable=True)  # None = system
    performed_by_name = Column(String, nullable=False, default="System")
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    performed_at = Column(DateTime(timezone=True), server_default=func.now())
