# app/models/activity_log.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from app.models.base import Base
from app.core.time_utils import utc_now


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    action = Column(String(50), nullable=False, index=True)  # e.g. "CREATE_PROGRAM"
    description = Column(Text, nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), index=True)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    user = relationship("User")
