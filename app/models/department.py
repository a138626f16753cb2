# app/models/department.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from app.models.base import Base
from app.core.time_utils import utc_now


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text)
    head_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL", use_alter=True))

    # Per-metric overrides for the KPI engine, keyed by metric key
    kpi_targets = Column(JSON, nullable=False, default=dict)
    kpi_weights = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utc_now, nullable=False)

    # Relationships
    programs = relationship(
        "Program",
        back_populates="department",
        order_by="Program.created_at.desc()"
    )
    staff = relationship(
        "User",
        back_populates="department",
        foreign_keys="User.department_id"
    )
    head = relationship("User", foreign_keys=[head_id])
