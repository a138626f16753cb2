# app/models/program.py
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, Enum, JSON,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from app.models.base import Base
from app.models.associations import program_participant_association
from app.core.time_utils import utc_now


class ProgramType(str, PyEnum):
    TRAINING = "Training"
    EVENT = "Event"
    PROJECT = "Project"
    PITCH_IT = "Pitch-IT"


class ProgramStructure(str, PyEnum):
    ONE_TIME = "One-Time"
    RECURRING = "Recurring"
    NUMERICAL = "Numerical"


class ProgramStatus(str, PyEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


class UpdateKind(str, PyEnum):
    COMMENT = "comment"
    COMPLETION = "completion"


def _enum_column(enum_cls, name):
    return Enum(enum_cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e])


class Program(Base):
    __tablename__ = "programs"
    __table_args__ = (
        UniqueConstraint("parent_program_id", "batch_number", name="uq_program_parent_batch"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(_enum_column(ProgramType, "programtype"), nullable=False)
    structure = Column(
        _enum_column(ProgramStructure, "programstructure"),
        nullable=False,
        default=ProgramStructure.ONE_TIME
    )

    # Hierarchy: blueprint -> instance, one level deep
    parent_program_id = Column(Integer, ForeignKey("programs.id", ondelete="RESTRICT"), index=True)
    batch_number = Column(Integer)
    custom_suffix = Column(String(100))
    version_label = Column(String(100))

    date = Column(DateTime)  # Blueprints carry no date

    department_id = Column(Integer, ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    status = Column(
        _enum_column(ProgramStatus, "programstatus"),
        nullable=False,
        default=ProgramStatus.PENDING,
        index=True
    )
    approved_at = Column(DateTime)

    description = Column(Text)
    venue = Column(String(255))
    cost = Column(Float, nullable=False, default=0)
    frequency = Column(String(100))
    course_title = Column(String(255))
    flyer = Column(String(500))
    proposal = Column(String(500))
    startups_count = Column(Integer, nullable=False, default=0)

    # Registration
    registration_open = Column(Boolean, nullable=False, default=True)
    registration_deadline = Column(DateTime)
    link_slug = Column(String(255), unique=True, index=True)  # NULL for blueprints
    form_fields = Column(JSON, nullable=False, default=list)

    # Declared (expected) headcount, independent of the actual participant set
    participants_count = Column(Integer, nullable=False, default=0)

    # Completion data, set when the program is marked Completed
    actual_attendance = Column(Integer)
    actual_start = Column(DateTime)
    actual_end = Column(DateTime)
    drive_link = Column(String(500))
    final_document = Column(String(500))
    amount_disbursed = Column(Float)

    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    parent = relationship("Program", remote_side=[id], back_populates="children")
    children = relationship("Program", back_populates="parent")
    department = relationship("Department", back_populates="programs")
    created_by = relationship("User", foreign_keys=[created_by_id])
    participants = relationship(
        "Participant",
        secondary=program_participant_association,
        back_populates="programs"
    )
    updates = relationship(
        "ProgramUpdate",
        back_populates="program",
        order_by="ProgramUpdate.id",
        cascade="all, delete-orphan"
    )

    @property
    def is_blueprint(self) -> bool:
        return self.parent_program_id is None and self.structure != ProgramStructure.ONE_TIME

    @property
    def registered_count(self) -> int:
        return len(self.participants)


class ProgramUpdate(Base):
    """One entry of a program's discussion thread. Rows are only ever appended."""

    __tablename__ = "program_updates"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(Integer, ForeignKey("programs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    text = Column(Text, nullable=False)
    kind = Column(_enum_column(UpdateKind, "updatekind"), nullable=False, default=UpdateKind.COMMENT)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    program = relationship("Program", back_populates="updates")
    user = relationship("User")
