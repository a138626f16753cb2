# app/models/associations.py
from sqlalchemy import Table, Column, Integer, DateTime, ForeignKey
from app.models.base import Base
from app.core.time_utils import utc_now

# Many-to-many association tables
program_participant_association = Table(
    "program_participants",
    Base.metadata,
    Column("program_id", Integer, ForeignKey("programs.id", ondelete="CASCADE"), primary_key=True),
    Column("participant_id", Integer, ForeignKey("participants.id", ondelete="CASCADE"), primary_key=True),
    Column("linked_at", DateTime, nullable=False, default=utc_now)
)
