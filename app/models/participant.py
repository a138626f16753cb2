# app/models/participant.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, JSON
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from app.models.base import Base
from app.models.associations import program_participant_association
from app.core.time_utils import utc_now


class Gender(str, PyEnum):
    MALE = "Male"
    FEMALE = "Female"
    UNDISCLOSED = "Prefer not to say"


class AgeGroup(str, PyEnum):
    UNDER_18 = "Under 18"
    AGE_18_25 = "18-25"
    AGE_26_35 = "26-35"
    AGE_36_50 = "36-50"
    OVER_50 = "50+"


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False)
    # Either channel identifies a participant; NULLs do not collide on unique
    email = Column(String(255), unique=True, index=True)
    phone = Column(String(50), unique=True, index=True)

    gender = Column(Enum(Gender, name="gender", native_enum=False, values_callable=lambda e: [m.value for m in e]))
    organization = Column(String(255))
    state = Column(String(100))
    age_group = Column(Enum(AgeGroup, name="agegroup", native_enum=False, values_callable=lambda e: [m.value for m in e]))
    referral_source = Column(String(255))
    consent = Column(Boolean, nullable=False, default=False)

    # Answers to program-specific form fields
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    programs = relationship(
        "Program",
        secondary=program_participant_association,
        back_populates="participants"
    )
