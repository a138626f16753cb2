from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from datetime import datetime

from app.models.participant import Gender, AgeGroup


class ContactBase(BaseModel):
    full_name: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    gender: Optional[Gender] = None
    organization: Optional[str] = Field(None, max_length=255)
    state: Optional[str] = Field(None, max_length=100)
    age_group: Optional[AgeGroup] = None


class ManualParticipant(ContactBase):
    """Staff entry of one participant; needs an email or a phone."""

    @model_validator(mode="after")
    def needs_contact(self):
        if not self.email and not (self.phone and self.phone.strip()):
            raise ValueError("Email or Phone is required")
        return self


class ImportRow(BaseModel):
    # Rows are validated per row by the import itself, so stay permissive here
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    organization: Optional[str] = None
    state: Optional[str] = None
    age_group: Optional[AgeGroup] = None

    @field_validator("gender", "age_group", mode="before")
    @classmethod
    def unknown_choice_to_none(cls, value, info):
        # Spreadsheet values outside the known choices are dropped, not fatal
        choices = Gender if info.field_name == "gender" else AgeGroup
        if isinstance(value, choices):
            return value
        if isinstance(value, str) and value in {member.value for member in choices}:
            return value
        return None


class ParticipantImport(BaseModel):
    participants: List[ImportRow]


class RegistrationRequest(ContactBase):
    full_name: str = Field(..., min_length=1, max_length=200)
    referral_source: Optional[str] = Field(None, max_length=255)
    consent: bool = False
    answers: Dict[str, Any] = Field(
        default_factory=dict,
        description="Answers to the program's form fields, keyed by field label"
    )


class Participant(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    organization: Optional[str] = None
    state: Optional[str] = None
    age_group: Optional[AgeGroup] = None
    referral_source: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
