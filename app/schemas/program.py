from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from enum import Enum

from app.models.program import ProgramType, ProgramStructure, ProgramStatus, UpdateKind
from app.schemas.participant import Participant


class FieldType(str, Enum):
    text = "text"
    textarea = "textarea"
    number = "number"
    date = "date"
    select = "select"
    file = "file"
    checkbox = "checkbox"


class FormField(BaseModel):
    label: str = Field(..., min_length=1, max_length=200)
    field_type: FieldType
    required: bool = False
    options: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def select_needs_options(self):
        if self.field_type == FieldType.select and not self.options:
            raise ValueError(f"Select field '{self.label}' needs at least one option")
        return self


class ProgramCreate(BaseModel):
    """Payload for creating a program.

    With ``parent_id`` set the program is derived as an instance of that
    blueprint and ``name``, ``type`` and ``department_id`` come from the parent.
    """
    name: Optional[str] = Field(None, min_length=2, max_length=255, examples=["Hackathon 2025"])
    type: Optional[ProgramType] = None
    structure: ProgramStructure = ProgramStructure.ONE_TIME
    department_id: Optional[int] = None
    parent_id: Optional[int] = Field(None, description="Blueprint to derive an instance from")
    custom_suffix: Optional[str] = Field(None, max_length=100)
    date: Optional[datetime] = None
    description: Optional[str] = None
    venue: Optional[str] = Field(None, max_length=255)
    cost: Optional[float] = Field(None, ge=0)
    frequency: Optional[str] = None
    course_title: Optional[str] = None
    flyer: Optional[str] = None
    proposal: Optional[str] = None
    startups_count: Optional[int] = Field(None, ge=0)
    participants_count: Optional[int] = Field(None, ge=0, description="Expected headcount")
    registration_deadline: Optional[datetime] = None
    form_fields: List[FormField] = Field(default_factory=list)


class ProgramEdit(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    date: Optional[datetime] = None
    description: Optional[str] = None
    venue: Optional[str] = Field(None, max_length=255)
    cost: Optional[float] = Field(None, ge=0)
    frequency: Optional[str] = None
    course_title: Optional[str] = None
    flyer: Optional[str] = None
    proposal: Optional[str] = None
    startups_count: Optional[int] = Field(None, ge=0)
    participants_count: Optional[int] = Field(None, ge=0)
    registration_open: Optional[bool] = None
    registration_deadline: Optional[datetime] = Field(
        None,
        description="Send null to clear the deadline"
    )
    form_fields: Optional[List[FormField]] = None


class StatusChange(BaseModel):
    status: ProgramStatus


class ProgramCompletion(BaseModel):
    actual_attendance: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    drive_link: Optional[str] = Field(None, max_length=500)
    final_document: Optional[str] = Field(None, max_length=500)
    amount_disbursed: Optional[float] = Field(None, ge=0)
    comment: Optional[str] = None


class ProgramUpdateCreate(BaseModel):
    text: str = Field(..., min_length=1)


class ProgramUpdateEntry(BaseModel):
    id: int
    text: str
    user_id: Optional[int] = None
    kind: UpdateKind
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Program(BaseModel):
    id: int
    name: str
    type: ProgramType
    structure: ProgramStructure
    parent_program_id: Optional[int] = None
    batch_number: Optional[int] = None
    custom_suffix: Optional[str] = None
    version_label: Optional[str] = None
    date: Optional[datetime] = None
    department_id: int
    created_by_id: Optional[int] = None
    status: ProgramStatus
    approved_at: Optional[datetime] = None
    description: Optional[str] = None
    venue: Optional[str] = None
    cost: float = 0
    frequency: Optional[str] = None
    course_title: Optional[str] = None
    flyer: Optional[str] = None
    proposal: Optional[str] = None
    startups_count: int = 0
    participants_count: int = 0
    registered_count: int = 0
    registration_open: bool
    registration_deadline: Optional[datetime] = None
    link_slug: Optional[str] = None
    form_fields: List[FormField] = Field(default_factory=list)
    actual_attendance: Optional[int] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    drive_link: Optional[str] = None
    final_document: Optional[str] = None
    amount_disbursed: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProgramWithRelations(Program):
    updates: List[ProgramUpdateEntry] = Field(default_factory=list)
    participants: List[Participant] = Field(default_factory=list)
    children: List[Program] = Field(
        default_factory=list,
        description="Instances of a blueprint, newest first"
    )

    model_config = ConfigDict(from_attributes=True)


class PublicProgram(BaseModel):
    """What an anonymous visitor of a registration link gets to see."""
    id: int
    name: str
    type: ProgramType
    description: Optional[str] = None
    date: Optional[datetime] = None
    venue: Optional[str] = None
    flyer: Optional[str] = None
    status: ProgramStatus
    department_name: Optional[str] = None
    registration_open: bool
    registration_deadline: Optional[datetime] = None
    link_slug: Optional[str] = None
    form_fields: List[FormField] = Field(default_factory=list)


class ImportResult(BaseModel):
    processed: int
    message: str


class RegistrationResult(BaseModel):
    message: str
    participant_id: int
