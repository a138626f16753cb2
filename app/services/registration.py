"""Self-service registration against a program's public link."""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AlreadyRegisteredError, NotFoundError, RegistrationClosedError, ValidationError
from app.core.time_utils import utc_now
from app.models.participant import Participant
from app.models.program import Program
from app.schemas.participant import RegistrationRequest
from app.schemas.program import FieldType, PublicProgram
from app.services.identity import (
    find_participant,
    is_linked,
    link_to_program,
    normalize_email,
    normalize_phone,
    resolve_participant
)
from app.services.notifications import REGISTRATION_TICKET, Notifier, notify_safely

logger = logging.getLogger(__name__)


def resolve_program_ref(db: Session, ref: str) -> Program:
    """Find a program by link slug, or by id when ``ref`` looks like one."""
    ref = str(ref).strip()
    program = db.query(Program).filter(Program.link_slug == ref).first()
    if program is None and ref.isdigit():
        program = db.get(Program, int(ref))
    if program is None:
        raise NotFoundError("Program not found")
    return program


def get_public_program(db: Session, ref: str) -> PublicProgram:
    program = resolve_program_ref(db, ref)
    return PublicProgram(
        id=program.id,
        name=program.name,
        type=program.type,
        description=program.description,
        date=program.date,
        venue=program.venue,
        flyer=program.flyer,
        status=program.status,
        department_name=program.department.name if program.department else None,
        registration_open=program.registration_open,
        registration_deadline=program.registration_deadline,
        link_slug=program.link_slug,
        form_fields=program.form_fields or []
    )


def _blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _check_answer(field: Dict[str, Any], value: Any) -> Optional[str]:
    label = field["label"]
    field_type = FieldType(field["field_type"])

    if field_type == FieldType.number:
        if isinstance(value, bool):
            return f"{label} must be a number"
        try:
            float(value)
        except (TypeError, ValueError):
            return f"{label} must be a number"
    elif field_type == FieldType.select:
        if value not in (field.get("options") or []):
            return f"{label} must be one of: {', '.join(field.get('options') or [])}"
    elif field_type == FieldType.checkbox:
        if not isinstance(value, bool):
            return f"{label} must be true or false"
    elif field_type == FieldType.date:
        try:
            date.fromisoformat(str(value)[:10])
        except ValueError:
            return f"{label} must be a date (YYYY-MM-DD)"
    elif not isinstance(value, str):
        return f"{label} must be text"
    return None


def validate_form_answers(form_fields: List[Dict[str, Any]], answers: Dict[str, Any]) -> Dict[str, Any]:
    """Check answers against the program's form schema and keep the known ones.

    A required checkbox must be ticked.
    """
    errors = []
    cleaned: Dict[str, Any] = {}
    for field in form_fields or []:
        label = field["label"]
        value = (answers or {}).get(label)
        if _blank(value) or (field["field_type"] == FieldType.checkbox.value and field.get("required") and value is False):
            if field.get("required"):
                errors.append(f"{label} is required")
            continue
        problem = _check_answer(field, value)
        if problem:
            errors.append(problem)
            continue
        cleaned[label] = value

    if errors:
        raise ValidationError("; ".join(errors))
    return cleaned


def check_registration_open(program: Program, now: Optional[datetime] = None) -> None:
    # Blueprints are templates; only their instances take registrations
    if program.is_blueprint or not program.registration_open:
        raise RegistrationClosedError("closed")
    if program.registration_deadline is not None:
        now = now or utc_now()
        if now >= program.registration_deadline:
            raise RegistrationClosedError("deadline", program.registration_deadline)


def register(
    db: Session,
    program_ref: str,
    contact: RegistrationRequest,
    form_answers: Optional[Dict[str, Any]] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None
) -> Participant:
    """Register a contact for a program through its public link.

    Raises NotFoundError, RegistrationClosedError, ValidationError or
    AlreadyRegisteredError, checked in that order.
    """
    program = resolve_program_ref(db, program_ref)
    check_registration_open(program, now)
    if not contact.consent:
        raise ValidationError("Consent is required")

    answers = validate_form_answers(
        program.form_fields,
        form_answers if form_answers is not None else contact.answers
    )

    # A rejected duplicate must leave the stored record untouched
    existing = find_participant(db, normalize_email(contact.email), normalize_phone(contact.phone))
    if existing is not None and is_linked(db, existing.id, program.id):
        raise AlreadyRegisteredError()

    participant = resolve_participant(
        db,
        email=contact.email,
        phone=contact.phone,
        attributes={
            "full_name": contact.full_name,
            "gender": contact.gender,
            "organization": contact.organization,
            "state": contact.state,
            "age_group": contact.age_group,
            "referral_source": contact.referral_source,
            "consent": contact.consent,
            "data": answers,
        }
    )
    link_to_program(db, participant, program, strict=True)
    logger.info(f"Participant {participant.id} registered for program {program.id}")

    notify_safely(notifier, participant.email, REGISTRATION_TICKET, {
        "participant_id": participant.id,
        "full_name": participant.full_name,
        "organization": participant.organization,
        "program_name": program.name,
        "date": program.date.strftime("%A, %d %b %Y") if program.date else None,
        "venue": program.venue,
    })
    return participant
