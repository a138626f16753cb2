"""Participant identity resolution.

Every entry channel (public registration, manual staff entry, bulk import)
maps a contact attempt onto exactly one ``Participant`` row. A record is
found by email OR phone; a later contact fills the fields that are still
empty and may rename the participant, but never overwrites anything else.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import exists, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import AlreadyRegisteredError, ConflictError, NotFoundError, ValidationError
from app.models.associations import program_participant_association
from app.models.participant import Participant
from app.models.program import Program
from app.services.programs import get_program

logger = logging.getLogger(__name__)

# Filled only when the stored value is empty
FILL_IF_EMPTY_FIELDS = ("email", "phone", "gender", "organization", "state", "age_group", "referral_source")

MANUAL_ADD_SOURCE = "Admin Manual Add"
BULK_IMPORT_SOURCE = "Admin Bulk Import"


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if phone is None:
        return None
    phone = phone.strip()
    return phone or None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def reconcile_participant(existing: Participant, incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Return the attribute changes a new contact attempt makes to ``existing``.

    First write wins for every field except ``full_name``, which the latest
    submission always replaces. Form answers in ``data`` merge per key.
    """
    changes: Dict[str, Any] = {}

    full_name = incoming.get("full_name")
    if not _is_empty(full_name) and full_name != existing.full_name:
        changes["full_name"] = full_name.strip()

    for field in FILL_IF_EMPTY_FIELDS:
        value = incoming.get(field)
        if _is_empty(value):
            continue
        if _is_empty(getattr(existing, field)):
            changes[field] = value

    if incoming.get("consent") and not existing.consent:
        changes["consent"] = True

    answers = incoming.get("data") or {}
    if answers:
        merged = dict(existing.data or {})
        for key, value in answers.items():
            if key not in merged or _is_empty(merged[key]):
                merged[key] = value
        if merged != (existing.data or {}):
            changes["data"] = merged

    return changes


def find_participant(db: Session, email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Participant]:
    clauses = []
    if email:
        clauses.append(Participant.email == email)
    if phone:
        clauses.append(Participant.phone == phone)
    if not clauses:
        return None
    return db.query(Participant).filter(or_(*clauses)).order_by(Participant.id).first()


def _drop_taken_contacts(db: Session, participant: Participant, changes: Dict[str, Any]) -> None:
    # A contact value already owned by another record cannot move here
    for field in ("email", "phone"):
        value = changes.get(field)
        if value is None:
            continue
        column = getattr(Participant, field)
        owner = db.query(Participant.id).filter(column == value, Participant.id != participant.id).first()
        if owner:
            logger.info(f"Not copying {field} onto participant {participant.id}: held by participant {owner.id}")
            changes.pop(field)


def resolve_participant(
    db: Session,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None
) -> Participant:
    """Find or create the canonical participant for a contact attempt."""
    email = normalize_email(email)
    phone = normalize_phone(phone)
    if not email and not phone:
        raise ValidationError("contact method required")

    incoming = dict(attributes or {})
    incoming["email"] = email
    incoming["phone"] = phone

    # Second pass handles a concurrent insert of the same contact
    for attempt in range(2):
        participant = find_participant(db, email, phone)
        if participant is not None:
            changes = reconcile_participant(participant, incoming)
            _drop_taken_contacts(db, participant, changes)
            for field, value in changes.items():
                setattr(participant, field, value)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ConflictError("Contact details conflict with another participant")
            db.refresh(participant)
            return participant

        participant = Participant(
            full_name=(incoming.get("full_name") or "Unknown").strip(),
            email=email,
            phone=phone,
            gender=incoming.get("gender") or None,
            organization=incoming.get("organization") or None,
            state=incoming.get("state") or None,
            age_group=incoming.get("age_group") or None,
            referral_source=incoming.get("referral_source") or None,
            consent=bool(incoming.get("consent")),
            data=dict(incoming.get("data") or {})
        )
        db.add(participant)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Participant for {email or phone} created concurrently, merging (attempt {attempt + 1})")
            continue
        db.refresh(participant)
        logger.info(f"Created participant {participant.id}")
        return participant

    raise ConflictError("Could not resolve participant identity")


def is_linked(db: Session, participant_id: int, program_id: int) -> bool:
    return db.query(
        exists().where(
            program_participant_association.c.participant_id == participant_id,
            program_participant_association.c.program_id == program_id
        )
    ).scalar()


def link_to_program(db: Session, participant: Participant, program: Program, strict: bool = True) -> bool:
    """Add ``participant`` to ``program``.

    Returns True when a new membership was written. An existing membership
    raises ``AlreadyRegisteredError`` when ``strict`` and is a no-op otherwise.
    """
    if is_linked(db, participant.id, program.id):
        if strict:
            raise AlreadyRegisteredError()
        return False

    participant.programs.append(program)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if strict:
            raise AlreadyRegisteredError()
        return False
    return True


def unlink_from_program(db: Session, program_id: int, participant_id: int) -> None:
    program = get_program(db, program_id)
    participant = db.get(Participant, participant_id)
    if participant is None or not is_linked(db, participant_id, program_id):
        raise NotFoundError("Participant is not registered for this program")

    participant.programs.remove(program)
    db.commit()
    logger.info(f"Removed participant {participant_id} from program {program_id}")


def _contact_attributes(row: Dict[str, Any], source: str) -> Dict[str, Any]:
    return {
        "full_name": row.get("full_name"),
        "gender": row.get("gender"),
        "organization": row.get("organization"),
        "state": row.get("state"),
        "age_group": row.get("age_group"),
        "referral_source": source,
        "consent": True,
    }


def add_participant_manually(db: Session, program_id: int, payload: Dict[str, Any]) -> Participant:
    """Staff entry of a single participant. Re-adding a member is tolerated."""
    program = get_program(db, program_id)
    participant = resolve_participant(
        db,
        email=payload.get("email"),
        phone=payload.get("phone"),
        attributes=_contact_attributes(payload, MANUAL_ADD_SOURCE)
    )
    link_to_program(db, participant, program, strict=False)
    return participant


def import_participants(db: Session, program_id: int, rows: Iterable[Dict[str, Any]]) -> int:
    """Bulk import rows into a program and return how many were processed.

    Rows without any contact method are skipped. Rows that are already
    members count as processed without duplicating the membership.
    """
    program = get_program(db, program_id)
    processed = 0
    for index, row in enumerate(rows):
        email = normalize_email(row.get("email"))
        phone = normalize_phone(row.get("phone"))
        if not email and not phone:
            logger.warning(f"Import row {index} for program {program_id} skipped: no email or phone")
            continue
        try:
            participant = resolve_participant(
                db, email=email, phone=phone,
                attributes=_contact_attributes(row, BULK_IMPORT_SOURCE)
            )
        except ConflictError as e:
            logger.warning(f"Import row {index} for program {program_id} skipped: {e.message}")
            continue
        link_to_program(db, participant, program, strict=False)
        processed += 1

    logger.info(f"Imported {processed} participants into program {program_id}")
    return processed
