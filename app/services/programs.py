"""Program hierarchy: standalone programs, blueprints and their instances.

A Recurring or Numerical program created without a parent is a blueprint:
it has no date and no registration slug. Instances are derived from a
blueprint one level deep and always get both. Numerical instances are
batch-numbered per parent; allocation is serialized per parent and backed
by a unique ``(parent_program_id, batch_number)`` constraint.
"""
import logging
import threading
import weakref
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.time_utils import to_naive_utc, utc_now
from app.models.department import Department
from app.models.program import Program, ProgramStatus, ProgramStructure
from app.models.user import User
from app.schemas.program import ProgramCreate, ProgramEdit
from app.services.activity import log_activity
from app.services.slugs import create_slug

logger = logging.getLogger(__name__)

SAVE_ATTEMPTS = 2

# Edits may not null these columns
NOT_NULL_EDIT_FIELDS = ("name", "cost", "startups_count", "participants_count", "registration_open")

# Entries live only while some request holds the lock
_parent_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
_parent_locks_guard = threading.Lock()


def _parent_lock(parent_id: int) -> threading.Lock:
    with _parent_locks_guard:
        lock = _parent_locks.get(parent_id)
        if lock is None:
            lock = threading.Lock()
            _parent_locks[parent_id] = lock
        return lock


def get_program(db: Session, program_id: int) -> Program:
    program = db.get(Program, program_id)
    if program is None:
        raise NotFoundError("Program not found")
    return program


def _initial_status(creator: Optional[User]) -> Tuple[ProgramStatus, Optional[object]]:
    if creator is not None and creator.is_super_admin:
        return ProgramStatus.APPROVED, utc_now()
    return ProgramStatus.PENDING, None


def _form_fields(data: ProgramCreate) -> List[dict]:
    return [field.model_dump(mode="json") for field in data.form_fields]


def _commit_new_program(db: Session, program: Program, regenerate) -> Program:
    """Insert ``program``, calling ``regenerate`` before each retry after a unique-constraint hit."""
    for attempt in range(SAVE_ATTEMPTS):
        if attempt:
            regenerate(program)
        db.add(program)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Unique constraint hit saving program '{program.name}' (attempt {attempt + 1}): {str(e)}")
            continue
        db.refresh(program)
        return program
    raise ConflictError("Could not allocate a unique registration link, please retry")


def create_program(db: Session, data: ProgramCreate, creator: Optional[User] = None) -> Program:
    """Create a standalone program or a blueprint; delegates to ``create_instance`` when a parent is given."""
    if data.parent_id is not None:
        return create_instance(db, data.parent_id, data, creator)

    if not data.name or not data.name.strip():
        raise ValidationError("name is required")
    if data.type is None:
        raise ValidationError("type is required")
    if data.department_id is None:
        raise ValidationError("department_id is required")
    if db.get(Department, data.department_id) is None:
        raise NotFoundError("Department not found")

    name = data.name.strip()
    is_blueprint = data.structure != ProgramStructure.ONE_TIME
    status, approved_at = _initial_status(creator)

    program = Program(
        name=name,
        type=data.type,
        structure=data.structure,
        date=None if is_blueprint else (to_naive_utc(data.date) or utc_now()),
        department_id=data.department_id,
        created_by_id=creator.id if creator else None,
        status=status,
        approved_at=approved_at,
        description=data.description,
        venue=data.venue,
        cost=data.cost or 0,
        frequency=data.frequency,
        course_title=data.course_title,
        flyer=data.flyer,
        proposal=data.proposal,
        startups_count=data.startups_count or 0,
        participants_count=data.participants_count or 0,
        registration_open=not is_blueprint,
        registration_deadline=to_naive_utc(data.registration_deadline),
        custom_suffix=data.custom_suffix,
        link_slug=None if is_blueprint else create_slug(name, data.custom_suffix),
        form_fields=_form_fields(data)
    )

    def regenerate(p: Program):
        if p.link_slug is not None:
            p.link_slug = create_slug(name, data.custom_suffix)

    program = _commit_new_program(db, program, regenerate)
    logger.info(f"Created program {program.id} '{program.name}' ({program.structure.value}, {program.status.value})")
    log_activity(
        db, program.created_by_id, "CREATE_PROGRAM",
        f"Created a new program: {program.name}", program.department_id,
        {"program_id": program.id}
    )
    return program


def next_batch_number(db: Session, parent_id: int) -> int:
    current = db.query(func.max(Program.batch_number)).filter(
        Program.parent_program_id == parent_id
    ).scalar()
    return (current or 0) + 1


def _apply_instance_label(db: Session, program: Program, parent: Program, custom_suffix: Optional[str]) -> None:
    if parent.structure == ProgramStructure.NUMERICAL:
        batch = next_batch_number(db, parent.id)
        label = custom_suffix or f"Batch {batch}"
        program.batch_number = batch
        program.custom_suffix = label
    else:
        label = custom_suffix or program.date.strftime("%d %b %Y")
        program.version_label = label
    program.name = f"{parent.name} - {label}"
    program.link_slug = create_slug(parent.name, label)


def create_instance(db: Session, parent_id: int, data: ProgramCreate, creator: Optional[User] = None) -> Program:
    """Derive a dated, registrable instance from a Recurring or Numerical blueprint."""
    parent = db.get(Program, parent_id)
    if parent is None:
        raise NotFoundError("Parent program not found")
    if parent.parent_program_id is not None:
        raise ValidationError("Cannot derive an instance from another instance")
    if parent.structure == ProgramStructure.ONE_TIME:
        raise ValidationError("One-Time programs cannot have instances")

    custom_suffix = data.custom_suffix.strip() if data.custom_suffix and data.custom_suffix.strip() else None
    status, approved_at = _initial_status(creator)
    form_fields = _form_fields(data) or list(parent.form_fields or [])

    with _parent_lock(parent.id):
        # Row lock on the parent serializes allocation across processes where supported
        parent = db.query(Program).filter(Program.id == parent_id).with_for_update().one()

        program = Program(
            type=parent.type,
            structure=parent.structure,
            parent_program_id=parent.id,
            date=to_naive_utc(data.date) or utc_now(),
            department_id=parent.department_id,
            created_by_id=creator.id if creator else None,
            status=status,
            approved_at=approved_at,
            description=data.description if data.description is not None else parent.description,
            venue=data.venue if data.venue is not None else parent.venue,
            cost=data.cost if data.cost is not None else parent.cost,
            frequency=parent.frequency,
            course_title=data.course_title if data.course_title is not None else parent.course_title,
            flyer=data.flyer or parent.flyer,
            proposal=data.proposal,
            startups_count=data.startups_count or 0,
            participants_count=data.participants_count or 0,
            registration_open=True,
            registration_deadline=to_naive_utc(data.registration_deadline),
            form_fields=form_fields
        )
        _apply_instance_label(db, program, parent, custom_suffix)

        def regenerate(p: Program):
            fresh_parent = db.query(Program).filter(Program.id == parent_id).with_for_update().one()
            _apply_instance_label(db, p, fresh_parent, custom_suffix)

        program = _commit_new_program(db, program, regenerate)

    logger.info(f"Created instance {program.id} '{program.name}' of program {parent_id}")
    log_activity(
        db, program.created_by_id, "CREATE_PROGRAM",
        f"Created a new program: {program.name}", program.department_id,
        {"program_id": program.id, "parent_id": parent_id, "batch_number": program.batch_number}
    )
    return program


def update_program(db: Session, program_id: int, changes: ProgramEdit) -> Program:
    program = get_program(db, program_id)
    values = changes.model_dump(exclude_unset=True)

    cleared = sorted(field for field in NOT_NULL_EDIT_FIELDS if field in values and values[field] is None)
    if cleared:
        raise ValidationError(f"Cannot clear required fields: {', '.join(cleared)}")

    if "name" in values and values["name"] is not None:
        values["name"] = values["name"].strip()
    if "form_fields" in values:
        values["form_fields"] = [field.model_dump(mode="json") for field in changes.form_fields or []]
    for key in ("date", "registration_deadline"):
        if key in values:
            values[key] = to_naive_utc(values[key])
    if "date" in values and values["date"] is None and not program.is_blueprint:
        raise ValidationError("Only blueprints can be left without a date")

    for field, value in values.items():
        setattr(program, field, value)

    db.commit()
    db.refresh(program)
    logger.info(f"Updated program {program.id}: {', '.join(sorted(values)) or 'no changes'}")
    return program


def get_program_detail(db: Session, program_id: int) -> Tuple[Program, List[Program]]:
    """Return a program and, for blueprints, its instances newest first."""
    program = get_program(db, program_id)
    children: List[Program] = []
    if program.is_blueprint:
        children = db.query(Program).filter(
            Program.parent_program_id == program.id
        ).order_by(Program.created_at.desc(), Program.id.desc()).all()
    return program, children


def list_programs(
    db: Session,
    department_id: Optional[int] = None,
    parent_only: bool = False,
    skip: int = 0,
    limit: int = 100
) -> List[Program]:
    query = db.query(Program)
    if department_id is not None:
        query = query.filter(Program.department_id == department_id)
    if parent_only:
        query = query.filter(Program.parent_program_id.is_(None))
    return query.order_by(Program.created_at.desc(), Program.id.desc()).offset(skip).limit(limit).all()
