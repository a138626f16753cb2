"""Program status changes, completion bookkeeping and the update thread."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.core.time_utils import to_naive_utc, utc_now
from app.models.program import Program, ProgramStatus, ProgramUpdate, UpdateKind
from app.models.user import User
from app.services.activity import log_activity
from app.services.programs import get_program

logger = logging.getLogger(__name__)

# The usual forward flow. Any other move is an administrative reassignment
ALLOWED_TRANSITIONS = {
    ProgramStatus.PENDING: {ProgramStatus.APPROVED, ProgramStatus.REJECTED},
    ProgramStatus.APPROVED: {ProgramStatus.CANCELLED, ProgramStatus.COMPLETED},
    ProgramStatus.REJECTED: set(),
    ProgramStatus.CANCELLED: set(),
    ProgramStatus.COMPLETED: set(),
}


def is_regular_transition(current: ProgramStatus, target: ProgramStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def set_status(db: Session, program_id: int, status: ProgramStatus, actor: Optional[User] = None) -> Program:
    try:
        status = ProgramStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown status: {status}")
    if status == ProgramStatus.COMPLETED:
        raise ValidationError("Use the completion endpoint to mark a program as Completed")

    program = get_program(db, program_id)
    previous = program.status
    if previous != status and not is_regular_transition(previous, status):
        logger.info(f"Program {program.id} reassigned from {previous.value} to {status.value}")

    program.status = status
    if status == ProgramStatus.APPROVED and program.approved_at is None:
        program.approved_at = utc_now()
    db.commit()
    db.refresh(program)

    log_activity(
        db, actor.id if actor else None, "UPDATE_STATUS",
        f"Changed status of {program.name} to {status.value}", program.department_id,
        {"program_id": program.id, "from": previous.value, "to": status.value}
    )
    return program


def complete(
    db: Session,
    program_id: int,
    actor: Optional[User] = None,
    attendance: Optional[int] = None,
    actual_start: Optional[datetime] = None,
    actual_end: Optional[datetime] = None,
    drive_link: Optional[str] = None,
    final_document: Optional[str] = None,
    comment: Optional[str] = None,
    amount_disbursed: Optional[float] = None
) -> Program:
    """Mark a program Completed and record what actually happened.

    Attendance defaults to 0 and both ends of the actual date range default
    to the scheduled date. A comment lands in the update thread as a
    completion note.
    """
    program = get_program(db, program_id)

    program.status = ProgramStatus.COMPLETED
    program.actual_attendance = attendance or 0
    program.actual_start = to_naive_utc(actual_start) or program.date
    program.actual_end = to_naive_utc(actual_end) or program.date
    if drive_link:
        program.drive_link = drive_link
    if final_document:
        program.final_document = final_document
    if amount_disbursed is not None:
        program.amount_disbursed = amount_disbursed

    if comment and comment.strip():
        program.updates.append(ProgramUpdate(
            text=comment.strip(),
            user_id=actor.id if actor else None,
            kind=UpdateKind.COMPLETION
        ))

    db.commit()
    db.refresh(program)
    logger.info(f"Program {program.id} completed with attendance {program.actual_attendance}")

    log_activity(
        db, actor.id if actor else None, "COMPLETE_PROGRAM",
        f"Marked {program.name} as Completed", program.department_id,
        {"program_id": program.id}
    )
    return program


def add_update(db: Session, program_id: int, author: Optional[User], text: str) -> ProgramUpdate:
    if not text or not text.strip():
        raise ValidationError("Update text is required")
    program = get_program(db, program_id)

    entry = ProgramUpdate(
        program_id=program.id,
        user_id=author.id if author else None,
        text=text.strip(),
        kind=UpdateKind.COMMENT
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry
