from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.core.exceptions import ProgramHubError
from app.core.security import get_current_user, get_current_admin
from app.database import get_db
from app.models.user import User as UserModel
from app.schemas.participant import ManualParticipant, Participant, ParticipantImport
from app.schemas.program import (
    ImportResult,
    Program,
    ProgramCompletion,
    ProgramCreate,
    ProgramEdit,
    ProgramUpdateCreate,
    ProgramUpdateEntry,
    ProgramWithRelations,
    StatusChange
)
from app.services import identity, lifecycle, programs as program_service

router = APIRouter(prefix="/programs", tags=["programs"])
logger = logging.getLogger(__name__)


def ensure_department_access(user: UserModel, department_id: Optional[int]):
    """Non super admins only act within their own department."""
    if user.is_super_admin or department_id is None:
        return
    if user.department_id != department_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage programs for your assigned department."
        )


def _program_department(db: Session, program_id: int) -> int:
    return program_service.get_program(db, program_id).department_id


# 1. CREATE PROGRAM (standalone, blueprint or instance)
@router.post("/", response_model=Program, status_code=status.HTTP_201_CREATED)
def create_program(
    program: ProgramCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    try:
        if program.parent_id is not None:
            ensure_department_access(current_user, _program_department(db, program.parent_id))
        else:
            ensure_department_access(current_user, program.department_id)
        return program_service.create_program(db, program, current_user)
    except (HTTPException, ProgramHubError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating program: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create program"
        )


# 2. READ ALL PROGRAMS
@router.get("/", response_model=List[Program])
def read_programs(
    department_id: Optional[int] = Query(None),
    parent_only: bool = Query(False, description="Only standalone programs and blueprints"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    try:
        return program_service.list_programs(db, department_id, parent_only, skip, limit)
    except Exception as e:
        logger.error(f"Error fetching programs: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch programs"
        )


# 3. READ SINGLE PROGRAM (with thread, participants and instances)
@router.get("/{program_id}", response_model=ProgramWithRelations)
def read_program(
    program_id: int,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    program, children = program_service.get_program_detail(db, program_id)
    detail = ProgramWithRelations.model_validate(program)
    detail.children = [Program.model_validate(child) for child in children]
    return detail


# 4. UPDATE PROGRAM DETAILS
@router.patch("/{program_id}", response_model=Program)
def update_program(
    program_id: int,
    program_update: ProgramEdit,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    try:
        ensure_department_access(current_user, _program_department(db, program_id))
        return program_service.update_program(db, program_id, program_update)
    except (HTTPException, ProgramHubError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating program: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update program"
        )


# 5. STATUS CHANGE (approve / reject / cancel)
@router.patch("/{program_id}/status", response_model=Program)
def update_program_status(
    program_id: int,
    change: StatusChange,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_admin)
):
    try:
        ensure_department_access(current_user, _program_department(db, program_id))
        return lifecycle.set_status(db, program_id, change.status, current_user)
    except (HTTPException, ProgramHubError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error changing program status: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update program status"
        )


# 6. MARK COMPLETE
@router.post("/{program_id}/complete", response_model=Program)
def complete_program(
    program_id: int,
    completion: ProgramCompletion,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    try:
        ensure_department_access(current_user, _program_department(db, program_id))
        return lifecycle.complete(
            db,
            program_id,
            actor=current_user,
            attendance=completion.actual_attendance,
            actual_start=completion.start_date,
            actual_end=completion.end_date,
            drive_link=completion.drive_link,
            final_document=completion.final_document,
            comment=completion.comment,
            amount_disbursed=completion.amount_disbursed
        )
    except (HTTPException, ProgramHubError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error completing program: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete program"
        )


# 7. UPDATE THREAD
@router.post("/{program_id}/updates", response_model=ProgramUpdateEntry, status_code=status.HTTP_201_CREATED)
def add_program_update(
    program_id: int,
    update: ProgramUpdateCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    return lifecycle.add_update(db, program_id, current_user, update.text)


# 8. PARTICIPANTS: manual add, bulk import, removal
@router.post("/{program_id}/participants", response_model=Participant)
def add_participant(
    program_id: int,
    payload: ManualParticipant,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    ensure_department_access(current_user, _program_department(db, program_id))
    return identity.add_participant_manually(db, program_id, payload.model_dump())


@router.post("/{program_id}/participants/import", response_model=ImportResult)
def import_participants(
    program_id: int,
    payload: ParticipantImport,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    ensure_department_access(current_user, _program_department(db, program_id))
    processed = identity.import_participants(
        db, program_id, [row.model_dump() for row in payload.participants]
    )
    return ImportResult(processed=processed, message=f"Successfully processed {processed} participants.")


@router.delete("/{program_id}/participants/{participant_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_participant(
    program_id: int,
    participant_id: int,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    ensure_department_access(current_user, _program_department(db, program_id))
    identity.unlink_from_program(db, program_id, participant_id)
    return None
