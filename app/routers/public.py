from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from app.core.exceptions import ProgramHubError
from app.database import get_db
from app.schemas.participant import RegistrationRequest
from app.schemas.program import PublicProgram, RegistrationResult
from app.services import registration
from app.services.notifications import BackgroundNotifier, Notifier, get_notifier

router = APIRouter(prefix="/public", tags=["public"])
logger = logging.getLogger(__name__)


@router.get("/programs/{program_ref}", response_model=PublicProgram)
def read_public_program(program_ref: str, db: Session = Depends(get_db)):
    """Program details behind a registration link (slug, or id for internal callers)."""
    return registration.get_public_program(db, program_ref)


@router.post(
    "/programs/{program_ref}/register",
    response_model=RegistrationResult,
    status_code=status.HTTP_201_CREATED
)
def register_participant(
    program_ref: str,
    request: RegistrationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """
    Register for a program.

    - **email** / **phone**: at least one is required
    - **consent**: must be true
    - **answers**: answers to the program's form fields, keyed by label
    """
    try:
        participant = registration.register(
            db,
            program_ref,
            request,
            notifier=BackgroundNotifier(background_tasks, notifier)
        )
    except ProgramHubError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Registration error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error during registration"
        )
    return RegistrationResult(message="Registration successful!", participant_id=participant.id)
