import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    user_id: Optional[int],
    action: str,
    description: str,
    department_id: Optional[int] = None,
    meta: Optional[dict] = None
) -> None:
    """Record an audit row after the main write has been committed.

    Never raises: a failed write is rolled back and logged as a warning.
    """
    try:
        db.add(ActivityLog(
            user_id=user_id,
            action=action,
            description=description,
            department_id=department_id,
            meta=meta or {}
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"Activity log write failed for {action}: {str(e)}")
