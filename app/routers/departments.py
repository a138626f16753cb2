from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
import logging

from app.core.security import get_current_user, get_current_admin
from app.database import get_db
from app.models.department import Department as DepartmentModel
from app.models.user import User as UserModel
from app.schemas.department import (
    Department as DepartmentSchema,
    DepartmentCreate,
    DepartmentUpdate
)
from app.schemas.overview import DepartmentOverview
from app.services import kpi

router = APIRouter(prefix="/departments", tags=["departments"])
logger = logging.getLogger(__name__)


@router.post(
    "/",
    response_model=DepartmentSchema,
    status_code=status.HTTP_201_CREATED
)
def create_department(
    department: DepartmentCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_admin)
):
    """
    Create a new department.

    - **name**: unique (case-insensitive), 2-100 characters
    - **kpi_targets** / **kpi_weights**: optional per-metric overrides
    """
    try:
        # Names compare case-insensitively
        existing = db.query(DepartmentModel).filter(
            func.lower(DepartmentModel.name) == func.lower(department.name.strip())
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Department with this name already exists"
            )

        db_department = DepartmentModel(
            name=department.name.strip(),
            description=department.description,
            head_id=department.head_id,
            kpi_targets=department.kpi_targets,
            kpi_weights=department.kpi_weights
        )
        db.add(db_department)
        db.commit()
        db.refresh(db_department)
        return db_department

    except HTTPException:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        logger.error("Integrity error creating department", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Department name is already taken"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error creating department: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create department"
        )


@router.get("/", response_model=list[DepartmentSchema])
def read_departments(
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(100, ge=1, le=1000, description="Pagination limit"),
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    """
    List departments in id order.

    - **skip**: offset into the list
    - **limit**: page size (1-1000)
    """
    try:
        return db.query(DepartmentModel).order_by(DepartmentModel.id).offset(skip).limit(limit).all()
    except Exception as e:
        logger.error(f"Error fetching departments: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve departments"
        )


@router.get("/{department_id}", response_model=DepartmentSchema)
def read_department(
    department_id: int,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    db_department = db.get(DepartmentModel, department_id)
    if not db_department:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Department not found"
        )
    return db_department


@router.patch("/{department_id}", response_model=DepartmentSchema)
def update_department(
    department_id: int,
    department_update: DepartmentUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_admin)
):
    """
    Update department information and KPI overrides.

    Sending **kpi_targets** or **kpi_weights** replaces the whole map.
    """
    try:
        db_department = db.get(DepartmentModel, department_id)
        if not db_department:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Department not found"
            )

        values = department_update.model_dump(exclude_unset=True)
        if values.get("name") is not None:
            # Renames must stay unique
            existing = db.query(DepartmentModel).filter(
                func.lower(DepartmentModel.name) == func.lower(values["name"].strip()),
                DepartmentModel.id != department_id
            ).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Department with this name already exists"
                )
            values["name"] = values["name"].strip()

        for key in ("kpi_targets", "kpi_weights"):
            if key in values and values[key] is None:
                values[key] = {}

        for field, value in values.items():
            setattr(db_department, field, value)

        db.commit()
        db.refresh(db_department)
        return db_department

    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating department: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update department"
        )


@router.get("/{department_id}/overview", response_model=DepartmentOverview)
def read_department_overview(
    department_id: int,
    range: str = Query(kpi.DEFAULT_RANGE, description="Relative window such as 30d, 12w, 6m or 1y"),
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user)
):
    """
    Department performance overview.

    KPI actuals, targets and scores over the programs created in the window,
    plus a monthly status trend and the most recent programs.
    """
    return kpi.compute_overview(db, department_id, range)
