from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Dict, Optional

from app.services.kpi import KPI_KEYS


def _check_kpi_map(value: Optional[Dict[str, float]]) -> Optional[Dict[str, float]]:
    if value is None:
        return value
    unknown = set(value) - set(KPI_KEYS)
    if unknown:
        raise ValueError(f"Unknown KPI keys: {', '.join(sorted(unknown))}")
    if any(v is not None and v < 0 for v in value.values()):
        raise ValueError("KPI targets and weights cannot be negative")
    return value


class DepartmentBase(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=100,
        examples=["Training", "Innovation Hub"],
        description="Official name of the department"
    )
    description: Optional[str] = None


class DepartmentCreate(DepartmentBase):
    head_id: Optional[int] = None
    kpi_targets: Dict[str, float] = Field(default_factory=dict)
    kpi_weights: Dict[str, float] = Field(default_factory=dict)

    @field_validator("kpi_targets", "kpi_weights")
    @classmethod
    def known_kpis(cls, value):
        return _check_kpi_map(value)


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(
        None,
        min_length=2,
        max_length=100,
        examples=["Updated Department Name"],
        description="New name for the department"
    )
    description: Optional[str] = None
    head_id: Optional[int] = None
    kpi_targets: Optional[Dict[str, float]] = Field(None, description="Per-metric target overrides")
    kpi_weights: Optional[Dict[str, float]] = Field(None, description="Per-metric weight overrides")

    @field_validator("kpi_targets", "kpi_weights")
    @classmethod
    def known_kpis(cls, value):
        return _check_kpi_map(value)


class Department(DepartmentBase):
    id: int = Field(..., description="Unique identifier of the department")
    head_id: Optional[int] = None
    kpi_targets: Dict[str, float] = Field(default_factory=dict)
    kpi_weights: Dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "name": "Training",
                "description": "Runs the training calendar",
                "head_id": None,
                "kpi_targets": {"programs_delivered": 10},
                "kpi_weights": {}
            }
        }
    )
