from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime


class OverviewDepartment(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    head_id: Optional[int] = None


class OverviewRange(BaseModel):
    start: datetime
    end: datetime
    range: str


class OverviewCounts(BaseModel):
    staff_total: int
    staff_active: int
    programs_total: int
    status_counts: Dict[str, int]
    cost_total: float
    expected_total: int
    actual_total: int


class KpiResult(BaseModel):
    key: str
    label: str
    unit: str
    direction: str
    description: str
    target_default: float
    target: float
    weight: float
    actual: float
    score: float = Field(..., ge=0, le=100)


class StatusCount(BaseModel):
    status: str
    count: int


class OverviewCharts(BaseModel):
    programs_by_status: List[StatusCount]
    programs_trend: List[Dict[str, Any]] = Field(
        ...,
        description="One row per YYYY-MM label with a count column per status"
    )


class RecentProgram(BaseModel):
    id: int
    name: str
    status: str
    type: str
    date: Optional[datetime] = None
    cost: float
    created_at: datetime
    participants_count: int
    actual_attendance: Optional[int] = None


class OverviewRecent(BaseModel):
    programs: List[RecentProgram]


class DepartmentOverview(BaseModel):
    department: OverviewDepartment
    range: OverviewRange
    counts: OverviewCounts
    kpi_score: float
    kpis: List[KpiResult]
    charts: OverviewCharts
    recent: OverviewRecent
