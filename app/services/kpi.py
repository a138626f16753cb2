"""Department KPI scoring.

Six fixed metrics are computed over the programs a department created in a
relative time window, each scored 0-100 against a target, then combined
into one weighted score. Nothing here writes to the database.
"""
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.core.time_utils import utc_now
from app.models.department import Department
from app.models.program import Program, ProgramStatus
from app.models.user import User, UserStatus

logger = logging.getLogger(__name__)

DEFAULT_RANGE = "30d"
DEFAULT_WINDOW_DAYS = 30
RECENT_PROGRAMS_LIMIT = 8

_RANGE_PATTERN = re.compile(r"^(\d+)(d|w|m|y)$", re.IGNORECASE)


@dataclass(frozen=True)
class KpiDefinition:
    key: str
    label: str
    unit: str
    direction: str  # "up": higher is better, "down": lower is better
    weight: float
    target_default: float
    description: str


KPI_DEFS: List[KpiDefinition] = [
    KpiDefinition("programs_delivered", "Programs Delivered", "count", "up", 18, 6,
                  "Completed programs in the selected period."),
    KpiDefinition("pending_backlog", "Pending Backlog", "count", "down", 14, 2,
                  "Programs still pending approval."),
    KpiDefinition("completion_rate", "Completion Rate", "%", "up", 18, 0.85,
                  "Completed / (Completed + Cancelled + Rejected) in period."),
    KpiDefinition("documentation_compliance", "Documentation Compliance", "%", "up", 16, 0.8,
                  "Completed programs with a final report or drive link."),
    KpiDefinition("reach_rate", "Reach Rate", "%", "up", 18, 0.75,
                  "Actual attendance / expected participants."),
    KpiDefinition("approval_lead_time_days", "Approval Lead Time", "days", "down", 16, 3,
                  "Average days from creation to approval."),
]

KPI_KEYS = [definition.key for definition in KPI_DEFS]
KPI_WEIGHT_SUM = sum(definition.weight for definition in KPI_DEFS)


def parse_range(range_token: Optional[str], now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Turn ``<n><d|w|m|y>`` into ``(start, end)`` ending now; anything else is 30 days."""
    end = now or utc_now()
    match = _RANGE_PATTERN.match(str(range_token or "").strip())
    if not match:
        return end - timedelta(days=DEFAULT_WINDOW_DAYS), end

    n = int(match.group(1))
    unit = match.group(2).lower()
    if unit == "d":
        start = end - timedelta(days=n)
    elif unit == "w":
        start = end - timedelta(weeks=n)
    elif unit == "m":
        start = end - relativedelta(months=n)
    else:
        start = end - relativedelta(years=n)
    return start, end


def safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def score_kpi(actual: Optional[float], target: Optional[float], direction: str) -> float:
    """Score one metric on 0-100."""
    if target is None or target <= 0:
        return 0.0
    if direction == "down":
        if not actual or actual <= 0:
            return 100.0
        return _clamp(target / actual * 100)
    return _clamp((actual or 0) / target * 100)


def composite_score(kpis: List[Dict[str, Any]]) -> float:
    weight_sum = sum(k["weight"] or 0 for k in kpis) or 1
    return sum(k["score"] * (k["weight"] or 0) for k in kpis) / weight_sum


def _non_empty(column):
    return and_(column.isnot(None), column != "")


def _aggregate_programs(db: Session, window) -> Dict[str, Any]:
    status_rows = db.query(Program.status, func.count(Program.id)).filter(*window).group_by(Program.status).all()
    status_counts = {status.value: count for status, count in status_rows}

    documented = case(
        (and_(
            Program.status == ProgramStatus.COMPLETED,
            or_(_non_empty(Program.final_document), _non_empty(Program.drive_link))
        ), 1),
        else_=0
    )
    programs_total, cost_total, expected_total, actual_total, documented_completed = db.query(
        func.count(Program.id),
        func.coalesce(func.sum(Program.cost), 0),
        func.coalesce(func.sum(Program.participants_count), 0),
        func.coalesce(func.sum(Program.actual_attendance), 0),
        func.coalesce(func.sum(documented), 0),
    ).filter(*window).one()

    lead_time_sum = 0.0
    lead_time_count = 0
    for created_at, approved_at in db.query(Program.created_at, Program.approved_at).filter(
        *window, Program.approved_at.isnot(None)
    ):
        lead_time_sum += (approved_at - created_at).total_seconds() / 86400
        lead_time_count += 1

    return {
        "status_counts": status_counts,
        "programs_total": programs_total or 0,
        "cost_total": float(cost_total or 0),
        "expected_total": int(expected_total or 0),
        "actual_total": int(actual_total or 0),
        "documented_completed": int(documented_completed or 0),
        "lead_time_sum": lead_time_sum,
        "lead_time_count": lead_time_count,
    }


def kpi_actuals(totals: Dict[str, Any]) -> Dict[str, float]:
    counts = totals["status_counts"]
    completed = counts.get(ProgramStatus.COMPLETED.value, 0)
    closed = completed + counts.get(ProgramStatus.CANCELLED.value, 0) + counts.get(ProgramStatus.REJECTED.value, 0)
    return {
        "programs_delivered": completed,
        "pending_backlog": counts.get(ProgramStatus.PENDING.value, 0),
        "completion_rate": safe_div(completed, closed),
        "documentation_compliance": safe_div(totals["documented_completed"], completed),
        "reach_rate": safe_div(totals["actual_total"], totals["expected_total"]),
        "approval_lead_time_days": safe_div(totals["lead_time_sum"], totals["lead_time_count"]),
    }


def build_kpis(actuals: Dict[str, float], targets: Optional[Dict[str, float]] = None,
               weights: Optional[Dict[str, float]] = None) -> List[Dict[str, Any]]:
    targets = targets or {}
    weights = weights or {}
    kpis = []
    for definition in KPI_DEFS:
        target = targets.get(definition.key)
        if target is None:
            target = definition.target_default
        weight = weights.get(definition.key)
        if weight is None:
            weight = definition.weight
        actual = actuals.get(definition.key, 0)
        kpi = asdict(definition)
        kpi.update(
            target=target,
            weight=weight,
            actual=actual,
            score=score_kpi(actual, target, definition.direction)
        )
        kpis.append(kpi)
    return kpis


def _status_trend(db: Session, window) -> List[Dict[str, Any]]:
    trend: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    rows = db.query(Program.created_at, Program.status).filter(*window).order_by(Program.created_at).all()
    for created_at, status in rows:
        label = f"{created_at.year}-{created_at.month:02d}"
        row = trend.setdefault(label, {"label": label})
        row[status.value] = row.get(status.value, 0) + 1
    return list(trend.values())


def _recent_programs(db: Session, window) -> List[Dict[str, Any]]:
    programs = db.query(Program).filter(*window).order_by(
        Program.created_at.desc(), Program.id.desc()
    ).limit(RECENT_PROGRAMS_LIMIT).all()
    return [
        {
            "id": p.id,
            "name": p.name,
            "status": p.status.value,
            "type": p.type.value,
            "date": p.date,
            "cost": p.cost,
            "created_at": p.created_at,
            "participants_count": p.participants_count,
            "actual_attendance": p.actual_attendance,
        }
        for p in programs
    ]


def compute_overview(db: Session, department_id: int, range_token: str = DEFAULT_RANGE,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build the department overview: counts, scored KPIs, charts and recent programs."""
    department = db.get(Department, department_id)
    if department is None:
        raise NotFoundError("Department not found")

    start, end = parse_range(range_token, now)
    window = (
        Program.department_id == department.id,
        Program.created_at >= start,
        Program.created_at <= end,
    )

    staff_total = db.query(func.count(User.id)).filter(User.department_id == department.id).scalar()
    staff_active = db.query(func.count(User.id)).filter(
        User.department_id == department.id,
        User.status == UserStatus.ACTIVE
    ).scalar()

    totals = _aggregate_programs(db, window)
    kpis = build_kpis(kpi_actuals(totals), department.kpi_targets, department.kpi_weights)
    kpi_score = composite_score(kpis)
    logger.debug(f"Department {department.id} scored {kpi_score:.1f} over {range_token}")

    return {
        "department": {
            "id": department.id,
            "name": department.name,
            "description": department.description,
            "head_id": department.head_id,
        },
        "range": {"start": start, "end": end, "range": range_token},
        "counts": {
            "staff_total": staff_total or 0,
            "staff_active": staff_active or 0,
            "programs_total": totals["programs_total"],
            "status_counts": totals["status_counts"],
            "cost_total": totals["cost_total"],
            "expected_total": totals["expected_total"],
            "actual_total": totals["actual_total"],
        },
        "kpi_score": kpi_score,
        "kpis": kpis,
        "charts": {
            "programs_by_status": [
                {"status": status, "count": count} for status, count in totals["status_counts"].items()
            ],
            "programs_trend": _status_trend(db, window),
        },
        "recent": {"programs": _recent_programs(db, window)},
    }
