"""
Work Center Service
"""
from typing import Dict

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from flowforge.exceptions import BusinessRuleError, DuplicateError, NotFoundError
from flowforge.models.work_center import WorkCenter
from flowforge.models.work_order import WorkOrder
from flowforge.schemas.work_center import WorkCenterCreate, WorkCenterQuery, WorkCenterUpdate

IDLE = "IDLE"
RUNNING = "RUNNING"
MAINTENANCE = "MAINTENANCE"
OFFLINE = "OFFLINE"
UNAVAILABLE_STATUSES = (MAINTENANCE, OFFLINE)

ACTIVE_WORK = ("STARTED", "PAUSED")
OPEN_WORK = ("PENDING", "STARTED", "PAUSED")


def get_work_center(db: Session, work_center_id: int) -> WorkCenter:
    work_center = db.get(WorkCenter, work_center_id)
    if work_center is None:
        raise NotFoundError("Work center", work_center_id)
    return work_center


def count_work(db: Session, work_center_id: int, statuses) -> int:
    return (
        db.query(func.count(WorkOrder.id))
        .filter(WorkOrder.work_center_id == work_center_id, WorkOrder.status.in_(statuses))
        .scalar()
    ) or 0


def utilization(active_work_orders: int, capacity: int) -> float:
    """Active work orders as a percentage of capacity, capped at 100."""
    if not capacity or capacity <= 0:
        return 0.0
    return round(min(100.0, active_work_orders * 100.0 / capacity), 1)


def _check_name_free(db: Session, name: str, exclude_id=None) -> None:
    query = db.query(WorkCenter.id).filter(func.lower(WorkCenter.name) == name.strip().lower())
    if exclude_id is not None:
        query = query.filter(WorkCenter.id != exclude_id)
    if query.first():
        raise DuplicateError("Work center name", name)


def create_work_center(db: Session, data: WorkCenterCreate) -> WorkCenter:
    _check_name_free(db, data.name)
    work_center = WorkCenter(
        name=data.name.strip(),
        type=data.type.value,
        description=data.description,
        location=data.location,
        status=data.status.value,
        capacity=data.capacity,
        hourly_rate=data.hourly_rate,
    )
    db.add(work_center)
    db.flush()
    return work_center


def update_work_center(db: Session, work_center: WorkCenter, data: WorkCenterUpdate) -> WorkCenter:
    changes = data.model_dump(exclude_unset=True)

    if changes.get("name"):
        _check_name_free(db, changes["name"], exclude_id=work_center.id)
        changes["name"] = changes["name"].strip()

    new_status = getattr(changes.get("status"), "value", changes.get("status"))
    if new_status in UNAVAILABLE_STATUSES and new_status != work_center.status:
        active = count_work(db, work_center.id, ACTIVE_WORK)
        if active:
            raise BusinessRuleError(
                f"Cannot set work center to {new_status} while work orders are active",
                error_code="WORK_CENTER_BUSY",
                details={"active_work_orders": active},
            )

    for field, value in changes.items():
        setattr(work_center, field, getattr(value, "value", value))
    db.flush()
    return work_center


def delete_work_center(db: Session, work_center: WorkCenter) -> None:
    open_work = count_work(db, work_center.id, OPEN_WORK)
    if open_work:
        raise BusinessRuleError(
            "Cannot delete work center with active work orders",
            error_code="WORK_CENTER_BUSY",
            details={"open_work_orders": open_work},
        )
    history = db.query(func.count(WorkOrder.id)).filter(WorkOrder.work_center_id == work_center.id).scalar()
    if history:
        raise BusinessRuleError(
            "Cannot delete work center with work order history",
            error_code="WORK_CENTER_HAS_HISTORY",
            details={"work_orders": history, "hint": "Set status to OFFLINE instead"},
        )
    db.delete(work_center)
    db.flush()


def refresh_running_status(db: Session, work_center: WorkCenter) -> None:
    """Drop a RUNNING center back to IDLE once none of its work is active."""
    db.flush()
    if work_center.status == RUNNING and not count_work(db, work_center.id, ACTIVE_WORK):
        work_center.status = IDLE


def query_work_centers(db: Session, options: WorkCenterQuery):
    query = db.query(WorkCenter)
    if options.type:
        query = query.filter(WorkCenter.type == options.type.value)
    if options.status:
        query = query.filter(WorkCenter.status == options.status.value)
    if options.search:
        term = f"%{options.search}%"
        query = query.filter(
            or_(
                WorkCenter.name.ilike(term),
                WorkCenter.description.ilike(term),
                WorkCenter.location.ilike(term),
            )
        )
    return query


def work_center_stats(db: Session) -> Dict[str, object]:
    by_status = dict(db.query(WorkCenter.status, func.count(WorkCenter.id)).group_by(WorkCenter.status).all())
    by_type = dict(db.query(WorkCenter.type, func.count(WorkCenter.id)).group_by(WorkCenter.type).all())

    active_counts = dict(
        db.query(WorkOrder.work_center_id, func.count(WorkOrder.id))
        .filter(WorkOrder.status.in_(ACTIVE_WORK))
        .group_by(WorkOrder.work_center_id)
        .all()
    )
    centers = db.query(WorkCenter.id, WorkCenter.capacity).all()
    utilizations = [utilization(active_counts.get(c.id, 0), c.capacity) for c in centers]

    return {
        "total": len(centers),
        "by_status": by_status,
        "by_type": by_type,
        "average_utilization": round(sum(utilizations) / len(utilizations), 1) if utilizations else 0.0,
    }
