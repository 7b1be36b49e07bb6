"""
Work Order Service

Work orders follow the manufacturing order state machine and drive their
work center's RUNNING / IDLE status.
"""
import logging
from datetime import datetime
from typing import Dict, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from flowforge.exceptions import BusinessRuleError, NotFoundError
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.user import User
from flowforge.models.work_order import WorkOrder
from flowforge.schemas.work_order import WorkOrderCreate, WorkOrderQuery, WorkOrderUpdate
from flowforge.services import order_estimator, work_center_service
from flowforge.services.numbering import next_code
from flowforge.services.order_estimator import CANCELLED, COMPLETED, PENDING, STARTED, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


def get_work_order(db: Session, work_order_id: int) -> WorkOrder:
    work_order = db.get(WorkOrder, work_order_id)
    if work_order is None:
        raise NotFoundError("Work order", work_order_id)
    return work_order


def create_work_order(db: Session, data: WorkOrderCreate) -> WorkOrder:
    order = db.get(ManufacturingOrder, data.manufacturing_order_id)
    if order is None:
        raise NotFoundError("Manufacturing order", data.manufacturing_order_id)
    if order.status in TERMINAL_STATUSES:
        raise BusinessRuleError(
            f"Cannot add work orders to a {order.status.lower()} manufacturing order",
            error_code="ORDER_CLOSED",
            details={"order_number": order.order_number, "status": order.status},
        )

    work_center = work_center_service.get_work_center(db, data.work_center_id)
    if work_center.status == work_center_service.OFFLINE:
        raise BusinessRuleError(
            "Work center is not available",
            error_code="WORK_CENTER_UNAVAILABLE",
            details={"work_center_status": work_center.status},
        )

    if data.assigned_to_id is not None and db.get(User, data.assigned_to_id) is None:
        raise NotFoundError("Assigned user", data.assigned_to_id)

    work_order = WorkOrder(
        order_number=next_code(db, WorkOrder.order_number, "WO", 4),
        title=data.title,
        description=data.description,
        manufacturing_order_id=order.id,
        work_center_id=work_center.id,
        status=PENDING,
        priority=data.priority.value,
        progress=0,
        estimated_hours=data.estimated_hours,
        due_date=data.due_date,
        assigned_to_id=data.assigned_to_id,
    )
    db.add(work_order)
    db.flush()
    return work_order


def transition_work_order(db: Session, work_order: WorkOrder, new_status: str) -> WorkOrder:
    new_status = getattr(new_status, "value", new_status)
    previous = work_order.status
    order_estimator.check_transition(previous, new_status)
    now = datetime.utcnow()
    work_center = work_order.work_center

    if new_status == STARTED:
        if work_center.status in work_center_service.UNAVAILABLE_STATUSES:
            raise BusinessRuleError(
                "Work center is not available",
                error_code="WORK_CENTER_UNAVAILABLE",
                details={"work_center_status": work_center.status},
            )
        if work_order.started_at is None:
            work_order.started_at = now
        work_center.status = work_center_service.RUNNING
    elif new_status == COMPLETED:
        work_order.completed_at = now
        work_order.progress = 100

    work_order.status = new_status
    if new_status in (COMPLETED, CANCELLED):
        work_center_service.refresh_running_status(db, work_center)

    db.flush()
    logger.info(
        "Work order status changed",
        extra={"order_number": work_order.order_number, "from_status": previous, "to_status": new_status},
    )
    return work_order


def update_work_order(db: Session, work_order: WorkOrder, data: WorkOrderUpdate) -> Tuple[WorkOrder, bool]:
    changes = data.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    new_status = getattr(new_status, "value", new_status)

    if work_order.status in TERMINAL_STATUSES:
        if new_status is not None and new_status != work_order.status:
            order_estimator.check_transition(work_order.status, new_status)
        raise BusinessRuleError(
            f"Cannot update {work_order.status.lower()} work order",
            error_code="WORK_ORDER_CLOSED",
            details={"status": work_order.status},
        )

    if changes.get("assigned_to_id") is not None and db.get(User, changes["assigned_to_id"]) is None:
        raise NotFoundError("Assigned user", changes["assigned_to_id"])

    for field, value in changes.items():
        setattr(work_order, field, getattr(value, "value", value))

    status_changed = new_status is not None and new_status != work_order.status
    if status_changed:
        transition_work_order(db, work_order, new_status)

    db.flush()
    return work_order, status_changed


def cancel_work_order(db: Session, work_order: WorkOrder) -> WorkOrder:
    if work_order.status == COMPLETED:
        raise BusinessRuleError(
            "Cannot cancel completed work order",
            error_code="WORK_ORDER_CLOSED",
            details={"status": work_order.status},
        )
    return transition_work_order(db, work_order, CANCELLED)


def query_work_orders(db: Session, options: WorkOrderQuery):
    query = db.query(WorkOrder)
    if options.status:
        query = query.filter(WorkOrder.status == options.status.value)
    if options.priority:
        query = query.filter(WorkOrder.priority == options.priority.value)
    if options.work_center_id:
        query = query.filter(WorkOrder.work_center_id == options.work_center_id)
    if options.manufacturing_order_id:
        query = query.filter(WorkOrder.manufacturing_order_id == options.manufacturing_order_id)
    if options.assigned_to_id:
        query = query.filter(WorkOrder.assigned_to_id == options.assigned_to_id)
    if options.search:
        term = f"%{options.search}%"
        query = query.filter(
            or_(
                WorkOrder.order_number.ilike(term),
                WorkOrder.title.ilike(term),
                WorkOrder.description.ilike(term),
            )
        )
    return query


def work_order_stats(db: Session) -> Dict[str, object]:
    by_status = dict(db.query(WorkOrder.status, func.count(WorkOrder.id)).group_by(WorkOrder.status).all())

    timed = (
        db.query(WorkOrder.estimated_hours, WorkOrder.actual_hours)
        .filter(
            WorkOrder.status == COMPLETED,
            WorkOrder.estimated_hours > 0,
            WorkOrder.actual_hours > 0,
        )
        .all()
    )
    average_efficiency = 100
    if timed:
        efficiencies = [float(est) / float(act) * 100 for est, act in timed]
        average_efficiency = round(sum(efficiencies) / len(efficiencies))

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "completed": by_status.get(COMPLETED, 0),
        "average_efficiency": average_efficiency,
    }
