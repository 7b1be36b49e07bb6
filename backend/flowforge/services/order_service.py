"""
Manufacturing Order Service

Creation (estimate first, then persist), field updates, listing and stats.
Functions flush but never commit.
"""
import logging
from typing import Dict, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from flowforge.exceptions import BusinessRuleError, NotFoundError
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.product import Product
from flowforge.models.user import User
from flowforge.services import order_estimator
from flowforge.services.numbering import next_code
from flowforge.schemas.manufacturing_order import (
    ManufacturingOrderCreate,
    ManufacturingOrderUpdate,
    OrderQuery,
)

logger = logging.getLogger(__name__)


def get_order(db: Session, order_id: int) -> ManufacturingOrder:
    order = db.get(ManufacturingOrder, order_id)
    if order is None:
        raise NotFoundError("Manufacturing order", order_id)
    return order


def _check_assignee(db: Session, user_id) -> None:
    if user_id is not None and db.get(User, user_id) is None:
        raise NotFoundError("Assigned user", user_id)


def create_order(db: Session, data: ManufacturingOrderCreate, *, user_id: int) -> ManufacturingOrder:
    """
    Estimate, then persist a PENDING order.

    Nothing is written when the product is unknown or has no ACTIVE BOM.
    """
    if db.get(Product, data.product_id) is None:
        raise NotFoundError("Product", data.product_id)
    _check_assignee(db, data.assigned_to_id)

    estimate = order_estimator.estimate(db, data.product_id, data.quantity)

    order = ManufacturingOrder(
        order_number=next_code(db, ManufacturingOrder.order_number, "MO", 3),
        product_id=data.product_id,
        bom_id=estimate.bom.id,
        quantity=data.quantity,
        priority=data.priority.value,
        status=order_estimator.PENDING,
        deadline=data.deadline,
        notes=data.notes,
        estimated_cost=estimate.estimated_cost,
        assigned_to_id=data.assigned_to_id,
        created_by_id=user_id,
    )
    db.add(order)
    db.flush()

    logger.info(
        "Manufacturing order created",
        extra={
            "order_number": order.order_number,
            "product_id": order.product_id,
            "quantity": str(order.quantity),
            "estimated_cost": str(order.estimated_cost),
            "can_manufacture": estimate.can_manufacture,
        },
    )
    return order


def update_order(
    db: Session,
    order: ManufacturingOrder,
    data: ManufacturingOrderUpdate,
    *,
    user_id: int,
) -> Tuple[ManufacturingOrder, bool]:
    """
    Apply field updates, then a status change if one was asked for.

    Returns the order and whether its status changed.
    """
    changes = data.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    new_status = getattr(new_status, "value", new_status)
    actual_cost = changes.pop("actual_cost", None)

    if order.status in order_estimator.TERMINAL_STATUSES:
        if new_status is not None and new_status != order.status:
            order_estimator.check_transition(order.status, new_status)
        raise BusinessRuleError(
            f"Cannot update {order.status.lower()} manufacturing order",
            error_code="ORDER_CLOSED",
            details={"status": order.status},
        )

    if "assigned_to_id" in changes:
        _check_assignee(db, changes["assigned_to_id"])

    if "quantity" in changes and changes["quantity"] != order.quantity:
        if order.status != order_estimator.PENDING:
            raise BusinessRuleError(
                "Quantity can only be changed while the order is pending",
                error_code="ORDER_STARTED",
                details={"status": order.status},
            )
        estimate = order_estimator.estimate(db, order.product_id, changes["quantity"])
        order.bom_id = estimate.bom.id
        order.estimated_cost = estimate.estimated_cost

    for field, value in changes.items():
        setattr(order, field, getattr(value, "value", value))

    status_changed = new_status is not None and new_status != order.status
    if status_changed:
        order_estimator.transition_status(db, order, new_status, user_id=user_id, actual_cost=actual_cost)
    elif actual_cost is not None:
        order.actual_cost = actual_cost

    db.flush()
    return order, status_changed


def order_progress(order: ManufacturingOrder) -> int:
    """Completed share of the order's work orders, 100 once the order is complete."""
    if order.status == order_estimator.COMPLETED:
        return 100
    work_orders = [wo for wo in order.work_orders if wo.status != order_estimator.CANCELLED]
    if not work_orders:
        return order.progress or 0
    done = sum(1 for wo in work_orders if wo.status == order_estimator.COMPLETED)
    return round(done * 100 / len(work_orders))


def query_orders(db: Session, options: OrderQuery):
    query = db.query(ManufacturingOrder)
    if options.status:
        query = query.filter(ManufacturingOrder.status == options.status.value)
    if options.priority:
        query = query.filter(ManufacturingOrder.priority == options.priority.value)
    if options.assigned_to_id:
        query = query.filter(ManufacturingOrder.assigned_to_id == options.assigned_to_id)
    if options.search:
        term = f"%{options.search}%"
        query = query.join(Product, ManufacturingOrder.product_id == Product.id).filter(
            or_(
                ManufacturingOrder.order_number.ilike(term),
                Product.name.ilike(term),
                ManufacturingOrder.notes.ilike(term),
            )
        )
    return query


def order_stats(db: Session) -> Dict[str, object]:
    by_status = dict(
        db.query(ManufacturingOrder.status, func.count(ManufacturingOrder.id))
        .group_by(ManufacturingOrder.status)
        .all()
    )
    by_priority = dict(
        db.query(ManufacturingOrder.priority, func.count(ManufacturingOrder.id))
        .group_by(ManufacturingOrder.priority)
        .all()
    )
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_priority": by_priority,
    }
