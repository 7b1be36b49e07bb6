"""
Manufacturing Order Estimator

Cost estimation from the product's ACTIVE BOM and the status state machine
shared by manufacturing orders and work orders:

    PENDING --start--> STARTED --pause--> PAUSED --resume--> STARTED
    STARTED --complete--> COMPLETED
    PENDING | STARTED | PAUSED --cancel--> CANCELLED

COMPLETED and CANCELLED are terminal.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from flowforge.core.config import settings
from flowforge.exceptions import ActiveWorkBlocksCancellationError, InvalidTransitionError
from flowforge.models.bom import BillOfMaterials
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.services import bom_service
from flowforge.services.bom_cost_engine import BOMEvaluation, ComponentLine, evaluate
from flowforge.services.stock_ledger import MOVEMENT_OUT, StockLedger

logger = logging.getLogger(__name__)

PENDING = "PENDING"
STARTED = "STARTED"
PAUSED = "PAUSED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({STARTED, CANCELLED}),
    STARTED: frozenset({PAUSED, COMPLETED, CANCELLED}),
    PAUSED: frozenset({STARTED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})
ACTIVE_WORK_STATUSES = frozenset({STARTED, PAUSED})


@dataclass
class OrderEstimate:
    bom: BillOfMaterials
    evaluation: BOMEvaluation

    @property
    def estimated_cost(self) -> Decimal:
        return self.evaluation.total_cost

    @property
    def can_manufacture(self) -> bool:
        return self.evaluation.can_fulfill

    @property
    def shortfall_items(self) -> List[ComponentLine]:
        return self.evaluation.shortfall_lines


def estimate(db: Session, product_id: int, quantity: Any) -> OrderEstimate:
    """Cost ``quantity`` units of a product from its single ACTIVE BOM."""
    bom = bom_service.find_active_bom(db, product_id)
    return OrderEstimate(bom=bom, evaluation=evaluate(bom, quantity))


def check_transition(current: str, new_status: str) -> None:
    """Raise InvalidTransitionError unless ``current -> new_status`` is allowed."""
    new_status = getattr(new_status, "value", new_status)
    if new_status not in ORDER_TRANSITIONS:
        raise InvalidTransitionError(current, new_status, f"Unknown status: {new_status}")
    if new_status not in ORDER_TRANSITIONS.get(current, frozenset()):
        if current in TERMINAL_STATUSES:
            message = f"Cannot change status of a {current.lower()} order"
        else:
            message = None
        raise InvalidTransitionError(current, new_status, message)


def transition_status(
    db: Session,
    order: ManufacturingOrder,
    new_status: str,
    *,
    user_id: int,
    actual_cost: Optional[Decimal] = None,
) -> ManufacturingOrder:
    """
    Move a manufacturing order to ``new_status`` inside the caller's transaction.

    Entering STARTED stamps started_at once. Entering COMPLETED stamps
    completed_at, forces progress to 100 and, when enabled, issues the BOM
    components from stock. Cancelling is refused while work orders are
    STARTED or PAUSED; PENDING work orders are cancelled with the order.
    """
    new_status = getattr(new_status, "value", new_status)
    previous = order.status
    check_transition(previous, new_status)
    now = datetime.utcnow()

    if new_status == STARTED:
        if order.started_at is None:
            order.started_at = now

    elif new_status == COMPLETED:
        consumed_cost = None
        if settings.CONSUME_MATERIALS_ON_COMPLETE:
            consumed_cost = consume_materials(db, order, user_id=user_id)
        order.completed_at = now
        order.progress = 100
        if actual_cost is not None:
            order.actual_cost = actual_cost
        elif consumed_cost is not None:
            order.actual_cost = consumed_cost
        elif order.actual_cost is None:
            order.actual_cost = order.estimated_cost

    elif new_status == CANCELLED:
        active = [wo for wo in order.work_orders if wo.status in ACTIVE_WORK_STATUSES]
        if active:
            raise ActiveWorkBlocksCancellationError(
                order.order_number, [wo.order_number for wo in active]
            )
        for wo in order.work_orders:
            if wo.status == PENDING:
                wo.status = CANCELLED
        order.cancelled_at = now

    order.status = new_status
    db.flush()

    logger.info(
        "Manufacturing order status changed",
        extra={
            "order_number": order.order_number,
            "from_status": previous,
            "to_status": new_status,
            "user_id": user_id,
        },
    )
    return order


def material_requirements(db: Session, order: ManufacturingOrder) -> "OrderedDict[int, Decimal]":
    """Component id -> total quantity the order needs, in lock order."""
    bom = order.bom or bom_service.find_active_bom(db, order.product_id)
    totals: Dict[int, Decimal] = {}
    for item in bom.items:
        required = Decimal(item.quantity) * Decimal(order.quantity)
        totals[item.component_id] = totals.get(item.component_id, Decimal("0")) + required
    return OrderedDict(sorted(totals.items()))


def consume_materials(db: Session, order: ManufacturingOrder, *, user_id: int) -> Decimal:
    """
    Issue every BOM component of the order from stock.

    One OUT movement per component, referenced by the order number. A
    shortfall on any component raises and leaves the whole completion
    uncommitted. Returns the cost of what was issued.
    """
    ledger = StockLedger(db)
    cost = Decimal("0")
    for component_id, required in material_requirements(db, order).items():
        posting = ledger.post_movement(
            component_id,
            MOVEMENT_OUT,
            required,
            user_id=user_id,
            reference=order.order_number,
            notes=f"Consumed by {order.order_number}",
        )
        cost += required * Decimal(posting.stock_item.unit_cost or 0)
    return cost
