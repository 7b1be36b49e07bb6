"""
Manufacturing Orders API Endpoints

Orders are estimated from the product's ACTIVE BOM on creation and move
through PENDING -> STARTED <-> PAUSED -> COMPLETED, or CANCELLED.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from flowforge.api.deps import paginate
from flowforge.api.v1.endpoints.auth import get_current_user
from flowforge.core.config import settings
from flowforge.db.session import UNIQUE_RACE_ERRORS, get_db, run_in_transaction
from flowforge.exceptions import InvalidTransitionError
from flowforge.logging_config import audit_log, get_client_ip
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.user import User
from flowforge.schemas.auth import UserSummary
from flowforge.schemas.common import OrderStatus, Priority, money
from flowforge.schemas.manufacturing_order import (
    ManufacturingOrderCreate,
    ManufacturingOrderDetailResponse,
    ManufacturingOrderListResponse,
    ManufacturingOrderResponse,
    ManufacturingOrderUpdate,
    MaterialAvailabilityResponse,
    MaterialLine,
    OrderCompleteRequest,
    OrderQuery,
    OrderStatsResponse,
    WorkOrderBrief,
)
from flowforge.services import order_estimator, order_service
from flowforge.services.bom_cost_engine import evaluate

router = APIRouter()
logger = logging.getLogger(__name__)


def order_query(
    status: Optional[OrderStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    assigned_to_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> OrderQuery:
    return OrderQuery(
        status=status,
        priority=priority,
        assigned_to_id=assigned_to_id,
        search=search,
        page=page,
        limit=limit,
    )


# ============================================================================
# Response builders
# ============================================================================

def build_order_response(order: ManufacturingOrder) -> ManufacturingOrderResponse:
    return ManufacturingOrderResponse(
        id=order.id,
        order_number=order.order_number,
        product_id=order.product_id,
        product_name=order.product.name if order.product else None,
        bom_id=order.bom_id,
        quantity=order.quantity,
        priority=order.priority,
        status=order.status,
        deadline=order.deadline,
        notes=order.notes,
        estimated_cost=money(order.estimated_cost),
        actual_cost=money(order.actual_cost),
        progress=order_service.order_progress(order),
        assigned_to=UserSummary.model_validate(order.assigned_to) if order.assigned_to else None,
        created_by_id=order.created_by_id,
        work_order_count=len(order.work_orders),
        started_at=order.started_at,
        completed_at=order.completed_at,
        cancelled_at=order.cancelled_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def build_order_detail(order: ManufacturingOrder) -> ManufacturingOrderDetailResponse:
    return ManufacturingOrderDetailResponse(
        **build_order_response(order).model_dump(),
        work_orders=[WorkOrderBrief.model_validate(wo) for wo in order.work_orders],
    )


def _transition(db: Session, request: Request, order_id: int, new_status: str, user: User, actual_cost=None):
    user_id = user.id
    previous = {}

    def work():
        order = order_service.get_order(db, order_id)
        previous["status"] = order.status
        return order_estimator.transition_status(db, order, new_status, user_id=user_id, actual_cost=actual_cost)

    order = run_in_transaction(db, work)
    audit_log(
        "ORDER_STATUS_CHANGED",
        user_id=user_id,
        resource_type="manufacturing_order",
        resource_id=order.id,
        details={
            "order_number": order.order_number,
            "from_status": previous.get("status"),
            "to_status": order.status,
            "actual_cost": order.actual_cost,
        },
        ip_address=get_client_ip(request),
    )
    return build_order_detail(order)


# ============================================================================
# Endpoints
# NOTE: /stats is declared before /{order_id}
# ============================================================================

@router.get("", response_model=ManufacturingOrderListResponse)
async def list_orders(
    options: OrderQuery = Depends(order_query),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    orders, pagination = paginate(
        order_service.query_orders(db, options),
        options,
        ManufacturingOrder.created_at.desc(),
        ManufacturingOrder.id.desc(),
    )
    return ManufacturingOrderListResponse(
        items=[build_order_response(o) for o in orders],
        pagination=pagination,
    )


@router.get("/stats", response_model=OrderStatsResponse)
async def get_order_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return OrderStatsResponse(**order_service.order_stats(db))


@router.post("", response_model=ManufacturingOrderDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: Request,
    body: ManufacturingOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Create a PENDING order costed from the product's ACTIVE BOM.

    Fails with NO_ACTIVE_BOM (and persists nothing) when the product has no
    active recipe.
    """
    user_id = current_user.id
    order = run_in_transaction(
        db,
        lambda: order_service.create_order(db, body, user_id=user_id),
        retry_on=UNIQUE_RACE_ERRORS,
    )
    audit_log(
        "ORDER_CREATED",
        user_id=user_id,
        resource_type="manufacturing_order",
        resource_id=order.id,
        details={
            "order_number": order.order_number,
            "product_id": order.product_id,
            "quantity": order.quantity,
            "estimated_cost": order.estimated_cost,
        },
        ip_address=get_client_ip(request),
    )
    return build_order_detail(order)


@router.get("/{order_id}", response_model=ManufacturingOrderDetailResponse)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_order_detail(order_service.get_order(db, order_id))


@router.get("/{order_id}/material-availability", response_model=MaterialAvailabilityResponse)
async def get_material_availability(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Requirements of the order's BOM against current stock"""
    order = order_service.get_order(db, order_id)
    if order.bom is not None:
        bom, evaluation = order.bom, evaluate(order.bom, order.quantity)
    else:
        estimate = order_estimator.estimate(db, order.product_id, order.quantity)
        bom, evaluation = estimate.bom, estimate.evaluation

    return MaterialAvailabilityResponse(
        order_id=order.id,
        order_number=order.order_number,
        bom_id=bom.id,
        quantity=order.quantity,
        can_manufacture=evaluation.can_fulfill,
        estimated_cost=money(evaluation.total_cost),
        materials=[
            MaterialLine(
                component_id=line.component_id,
                component_sku=line.component_sku,
                component_name=line.component_name,
                required=line.required,
                available=line.available,
                shortfall=line.shortfall,
                line_cost=money(line.line_cost),
                can_fulfill=line.can_fulfill,
            )
            for line in evaluation.lines
        ],
    )


@router.put("/{order_id}", response_model=ManufacturingOrderDetailResponse)
async def update_order(
    request: Request,
    order_id: int,
    body: ManufacturingOrderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Update order fields. A ``status`` different from the current one is
    applied through the order state machine.
    """
    user_id = current_user.id
    previous = {}

    def work():
        order = order_service.get_order(db, order_id)
        previous["status"] = order.status
        return order_service.update_order(db, order, body, user_id=user_id)

    order, status_changed = run_in_transaction(db, work)
    audit_log(
        "ORDER_STATUS_CHANGED" if status_changed else "ORDER_UPDATED",
        user_id=user_id,
        resource_type="manufacturing_order",
        resource_id=order.id,
        details={
            "order_number": order.order_number,
            "changes": sorted(body.model_dump(exclude_unset=True)),
            "from_status": previous.get("status"),
            "to_status": order.status,
        },
        ip_address=get_client_ip(request),
    )
    return build_order_detail(order)


@router.delete("/{order_id}", response_model=ManufacturingOrderDetailResponse)
async def delete_order(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cancel the order. Orders are never physically deleted."""
    return _transition(db, request, order_id, order_estimator.CANCELLED, current_user)


@router.post("/{order_id}/start", response_model=ManufacturingOrderDetailResponse)
async def start_order(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _transition(db, request, order_id, order_estimator.STARTED, current_user)


@router.post("/{order_id}/pause", response_model=ManufacturingOrderDetailResponse)
async def pause_order(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _transition(db, request, order_id, order_estimator.PAUSED, current_user)


@router.post("/{order_id}/resume", response_model=ManufacturingOrderDetailResponse)
async def resume_order(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Resume a PAUSED order"""
    order = order_service.get_order(db, order_id)
    if order.status != order_estimator.PAUSED:
        raise InvalidTransitionError(order.status, order_estimator.STARTED, "Only paused orders can be resumed")
    return _transition(db, request, order_id, order_estimator.STARTED, current_user)


@router.post("/{order_id}/complete", response_model=ManufacturingOrderDetailResponse)
async def complete_order(
    request: Request,
    order_id: int,
    body: Optional[OrderCompleteRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Complete a STARTED order. BOM components are issued from stock in the
    same transaction; any shortfall fails the whole completion.
    """
    actual_cost = body.actual_cost if body else None
    return _transition(db, request, order_id, order_estimator.COMPLETED, current_user, actual_cost=actual_cost)


@router.post("/{order_id}/cancel", response_model=ManufacturingOrderDetailResponse)
async def cancel_order(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _transition(db, request, order_id, order_estimator.CANCELLED, current_user)
