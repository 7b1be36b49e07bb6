"""
Work Orders API Endpoints

Work orders split a manufacturing order into tasks on work centers and
share its status state machine.
"""
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from flowforge.api.deps import paginate
from flowforge.api.v1.endpoints.auth import get_current_user
from flowforge.core.config import settings
from flowforge.db.session import UNIQUE_RACE_ERRORS, get_db, run_in_transaction
from flowforge.logging_config import audit_log, get_client_ip
from flowforge.models.user import User
from flowforge.models.work_order import WorkOrder
from flowforge.schemas.auth import UserSummary
from flowforge.schemas.common import OrderStatus, Priority
from flowforge.schemas.work_order import (
    WorkOrderCreate,
    WorkOrderListResponse,
    WorkOrderQuery,
    WorkOrderResponse,
    WorkOrderStatsResponse,
    WorkOrderUpdate,
)
from flowforge.services import work_order_service

router = APIRouter()
logger = logging.getLogger(__name__)


def work_order_query(
    status: Optional[OrderStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    work_center_id: Optional[int] = Query(None),
    manufacturing_order_id: Optional[int] = Query(None),
    assigned_to_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> WorkOrderQuery:
    return WorkOrderQuery(
        status=status,
        priority=priority,
        work_center_id=work_center_id,
        manufacturing_order_id=manufacturing_order_id,
        assigned_to_id=assigned_to_id,
        search=search,
        page=page,
        limit=limit,
    )


def build_work_order_response(work_order: WorkOrder) -> WorkOrderResponse:
    response = WorkOrderResponse.model_validate(work_order)
    response.manufacturing_order_number = work_order.manufacturing_order.order_number
    response.work_center_name = work_order.work_center.name
    if work_order.assigned_to is not None:
        response.assigned_to = UserSummary.model_validate(work_order.assigned_to)
    return response


@router.get("", response_model=WorkOrderListResponse)
async def list_work_orders(
    options: WorkOrderQuery = Depends(work_order_query),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    work_orders, pagination = paginate(
        work_order_service.query_work_orders(db, options),
        options,
        WorkOrder.created_at.desc(),
        WorkOrder.id.desc(),
    )
    return WorkOrderListResponse(
        items=[build_work_order_response(wo) for wo in work_orders],
        pagination=pagination,
    )


@router.get("/kanban", response_model=Dict[str, List[WorkOrderResponse]])
async def get_kanban_board(
    work_center_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Work orders grouped into one column per status"""
    query = db.query(WorkOrder)
    if work_center_id:
        query = query.filter(WorkOrder.work_center_id == work_center_id)

    board = OrderedDict((s.value, []) for s in OrderStatus)
    for work_order in query.order_by(WorkOrder.due_date.asc(), WorkOrder.id.asc()).all():
        board.setdefault(work_order.status, []).append(build_work_order_response(work_order))
    return board


@router.get("/stats", response_model=WorkOrderStatsResponse)
async def get_work_order_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return WorkOrderStatsResponse(**work_order_service.work_order_stats(db))


@router.get("/{work_order_id}", response_model=WorkOrderResponse)
async def get_work_order(
    work_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_work_order_response(work_order_service.get_work_order(db, work_order_id))


@router.post("", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_work_order(
    request: Request,
    body: WorkOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    work_order = run_in_transaction(
        db, lambda: work_order_service.create_work_order(db, body), retry_on=UNIQUE_RACE_ERRORS
    )
    audit_log(
        "WORK_ORDER_CREATED",
        user_id=current_user.id,
        resource_type="work_order",
        resource_id=work_order.id,
        details={
            "order_number": work_order.order_number,
            "manufacturing_order_id": work_order.manufacturing_order_id,
            "work_center_id": work_order.work_center_id,
        },
        ip_address=get_client_ip(request),
    )
    return build_work_order_response(work_order)


@router.put("/{work_order_id}", response_model=WorkOrderResponse)
async def update_work_order(
    request: Request,
    work_order_id: int,
    body: WorkOrderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update fields; a changed ``status`` goes through the order state machine."""
    previous = {}

    def work():
        work_order = work_order_service.get_work_order(db, work_order_id)
        previous["status"] = work_order.status
        return work_order_service.update_work_order(db, work_order, body)

    work_order, status_changed = run_in_transaction(db, work)
    audit_log(
        "WORK_ORDER_STATUS_CHANGED" if status_changed else "WORK_ORDER_UPDATED",
        user_id=current_user.id,
        resource_type="work_order",
        resource_id=work_order.id,
        details={
            "order_number": work_order.order_number,
            "changes": sorted(body.model_dump(exclude_unset=True)),
            "from_status": previous.get("status"),
            "to_status": work_order.status,
        },
        ip_address=get_client_ip(request),
    )
    return build_work_order_response(work_order)


@router.delete("/{work_order_id}", response_model=WorkOrderResponse)
async def delete_work_order(
    request: Request,
    work_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cancel the work order"""
    def work():
        return work_order_service.cancel_work_order(db, work_order_service.get_work_order(db, work_order_id))

    work_order = run_in_transaction(db, work)
    audit_log("WORK_ORDER_CANCELLED", user_id=current_user.id, resource_type="work_order",
              resource_id=work_order.id, details={"order_number": work_order.order_number},
              ip_address=get_client_ip(request))
    return build_work_order_response(work_order)
