"""
Stock API Endpoints

Stock items and the movement ledger. Every quantity change is a movement
posted through the StockLedger.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from flowforge.api.deps import paginate
from flowforge.api.v1.endpoints.auth import get_current_user, require_roles
from flowforge.core.config import settings
from flowforge.core.security import INVENTORY_ROLES
from flowforge.db.session import get_db, run_in_transaction
from flowforge.logging_config import audit_log, get_client_ip
from flowforge.models.stock import StockItem, StockMovement
from flowforge.models.user import User
from flowforge.schemas.common import MessageResponse, money
from flowforge.schemas.stock import (
    MovementCreate,
    MovementListItem,
    MovementListResponse,
    MovementPostingResponse,
    MovementQuery,
    MovementResponse,
    MovementSummary,
    MovementType,
    StockItemCreate,
    StockItemDetailResponse,
    StockItemListResponse,
    StockItemQuery,
    StockItemResponse,
    StockItemUpdate,
    StockStatsResponse,
)
from flowforge.services import stock_service
from flowforge.services.stock_ledger import StockLedger

router = APIRouter()
logger = logging.getLogger(__name__)


# ============================================================================
# Query options
# ============================================================================

def stock_item_query(
    category: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    search: Optional[str] = Query(None),
    include_archived: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> StockItemQuery:
    return StockItemQuery(
        category=category,
        location=location,
        low_stock=low_stock,
        search=search,
        include_archived=include_archived,
        page=page,
        limit=limit,
    )


def movement_query(
    stock_item_id: Optional[int] = Query(None),
    type: Optional[MovementType] = Query(None),
    user_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> MovementQuery:
    return MovementQuery(
        stock_item_id=stock_item_id,
        movement_type=type,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


# ============================================================================
# Response builders
# ============================================================================

def build_stock_item_response(db: Session, item: StockItem) -> StockItemResponse:
    last = stock_service.last_movement(db, item.id)
    return StockItemResponse(
        id=item.id,
        sku=item.sku,
        name=item.name,
        description=item.description,
        category=item.category,
        location=item.location,
        supplier=item.supplier,
        quantity=item.quantity,
        unit_cost=item.unit_cost,
        reorder_point=item.reorder_point,
        max_stock=item.max_stock,
        is_archived=item.is_archived,
        is_low_stock=item.is_low_stock,
        stock_value=money(item.stock_value),
        last_movement=MovementSummary.model_validate(last) if last else None,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


# ============================================================================
# Stock items
# ============================================================================

@router.get("", response_model=StockItemListResponse)
async def list_stock_items(
    options: StockItemQuery = Depends(stock_item_query),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List stock items with filtering and pagination"""
    items, pagination = paginate(
        stock_service.query_stock_items(db, options), options, StockItem.name.asc()
    )
    return StockItemListResponse(
        items=[build_stock_item_response(db, item) for item in items],
        pagination=pagination,
    )


@router.get("/stats", response_model=StockStatsResponse)
async def get_stock_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    stats = stock_service.stock_stats(db)
    stats["total_value"] = money(stats["total_value"])
    return StockStatsResponse(**stats)


# ============================================================================
# Movements
# NOTE: these routes must be declared before /{stock_item_id}
# ============================================================================

@router.get("/movements", response_model=MovementListResponse)
async def list_movements(
    options: MovementQuery = Depends(movement_query),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Ledger entries, newest first"""
    movements, pagination = paginate(
        stock_service.query_movements(db, options),
        options,
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    )
    items = []
    for movement in movements:
        row = MovementListItem.model_validate(movement)
        row.stock_item_sku = movement.stock_item.sku
        row.stock_item_name = movement.stock_item.name
        row.user_email = movement.user.email if movement.user else None
        items.append(row)
    return MovementListResponse(items=items, pagination=pagination)


@router.post("/movements", response_model=MovementPostingResponse, status_code=status.HTTP_201_CREATED)
async def post_movement(
    request: Request,
    body: MovementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*INVENTORY_ROLES)),
):
    """
    Post an IN, OUT or ADJUSTMENT movement.

    - **IN / OUT**: ``quantity`` is a positive amount
    - **ADJUSTMENT**: ``quantity`` is the new absolute on-hand quantity
    """
    user_id = current_user.id

    def work():
        return StockLedger(db).post_movement(
            body.stock_item_id,
            body.movement_type,
            body.quantity,
            user_id=user_id,
            reference=body.reference,
            notes=body.notes,
        )

    posting = run_in_transaction(db, work)

    audit_log(
        "STOCK_MOVEMENT_POSTED",
        user_id=user_id,
        resource_type="stock_item",
        resource_id=posting.stock_item.id,
        details={
            "movement_id": posting.movement.id,
            "movement_type": posting.movement.movement_type,
            "quantity": posting.movement.quantity,
            "previous_quantity": posting.movement.previous_quantity,
            "new_quantity": posting.movement.new_quantity,
            "reference": posting.movement.reference,
        },
        ip_address=get_client_ip(request),
    )
    return MovementPostingResponse(
        movement=MovementResponse.model_validate(posting.movement),
        stock_item=build_stock_item_response(db, posting.stock_item),
    )


# ============================================================================
# Single item
# ============================================================================

@router.get("/{stock_item_id}", response_model=StockItemDetailResponse)
async def get_stock_item(
    stock_item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = StockLedger(db).find_stock_item(stock_item_id)
    base = build_stock_item_response(db, item)
    return StockItemDetailResponse(**base.model_dump(), **stock_service.item_metrics(db, item.id))


@router.post("", response_model=StockItemResponse, status_code=status.HTTP_201_CREATED)
async def create_stock_item(
    request: Request,
    body: StockItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*INVENTORY_ROLES)),
):
    """Create a stock item. A positive ``quantity`` is posted as an "Initial Stock" IN movement."""
    user_id = current_user.id
    item = run_in_transaction(db, lambda: stock_service.create_stock_item(db, body, user_id=user_id))

    audit_log("STOCK_ITEM_CREATED", user_id=user_id, resource_type="stock_item", resource_id=item.id,
              details={"sku": item.sku, "initial_quantity": body.quantity},
              ip_address=get_client_ip(request))
    return build_stock_item_response(db, item)


@router.put("/{stock_item_id}", response_model=StockItemResponse)
async def update_stock_item(
    request: Request,
    stock_item_id: int,
    body: StockItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*INVENTORY_ROLES)),
):
    """Update descriptive fields. Quantity only changes through movements."""
    def work():
        item = StockLedger(db).find_stock_item(stock_item_id)
        return stock_service.update_stock_item(db, item, body)

    item = run_in_transaction(db, work)
    audit_log("STOCK_ITEM_UPDATED", user_id=current_user.id, resource_type="stock_item",
              resource_id=item.id, details={"changes": sorted(body.model_dump(exclude_unset=True))},
              ip_address=get_client_ip(request))
    return build_stock_item_response(db, item)


@router.delete("/{stock_item_id}", response_model=MessageResponse)
async def delete_stock_item(
    request: Request,
    stock_item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*INVENTORY_ROLES)),
):
    """Delete an unused item; archive one with movement history or BOM usage."""
    def work():
        item = StockLedger(db).find_stock_item(stock_item_id)
        return stock_service.delete_stock_item(db, item)

    deleted = run_in_transaction(db, work)
    audit_log("STOCK_ITEM_DELETED" if deleted else "STOCK_ITEM_ARCHIVED", user_id=current_user.id,
              resource_type="stock_item", resource_id=stock_item_id,
              ip_address=get_client_ip(request))
    if deleted:
        return MessageResponse(message="Stock item deleted")
    return MessageResponse(message="Stock item is in use and was archived")
