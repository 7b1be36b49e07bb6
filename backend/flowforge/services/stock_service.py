"""
Stock Item Service

Item master data around the ledger: creation (opening balance posted as a
movement), descriptive updates, archival, listing and stock statistics.
"""
import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from flowforge.exceptions import DuplicateError
from flowforge.models.bom import BOMItem
from flowforge.models.stock import StockItem, StockMovement
from flowforge.schemas.stock import MovementQuery, StockItemCreate, StockItemQuery, StockItemUpdate
from flowforge.services.stock_ledger import MOVEMENT_IN, MOVEMENT_OUT, StockLedger

logger = logging.getLogger(__name__)

INITIAL_STOCK_REFERENCE = "Initial Stock"


def _check_sku_free(db: Session, sku: str) -> None:
    taken = db.query(StockItem.id).filter(func.lower(StockItem.sku) == sku.lower()).first()
    if taken:
        raise DuplicateError("SKU", sku)


def create_stock_item(db: Session, data: StockItemCreate, *, user_id: int) -> StockItem:
    """Create an item at zero, then post any opening quantity through the ledger."""
    _check_sku_free(db, data.sku)

    item = StockItem(
        sku=data.sku,
        name=data.name,
        description=data.description,
        category=data.category,
        location=data.location,
        supplier=data.supplier,
        quantity=Decimal("0"),
        unit_cost=data.unit_cost,
        reorder_point=data.reorder_point,
        max_stock=data.max_stock,
    )
    db.add(item)
    db.flush()

    if data.quantity and data.quantity > 0:
        StockLedger(db).post_movement(
            item.id,
            MOVEMENT_IN,
            data.quantity,
            user_id=user_id,
            reference=INITIAL_STOCK_REFERENCE,
        )
    return item


def update_stock_item(db: Session, item: StockItem, data: StockItemUpdate) -> StockItem:
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(item, field, value)
    db.flush()
    return item


def delete_stock_item(db: Session, item: StockItem) -> bool:
    """
    Remove an item that never moved and no BOM uses; archive anything else.

    Returns True when the row was physically deleted.
    """
    in_boms = db.query(BOMItem.id).filter(BOMItem.component_id == item.id).first()
    if item.movements.count() == 0 and not in_boms:
        db.delete(item)
        db.flush()
        return True
    item.is_archived = True
    db.flush()
    return False


def last_movement(db: Session, stock_item_id: int) -> Optional[StockMovement]:
    return (
        db.query(StockMovement)
        .filter(StockMovement.stock_item_id == stock_item_id)
        .order_by(StockMovement.id.desc())
        .first()
    )


def item_metrics(db: Session, stock_item_id: int) -> Dict[str, object]:
    total_in, total_out, count = (
        db.query(
            func.coalesce(func.sum(case((StockMovement.movement_type == MOVEMENT_IN, StockMovement.quantity), else_=0)), 0),
            func.coalesce(func.sum(case((StockMovement.movement_type == MOVEMENT_OUT, StockMovement.quantity), else_=0)), 0),
            func.count(StockMovement.id),
        )
        .filter(StockMovement.stock_item_id == stock_item_id)
        .one()
    )
    return {
        "total_movements": count,
        "total_in": Decimal(str(total_in)),
        "total_out": Decimal(str(total_out)),
    }


def query_stock_items(db: Session, options: StockItemQuery):
    query = db.query(StockItem)
    if not options.include_archived:
        query = query.filter(StockItem.is_archived == False)  # noqa: E712
    if options.category:
        query = query.filter(StockItem.category == options.category.upper())
    if options.location:
        query = query.filter(StockItem.location.ilike(f"%{options.location}%"))
    if options.low_stock:
        query = query.filter(StockItem.quantity <= StockItem.reorder_point)
    if options.search:
        term = f"%{options.search}%"
        query = query.filter(
            or_(
                StockItem.name.ilike(term),
                StockItem.sku.ilike(term),
                StockItem.description.ilike(term),
            )
        )
    return query


def query_movements(db: Session, options: MovementQuery):
    query = db.query(StockMovement)
    if options.stock_item_id:
        query = query.filter(StockMovement.stock_item_id == options.stock_item_id)
    if options.movement_type:
        query = query.filter(StockMovement.movement_type == options.movement_type.value)
    if options.user_id:
        query = query.filter(StockMovement.user_id == options.user_id)
    if options.start_date:
        query = query.filter(StockMovement.created_at >= options.start_date)
    if options.end_date:
        query = query.filter(StockMovement.created_at <= options.end_date)
    return query


def stock_stats(db: Session) -> Dict[str, object]:
    items = db.query(StockItem).filter(StockItem.is_archived == False).all()  # noqa: E712

    categories: Dict[str, int] = {}
    for item in items:
        categories[item.category] = categories.get(item.category, 0) + 1

    return {
        "total_items": len(items),
        "low_stock_count": sum(1 for item in items if item.is_low_stock),
        "out_of_stock_count": sum(1 for item in items if (item.quantity or 0) <= 0),
        "total_value": sum((Decimal(item.stock_value) for item in items), Decimal("0")),
        "categories": categories,
    }
