"""
BOM Service

Lookup, lifecycle and activation of bills of materials. At most one BOM per
product is ACTIVE: activation locks the product's BOM rows, deactivates the
siblings and flushes that before promoting the new one, and a partial unique
index backs this up at the database level.

Functions flush but never commit.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from flowforge.exceptions import (
    BusinessRuleError,
    FlowForgeException,
    MultipleActiveBOMError,
    NoActiveBOMError,
    NotFoundError,
)
from flowforge.models.bom import BillOfMaterials, BOMItem
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.product import Product
from flowforge.models.stock import StockItem
from flowforge.schemas.bom import BOMCreate, BOMItemCreate, BOMUpdate

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
INACTIVE = "INACTIVE"
DRAFT = "DRAFT"


def get_bom(db: Session, bom_id: int) -> BillOfMaterials:
    bom = db.get(BillOfMaterials, bom_id)
    if bom is None:
        raise NotFoundError("Bill of Materials", bom_id)
    return bom


def find_active_bom(db: Session, product_id: int) -> BillOfMaterials:
    """
    The single ACTIVE BOM of a product.

    Raises:
        NoActiveBOMError: the product has no ACTIVE BOM
        MultipleActiveBOMError: more than one, which must never happen
    """
    boms = (
        db.query(BillOfMaterials)
        .filter(BillOfMaterials.product_id == product_id, BillOfMaterials.status == ACTIVE)
        .order_by(BillOfMaterials.id)
        .all()
    )
    if not boms:
        raise NoActiveBOMError(product_id)
    if len(boms) > 1:
        logger.error(
            "Multiple active BOMs for product",
            extra={"product_id": product_id, "bom_ids": [b.id for b in boms]},
        )
        raise MultipleActiveBOMError(product_id, [b.id for b in boms])
    return boms[0]


def build_items(db: Session, items: List[BOMItemCreate]) -> List[BOMItem]:
    """
    BOMItem rows for a request's item list.

    Every component must exist, appear once, and not be archived.
    """
    if not items:
        raise BusinessRuleError("BOM must have at least one item", error_code="BOM_EMPTY")

    component_ids = [item.component_id for item in items]
    duplicates = sorted({cid for cid in component_ids if component_ids.count(cid) > 1})
    if duplicates:
        raise BusinessRuleError(
            "Each component may appear only once in a BOM",
            error_code="BOM_DUPLICATE_COMPONENT",
            details={"duplicate_component_ids": duplicates},
        )

    rows = db.query(StockItem.id, StockItem.is_archived).filter(StockItem.id.in_(set(component_ids))).all()
    found = {row.id for row in rows}
    missing = [cid for cid in component_ids if cid not in found]
    if missing:
        raise FlowForgeException(
            "Some components not found",
            error_code="NOT_FOUND",
            status_code=404,
            details={"missing_component_ids": missing},
        )

    archived = sorted(row.id for row in rows if row.is_archived)
    if archived:
        raise BusinessRuleError(
            "Archived stock items cannot be used as components",
            error_code="COMPONENT_ARCHIVED",
            details={"archived_component_ids": archived},
        )

    return [
        BOMItem(
            component_id=item.component_id,
            quantity=item.quantity,
            unit=item.unit or "pcs",
            sequence=item.sequence if item.sequence is not None else index + 1,
            notes=item.notes,
        )
        for index, item in enumerate(items)
    ]


def create_bom(db: Session, data: BOMCreate) -> BillOfMaterials:
    product = db.get(Product, data.product_id)
    if product is None:
        raise NotFoundError("Product", data.product_id)

    bom = BillOfMaterials(
        product_id=product.id,
        name=data.name,
        version=data.version,
        status=DRAFT if data.status.value == ACTIVE else data.status.value,
        notes=data.notes,
    )
    bom.items = build_items(db, data.items)
    db.add(bom)
    db.flush()

    if data.status.value == ACTIVE:
        activate_bom(db, bom)

    logger.info(
        "BOM created",
        extra={"bom_id": bom.id, "product_id": product.id, "item_count": len(data.items)},
    )
    return bom


def update_bom(db: Session, bom: BillOfMaterials, data: BOMUpdate) -> BillOfMaterials:
    """
    Apply header changes and, when ``items`` is given, replace the item list.

    Items and version of an ACTIVE BOM are frozen unless the same request
    moves the BOM out of ACTIVE.
    """
    changes = data.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    new_status = getattr(new_status, "value", new_status)
    new_items = changes.pop("items", None)

    if bom.status == ACTIVE and (new_items is not None or "version" in changes):
        if new_status in (None, ACTIVE):
            raise BusinessRuleError(
                "Cannot modify items or version of an active BOM",
                error_code="BOM_ACTIVE_LOCKED",
                details={"hint": "Create a new version or set status to DRAFT first"},
            )

    for field, value in changes.items():
        setattr(bom, field, value)

    if new_items is not None:
        items = build_items(db, data.items)
        bom.items.clear()
        db.flush()
        bom.items.extend(items)

    if new_status == ACTIVE and bom.status != ACTIVE:
        activate_bom(db, bom)
    elif new_status is not None:
        bom.status = new_status

    db.flush()
    return bom


def activate_bom(db: Session, bom: BillOfMaterials) -> BillOfMaterials:
    """Make ``bom`` the product's only ACTIVE BOM."""
    db.flush()

    # Lock every BOM of the product so concurrent activations serialize
    siblings = db.execute(
        select(BillOfMaterials)
        .where(BillOfMaterials.product_id == bom.product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().all()

    deactivated = []
    for sibling in siblings:
        if sibling.id != bom.id and sibling.status == ACTIVE:
            sibling.status = INACTIVE
            deactivated.append(sibling.id)
    db.flush()

    bom.status = ACTIVE
    db.flush()

    logger.info(
        "BOM activated",
        extra={"bom_id": bom.id, "product_id": bom.product_id, "deactivated": deactivated},
    )
    return bom


def delete_bom(db: Session, bom: BillOfMaterials) -> None:
    in_use = (
        db.query(func.count(ManufacturingOrder.id))
        .filter(ManufacturingOrder.bom_id == bom.id, ManufacturingOrder.status != "CANCELLED")
        .scalar()
    )
    if in_use:
        raise BusinessRuleError(
            "Cannot delete BOM being used in manufacturing orders",
            error_code="BOM_IN_USE",
            details={"order_count": in_use, "hint": "Set status to INACTIVE instead of deleting"},
        )

    # Cancelled orders keep their history without the recipe reference
    db.query(ManufacturingOrder).filter(ManufacturingOrder.bom_id == bom.id).update(
        {ManufacturingOrder.bom_id: None}, synchronize_session=False
    )
    db.delete(bom)
    db.flush()


def bom_unit_cost(bom: BillOfMaterials):
    """Rolled-up material cost of one unit of product."""
    return sum(
        ((item.quantity or 0) * (item.component.unit_cost or 0) for item in bom.items),
        0,
    )


def bom_stats(db: Session) -> Dict[str, object]:
    by_status = {
        status: count
        for status, count in db.query(BillOfMaterials.status, func.count(BillOfMaterials.id))
        .group_by(BillOfMaterials.status)
        .all()
    }
    products_with_bom = select(BillOfMaterials.product_id).distinct()
    products_without_bom = (
        db.query(func.count(Product.id)).filter(Product.id.not_in(products_with_bom)).scalar()
    )
    return {
        "total_boms": sum(by_status.values()),
        "active_boms": by_status.get(ACTIVE, 0),
        "products_without_bom": products_without_bom or 0,
        "by_status": by_status,
    }


def active_bom_id(db: Session, product_id: int) -> Optional[int]:
    row = (
        db.query(BillOfMaterials.id)
        .filter(BillOfMaterials.product_id == product_id, BillOfMaterials.status == ACTIVE)
        .first()
    )
    return row.id if row else None
