"""
Bill of Materials API Endpoints

CRUD over BOMs, activation, and material requirement calculation.
"""
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from flowforge.api.deps import paginate
from flowforge.api.v1.endpoints.auth import get_current_user, require_roles
from flowforge.core.config import settings
from flowforge.core.security import MANAGER_ROLES
from flowforge.db.session import UNIQUE_RACE_ERRORS, get_db, run_in_transaction
from flowforge.exceptions import NotFoundError
from flowforge.logging_config import audit_log, get_client_ip
from flowforge.models.bom import BillOfMaterials
from flowforge.models.product import Product
from flowforge.models.user import User
from flowforge.schemas.bom import (
    BOMCreate,
    BOMDetailResponse,
    BOMItemResponse,
    BOMListResponse,
    BOMQuery,
    BOMResponse,
    BOMStatsResponse,
    BOMStatus,
    BOMUpdate,
    ComponentRequirement,
    RequirementsRequest,
    RequirementsResponse,
    RequirementsSummary,
)
from flowforge.schemas.common import MessageResponse, money
from flowforge.services import bom_service, order_estimator

router = APIRouter()
logger = logging.getLogger(__name__)


def bom_query(
    product_id: Optional[int] = Query(None),
    status: Optional[BOMStatus] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> BOMQuery:
    return BOMQuery(product_id=product_id, status=status, search=search, page=page, limit=limit)


# ============================================================================
# Response builders
# ============================================================================

def build_bom_response(bom: BillOfMaterials) -> BOMResponse:
    return BOMResponse(
        id=bom.id,
        product_id=bom.product_id,
        product_name=bom.product.name if bom.product else None,
        product_sku=bom.product.sku if bom.product else None,
        name=bom.name,
        version=bom.version,
        status=bom.status,
        notes=bom.notes,
        unit_cost=money(bom_service.bom_unit_cost(bom)),
        component_count=len(bom.items),
        created_at=bom.created_at,
        updated_at=bom.updated_at,
    )


def build_bom_detail(bom: BillOfMaterials) -> BOMDetailResponse:
    items = []
    for item in bom.items:
        component = item.component
        available = Decimal(component.quantity or 0)
        unit_cost = Decimal(component.unit_cost or 0)
        items.append(
            BOMItemResponse(
                id=item.id,
                component_id=item.component_id,
                component_sku=component.sku,
                component_name=component.name,
                quantity=item.quantity,
                unit=item.unit,
                sequence=item.sequence,
                notes=item.notes,
                unit_cost=unit_cost,
                line_cost=money(Decimal(item.quantity) * unit_cost),
                available=available,
                can_fulfill=available >= Decimal(item.quantity),
            )
        )
    return BOMDetailResponse(
        **build_bom_response(bom).model_dump(),
        can_build_one=all(i.can_fulfill for i in items),
        items=items,
    )


# ============================================================================
# Endpoints
# NOTE: fixed paths are declared before /{bom_id}
# ============================================================================

@router.get("", response_model=BOMListResponse)
async def list_boms(
    options: BOMQuery = Depends(bom_query),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(BillOfMaterials)
    if options.product_id:
        query = query.filter(BillOfMaterials.product_id == options.product_id)
    if options.status:
        query = query.filter(BillOfMaterials.status == options.status.value)
    if options.search:
        term = f"%{options.search}%"
        query = query.join(Product, BillOfMaterials.product_id == Product.id).filter(
            or_(BillOfMaterials.name.ilike(term), Product.name.ilike(term), Product.sku.ilike(term))
        )
    boms, pagination = paginate(query, options, BillOfMaterials.updated_at.desc(), BillOfMaterials.id.desc())
    return BOMListResponse(items=[build_bom_response(b) for b in boms], pagination=pagination)


@router.get("/stats", response_model=BOMStatsResponse)
async def get_bom_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return BOMStatsResponse(**bom_service.bom_stats(db))


@router.post("/calculate-requirements", response_model=RequirementsResponse)
async def calculate_requirements(
    body: RequirementsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Material requirements and cost of ``quantity`` units from the product's
    ACTIVE BOM. Read-only: stock is not touched.
    """
    if db.get(Product, body.product_id) is None:
        raise NotFoundError("Product", body.product_id)

    estimate = order_estimator.estimate(db, body.product_id, body.quantity)
    evaluation = estimate.evaluation
    return RequirementsResponse(
        bom_id=estimate.bom.id,
        product_id=body.product_id,
        quantity=body.quantity,
        requirements=[
            ComponentRequirement(
                component_id=line.component_id,
                component_sku=line.component_sku,
                component_name=line.component_name,
                unit=line.unit,
                quantity_per_unit=line.quantity_per_unit,
                required=line.required,
                available=line.available,
                shortfall=line.shortfall,
                unit_cost=line.unit_cost,
                line_cost=money(line.line_cost),
                can_fulfill=line.can_fulfill,
            )
            for line in evaluation.lines
        ],
        summary=RequirementsSummary(
            total_cost=money(evaluation.total_cost),
            can_fulfill=evaluation.can_fulfill,
            shortfall_count=evaluation.shortfall_count,
        ),
    )


@router.get("/{bom_id}", response_model=BOMDetailResponse)
async def get_bom(
    bom_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_bom_detail(bom_service.get_bom(db, bom_id))


@router.post("", response_model=BOMDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_bom(
    request: Request,
    body: BOMCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Create a BOM with at least one item. status=ACTIVE activates it immediately."""
    bom = run_in_transaction(db, lambda: bom_service.create_bom(db, body), retry_on=UNIQUE_RACE_ERRORS)
    audit_log("BOM_CREATED", user_id=current_user.id, resource_type="bom", resource_id=bom.id,
              details={"product_id": bom.product_id, "status": bom.status, "item_count": len(body.items)},
              ip_address=get_client_ip(request))
    return build_bom_detail(bom)


@router.put("/{bom_id}", response_model=BOMDetailResponse)
async def update_bom(
    request: Request,
    bom_id: int,
    body: BOMUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Update header fields; ``items`` replaces the whole item list.

    Items and version of an ACTIVE BOM can only change in a request that
    also moves it out of ACTIVE.
    """
    def work():
        return bom_service.update_bom(db, bom_service.get_bom(db, bom_id), body)

    bom = run_in_transaction(db, work, retry_on=UNIQUE_RACE_ERRORS)
    audit_log("BOM_UPDATED", user_id=current_user.id, resource_type="bom", resource_id=bom.id,
              details={"changes": sorted(body.model_dump(exclude_unset=True)), "status": bom.status},
              ip_address=get_client_ip(request))
    return build_bom_detail(bom)


@router.post("/{bom_id}/activate", response_model=BOMDetailResponse)
async def activate_bom(
    request: Request,
    bom_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Make this the product's only ACTIVE BOM."""
    def work():
        return bom_service.activate_bom(db, bom_service.get_bom(db, bom_id))

    bom = run_in_transaction(db, work, retry_on=UNIQUE_RACE_ERRORS)
    audit_log("BOM_ACTIVATED", user_id=current_user.id, resource_type="bom", resource_id=bom.id,
              details={"product_id": bom.product_id}, ip_address=get_client_ip(request))
    return build_bom_detail(bom)


@router.delete("/{bom_id}", response_model=MessageResponse)
async def delete_bom(
    request: Request,
    bom_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Delete a BOM no open manufacturing order uses."""
    run_in_transaction(db, lambda: bom_service.delete_bom(db, bom_service.get_bom(db, bom_id)))
    audit_log("BOM_DELETED", user_id=current_user.id, resource_type="bom", resource_id=bom_id,
              ip_address=get_client_ip(request))
    return MessageResponse(message="Bill of Materials deleted successfully")
