"""
Products API Endpoints
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
import logging

from flowforge.api.v1.endpoints.auth import get_current_user, require_roles
from flowforge.core.security import MANAGER_ROLES
from flowforge.db.session import get_db, run_in_transaction
from flowforge.exceptions import DuplicateError, NotFoundError
from flowforge.models.product import Product
from flowforge.models.user import User
from flowforge.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from flowforge.services.bom_service import active_bom_id

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def _check_sku_free(db: Session, sku: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not sku:
        return
    query = db.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise DuplicateError("SKU", sku)


def build_product_response(db: Session, product: Product) -> ProductResponse:
    response = ProductResponse.model_validate(product)
    response.active_bom_id = active_bom_id(db, product.id)
    return response


@router.get("", response_model=List[ProductResponse])
async def list_products(
    category: Optional[str] = Query(None),
    active_only: bool = Query(True),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    List products with optional filtering

    - **category**: Filter by category
    - **active_only**: Only show active products (default: True)
    - **search**: Search by SKU or name
    """
    query = db.query(Product)
    if category:
        query = query.filter(Product.category == category.upper())
    if active_only:
        query = query.filter(Product.is_active == True)  # noqa: E712
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Product.sku.ilike(term), Product.name.ilike(term)))
    return [build_product_response(db, p) for p in query.order_by(Product.name).all()]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_product_response(db, _get_product(db, product_id))


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    def work():
        _check_sku_free(db, body.sku)
        product = Product(**body.model_dump())
        db.add(product)
        db.flush()
        return product

    product = run_in_transaction(db, work)
    logger.info("Product created", extra={"product_id": product.id, "sku": product.sku})
    return build_product_response(db, product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    body: ProductUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    def work():
        product = _get_product(db, product_id)
        changes = body.model_dump(exclude_unset=True)
        if "sku" in changes:
            _check_sku_free(db, changes["sku"], exclude_id=product.id)
        for field, value in changes.items():
            setattr(product, field, value)
        db.flush()
        return product

    return build_product_response(db, run_in_transaction(db, work))
