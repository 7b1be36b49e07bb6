"""
API v1 Router - FlowForge
"""
from fastapi import APIRouter
from flowforge.api.v1.endpoints import (
    auth,
    products,
    stock,
    bom,
    manufacturing_orders,
    work_orders,
    work_centers,
    reports,
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Products
router.include_router(
    products.router,
    prefix="/products",
    tags=["products"]
)

# Stock items and the movement ledger
router.include_router(
    stock.router,
    prefix="/stock",
    tags=["stock"]
)

# Bills of Materials
router.include_router(
    bom.router,
    prefix="/bom",
    tags=["bom"]
)

# Manufacturing Orders
router.include_router(
    manufacturing_orders.router,
    prefix="/manufacturing-orders",
    tags=["manufacturing"]
)

# Work Orders
router.include_router(
    work_orders.router,
    prefix="/work-orders",
    tags=["manufacturing"]
)

# Work Centers
router.include_router(
    work_centers.router,
    prefix="/work-centers",
    tags=["manufacturing"]
)

# Reports
router.include_router(
    reports.router,
    prefix="/reports",
    tags=["reports"]
)
