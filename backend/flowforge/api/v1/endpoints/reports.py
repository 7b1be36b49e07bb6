"""
Reports API Endpoints

Read-only dashboard, inventory and cost analytics.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from flowforge.api.v1.endpoints.auth import get_current_user
from flowforge.db.session import get_db
from flowforge.models.user import User
from flowforge.schemas.common import money
from flowforge.schemas.report import CostReportResponse, DashboardResponse, InventoryReportResponse
from flowforge.services import reports_service

router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    period: int = Query(30, ge=1, le=365, description="Reporting period in days"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return DashboardResponse(**reports_service.dashboard(db, period_days=period))


@router.get("/inventory", response_model=InventoryReportResponse)
async def get_inventory_report(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    report = reports_service.inventory_report(db)
    report["total_value"] = money(report["total_value"])
    for category in report["categories"]:
        category["value"] = money(category["value"])
    return InventoryReportResponse(**report)


@router.get("/costs", response_model=CostReportResponse)
async def get_cost_report(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    group_by: str = Query("month", pattern="^(month|day)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Estimated vs actual cost of completed manufacturing orders

    - **start_date** / **end_date**: completion window (default: last 90 days)
    - **group_by**: ``month`` or ``day``
    """
    report = reports_service.cost_report(db, start_date, end_date, group_by)
    for period in report["periods"]:
        for key in ("estimated_cost", "actual_cost", "variance"):
            period[key] = money(period[key])
    report["totals"] = {key: money(value) for key, value in report["totals"].items()}
    return CostReportResponse(**report)
