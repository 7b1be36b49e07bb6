"""
Reports Service

Read-only aggregations for the dashboard, inventory and cost reports.
"""
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.stock import StockItem, StockMovement
from flowforge.models.work_center import WorkCenter
from flowforge.models.work_order import WorkOrder

ZERO = Decimal("0")
DEFAULT_COST_WINDOW_DAYS = 90
MOVEMENT_WINDOW_DAYS = 30


def dashboard(db: Session, period_days: int = 30) -> Dict[str, int]:
    def count(model, *criteria) -> int:
        return db.query(func.count(model.id)).filter(*criteria).scalar() or 0

    return {
        "period_days": period_days,
        "manufacturing_orders": count(ManufacturingOrder),
        "active_orders": count(ManufacturingOrder, ManufacturingOrder.status.in_(("PENDING", "STARTED", "PAUSED"))),
        "completed_orders": count(ManufacturingOrder, ManufacturingOrder.status == "COMPLETED"),
        "work_orders": count(WorkOrder),
        "pending_work_orders": count(WorkOrder, WorkOrder.status == "PENDING"),
        "work_centers": count(WorkCenter),
        "stock_items": count(StockItem, StockItem.is_archived == False),  # noqa: E712
        "low_stock_items": count(
            StockItem,
            StockItem.is_archived == False,  # noqa: E712
            StockItem.quantity <= StockItem.reorder_point,
        ),
    }


def inventory_report(db: Session, now: Optional[datetime] = None) -> Dict[str, object]:
    now = now or datetime.utcnow()
    items = db.query(StockItem).filter(StockItem.is_archived == False).all()  # noqa: E712

    categories: "OrderedDict[str, dict]" = OrderedDict()
    for item in sorted(items, key=lambda i: i.category):
        bucket = categories.setdefault(
            item.category,
            {"category": item.category, "items": 0, "quantity": ZERO, "value": ZERO},
        )
        bucket["items"] += 1
        bucket["quantity"] += Decimal(item.quantity or 0)
        bucket["value"] += Decimal(item.stock_value)

    since = now - timedelta(days=MOVEMENT_WINDOW_DAYS)
    movements = (
        db.query(StockMovement.movement_type, StockMovement.quantity)
        .filter(StockMovement.created_at >= since)
        .all()
    )
    by_type: "OrderedDict[str, dict]" = OrderedDict()
    for movement_type, quantity in movements:
        bucket = by_type.setdefault(
            movement_type,
            {"movement_type": movement_type, "count": 0, "quantity": ZERO},
        )
        bucket["count"] += 1
        bucket["quantity"] += Decimal(quantity)

    return {
        "total_items": len(items),
        "total_value": sum((b["value"] for b in categories.values()), ZERO),
        "low_stock_count": sum(1 for item in items if item.is_low_stock),
        "out_of_stock_count": sum(1 for item in items if (item.quantity or 0) <= 0),
        "categories": list(categories.values()),
        "movements_last_30_days": [by_type[k] for k in sorted(by_type)],
    }


def _variance_percent(estimated: Decimal, actual: Decimal) -> Optional[float]:
    if estimated <= 0:
        return None
    return round(float((actual - estimated) / estimated * 100), 1)


def cost_report(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    group_by: str = "month",
) -> Dict[str, object]:
    """Estimated vs actual cost of orders completed in the window, per day or month."""
    end = end_date or datetime.utcnow()
    start = start_date or end - timedelta(days=DEFAULT_COST_WINDOW_DAYS)
    key_format = "%Y-%m" if group_by == "month" else "%Y-%m-%d"

    orders = (
        db.query(ManufacturingOrder)
        .filter(
            ManufacturingOrder.status == "COMPLETED",
            ManufacturingOrder.completed_at >= start,
            ManufacturingOrder.completed_at <= end,
        )
        .order_by(ManufacturingOrder.completed_at)
        .all()
    )

    periods: "OrderedDict[str, dict]" = OrderedDict()
    for order in orders:
        key = order.completed_at.strftime(key_format)
        bucket = periods.setdefault(
            key,
            {"period": key, "orders": 0, "estimated_cost": ZERO, "actual_cost": ZERO},
        )
        bucket["orders"] += 1
        bucket["estimated_cost"] += Decimal(order.estimated_cost or 0)
        bucket["actual_cost"] += Decimal(order.actual_cost or 0)

    total_estimated = ZERO
    total_actual = ZERO
    for bucket in periods.values():
        bucket["variance"] = bucket["actual_cost"] - bucket["estimated_cost"]
        bucket["variance_percent"] = _variance_percent(bucket["estimated_cost"], bucket["actual_cost"])
        total_estimated += bucket["estimated_cost"]
        total_actual += bucket["actual_cost"]

    return {
        "start_date": start,
        "end_date": end,
        "group_by": group_by,
        "periods": list(periods.values()),
        "totals": {
            "estimated_cost": total_estimated,
            "actual_cost": total_actual,
            "variance": total_actual - total_estimated,
        },
    }
