"""
Sequential document numbers: MO-YYYY-NNN, WO-YYYY-NNNN
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session


def next_code(db: Session, column, prefix: str, width: int, year: Optional[int] = None) -> str:
    """Next ``{prefix}-{year}-{seq}`` after the highest existing code for the year."""
    year = year or datetime.utcnow().year
    stem = f"{prefix}-{year}-"
    last = (
        db.query(column)
        .filter(column.like(f"{stem}%"))
        # Longer codes sort first so -1000 beats -999
        .order_by(desc(func.length(column)), desc(column))
        .first()
    )
    next_num = 1
    if last:
        try:
            next_num = int(last[0][len(stem):]) + 1
        except ValueError:
            next_num = 1
    return f"{stem}{next_num:0{width}d}"
