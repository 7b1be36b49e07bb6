"""
Shared endpoint helpers
"""
from typing import List, Tuple

from flowforge.schemas.common import PageOptions, PaginationMeta


def paginate(query, options: PageOptions, *order_by) -> Tuple[List, PaginationMeta]:
    """Count, order and slice a query for one page of ``options``."""
    total = query.order_by(None).count()
    if order_by:
        query = query.order_by(*order_by)
    rows = query.offset(options.offset).limit(options.limit).all()
    return rows, PaginationMeta.build(options, total)
