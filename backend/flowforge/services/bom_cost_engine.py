"""
BOM Cost Engine

Pure cost and feasibility rollup of a bill of materials against current
stock. Reads component rows that are already loaded, never writes.

Amounts are carried at full Decimal precision. Rounding to cents happens
only when a response is built.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List

from flowforge.exceptions import InvalidQuantityError
from flowforge.services.stock_ledger import to_quantity

ZERO = Decimal("0")


@dataclass
class ComponentLine:
    component_id: int
    component_sku: str
    component_name: str
    unit: str
    quantity_per_unit: Decimal
    required: Decimal
    available: Decimal
    shortfall: Decimal
    unit_cost: Decimal
    line_cost: Decimal

    @property
    def can_fulfill(self) -> bool:
        return self.shortfall == 0


@dataclass
class BOMEvaluation:
    bom_id: int
    produced_quantity: Decimal
    lines: List[ComponentLine] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return sum((line.line_cost for line in self.lines), ZERO)

    @property
    def shortfall_count(self) -> int:
        return sum(1 for line in self.lines if not line.can_fulfill)

    @property
    def can_fulfill(self) -> bool:
        return self.shortfall_count == 0

    @property
    def shortfall_lines(self) -> List[ComponentLine]:
        return [line for line in self.lines if not line.can_fulfill]

    def summary(self) -> dict:
        return {
            "total_cost": self.total_cost,
            "can_fulfill": self.can_fulfill,
            "shortfall_count": self.shortfall_count,
        }


def evaluate(bom: Any, produced_quantity: Any) -> BOMEvaluation:
    """
    Cost a BOM for ``produced_quantity`` units of its product.

    For every item: required = per-unit quantity x produced quantity,
    shortfall = max(0, required - on hand), line cost = required x unit cost
    (a missing unit cost counts as zero). An archived component has nothing
    available. Lines come back in sequence order.
    """
    produced = to_quantity(produced_quantity)
    if produced <= 0:
        raise InvalidQuantityError("Produced quantity must be greater than 0", quantity=produced)

    evaluation = BOMEvaluation(bom_id=bom.id, produced_quantity=produced)

    for item in sorted(bom.items, key=lambda i: (i.sequence or 0, i.id or 0)):
        component = item.component
        per_unit = Decimal(item.quantity)
        required = per_unit * produced
        # archived items cannot be issued, so none of their stock counts
        available = ZERO if component.is_archived else Decimal(component.quantity or 0)
        unit_cost = Decimal(component.unit_cost or 0)

        evaluation.lines.append(
            ComponentLine(
                component_id=component.id,
                component_sku=component.sku,
                component_name=component.name,
                unit=item.unit or "pcs",
                quantity_per_unit=per_unit,
                required=required,
                available=available,
                shortfall=max(ZERO, required - available),
                unit_cost=unit_cost,
                line_cost=required * unit_cost,
            )
        )

    return evaluation
