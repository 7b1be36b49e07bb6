"""
Unit tests for the manufacturing order estimator and status state machine
"""
from decimal import Decimal

import pytest

from flowforge.db.session import run_in_transaction
from flowforge.exceptions import (
    ActiveWorkBlocksCancellationError,
    InsufficientStockError,
    InvalidTransitionError,
    NoActiveBOMError,
)
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.stock import StockItem, StockMovement
from flowforge.models.work_center import WorkCenter
from flowforge.models.work_order import WorkOrder
from flowforge.schemas.manufacturing_order import ManufacturingOrderCreate
from flowforge.services import order_estimator, order_service
from flowforge.services.order_estimator import (
    CANCELLED,
    COMPLETED,
    ORDER_TRANSITIONS,
    PAUSED,
    PENDING,
    STARTED,
    check_transition,
    transition_status,
)
from flowforge.services.stock_ledger import MOVEMENT_ADJUSTMENT, StockLedger


@pytest.fixture
def cart(make_stock_item, make_product, make_bom):
    """A product with an ACTIVE two-line BOM and stock for 20 units"""
    frame = make_stock_item(quantity="20", unit_cost="12.50", sku="FRAME")
    panel = make_stock_item(quantity="40", unit_cost="8.75", sku="PANEL")
    product = make_product("Utility Cart")
    bom = make_bom(product, [(frame, 1), (panel, 2)])
    return {"product": product, "bom": bom, "frame": frame, "panel": panel}


def _create(db, product_id, quantity, user_id):
    data = ManufacturingOrderCreate(product_id=product_id, quantity=Decimal(str(quantity)))
    return run_in_transaction(db, lambda: order_service.create_order(db, data, user_id=user_id))


class TestEstimate:

    def test_estimate_costs_the_active_bom(self, db_session, cart):
        estimate = order_estimator.estimate(db_session, cart["product"].id, 4)

        # 4 x (12.50 + 2 x 8.75)
        assert estimate.estimated_cost == Decimal("120")
        assert estimate.can_manufacture is True
        assert estimate.shortfall_items == []
        assert estimate.bom.id == cart["bom"].id

    def test_estimate_reports_shortfalls(self, db_session, cart):
        estimate = order_estimator.estimate(db_session, cart["product"].id, 25)

        assert estimate.can_manufacture is False
        assert {line.component_sku for line in estimate.shortfall_items} == {"FRAME", "PANEL"}

    def test_archived_component_blocks_manufacture(self, db_session, cart):
        cart["panel"].is_archived = True
        db_session.commit()

        estimate = order_estimator.estimate(db_session, cart["product"].id, 1)

        assert estimate.can_manufacture is False
        assert [line.component_sku for line in estimate.shortfall_items] == ["PANEL"]

    def test_estimate_ignores_draft_and_inactive_boms(self, db_session, make_stock_item, make_product, make_bom):
        product = make_product()
        part = make_stock_item(quantity="5", unit_cost="1")
        make_bom(product, [(part, 1)], status="DRAFT")
        make_bom(product, [(part, 1)], status="INACTIVE", version="0.9")

        with pytest.raises(NoActiveBOMError):
            order_estimator.estimate(db_session, product.id, 1)


class TestCreateOrder:

    def test_order_without_active_bom_is_not_persisted(self, db_session, admin_user, make_product):
        product = make_product()

        with pytest.raises(NoActiveBOMError) as exc_info:
            _create(db_session, product.id, 5, admin_user.id)

        assert exc_info.value.status_code == 404
        assert db_session.query(ManufacturingOrder).count() == 0

    def test_created_order_is_pending_with_estimate(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 2, admin_user.id)

        assert order.status == PENDING
        assert order.estimated_cost == Decimal("60")
        assert order.bom_id == cart["bom"].id
        assert order.created_by_id == admin_user.id
        assert order.order_number.startswith("MO-")
        assert order.order_number.endswith("-001")

    def test_order_numbers_increase(self, db_session, admin_user, cart):
        first = _create(db_session, cart["product"].id, 1, admin_user.id)
        second = _create(db_session, cart["product"].id, 1, admin_user.id)

        assert first.order_number.endswith("-001")
        assert second.order_number.endswith("-002")

    def test_shortfall_does_not_block_creation(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 100, admin_user.id)

        assert order.status == PENDING


class TestStateMachine:

    @pytest.mark.parametrize(
        "current,new_status",
        [
            (PENDING, STARTED),
            (PENDING, CANCELLED),
            (STARTED, PAUSED),
            (STARTED, COMPLETED),
            (STARTED, CANCELLED),
            (PAUSED, STARTED),
            (PAUSED, CANCELLED),
        ],
    )
    def test_allowed_transitions(self, current, new_status):
        check_transition(current, new_status)

    @pytest.mark.parametrize(
        "current,new_status",
        [
            (COMPLETED, PENDING),
            (CANCELLED, STARTED),
            (PENDING, COMPLETED),
            (PENDING, PAUSED),
            (PAUSED, COMPLETED),
            (STARTED, PENDING),
            (STARTED, STARTED),
            (COMPLETED, CANCELLED),
        ],
    )
    def test_rejected_transitions(self, current, new_status):
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(current, new_status)
        assert exc_info.value.details == {"from_status": current, "to_status": new_status}
        assert exc_info.value.status_code == 409

    def test_terminal_states_have_no_exits(self):
        assert ORDER_TRANSITIONS[COMPLETED] == frozenset()
        assert ORDER_TRANSITIONS[CANCELLED] == frozenset()

    def test_unknown_status(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(PENDING, "SHIPPED")


class TestTransitionStatus:

    def test_start_stamps_started_at_once(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 1, admin_user.id)

        transition_status(db_session, order, STARTED, user_id=admin_user.id)
        first_started = order.started_at
        transition_status(db_session, order, PAUSED, user_id=admin_user.id)
        transition_status(db_session, order, STARTED, user_id=admin_user.id)

        assert first_started is not None
        assert order.started_at == first_started
        assert order.status == STARTED

    def test_complete_consumes_materials(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 4, admin_user.id)
        transition_status(db_session, order, STARTED, user_id=admin_user.id)

        transition_status(db_session, order, COMPLETED, user_id=admin_user.id)
        db_session.commit()

        assert order.status == COMPLETED
        assert order.completed_at is not None
        assert order.progress == 100
        assert order.actual_cost == Decimal("120")
        assert db_session.get(StockItem, cart["frame"].id).quantity == Decimal("16")
        assert db_session.get(StockItem, cart["panel"].id).quantity == Decimal("32")
        issued = db_session.query(StockMovement).filter(StockMovement.reference == order.order_number).all()
        assert sorted(m.movement_type for m in issued) == ["OUT", "OUT"]

    def test_explicit_actual_cost_wins(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 1, admin_user.id)
        transition_status(db_session, order, STARTED, user_id=admin_user.id)

        transition_status(db_session, order, COMPLETED, user_id=admin_user.id, actual_cost=Decimal("99.99"))

        assert order.actual_cost == Decimal("99.99")

    def test_completion_with_shortfall_rolls_everything_back(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 15, admin_user.id)
        run_in_transaction(db_session, lambda: transition_status(db_session, order, STARTED, user_id=admin_user.id))
        order_id, panel_id = order.id, cart["panel"].id
        # 30 panels are needed, only 10 remain
        run_in_transaction(
            db_session,
            lambda: StockLedger(db_session).post_movement(panel_id, MOVEMENT_ADJUSTMENT, 10, user_id=admin_user.id),
        )

        def complete():
            return transition_status(
                db_session, order_service.get_order(db_session, order_id), COMPLETED, user_id=admin_user.id
            )

        with pytest.raises(InsufficientStockError):
            run_in_transaction(db_session, complete)

        db_session.expire_all()
        assert db_session.get(ManufacturingOrder, order_id).status == STARTED
        assert db_session.get(StockItem, cart["frame"].id).quantity == Decimal("20")
        assert db_session.get(StockItem, panel_id).quantity == Decimal("10")
        assert db_session.query(StockMovement).filter(StockMovement.reference == order.order_number).count() == 0

    def test_cancel_cancels_pending_work_orders(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 1, admin_user.id)
        center = WorkCenter(name="Assembly", type="ASSEMBLY", status="IDLE", capacity=1)
        db_session.add(center)
        db_session.flush()
        work_order = WorkOrder(order_number="WO-2026-0001", title="Weld", manufacturing_order_id=order.id,
                               work_center_id=center.id, status=PENDING, priority="MEDIUM", progress=0)
        db_session.add(work_order)
        db_session.commit()

        transition_status(db_session, order, CANCELLED, user_id=admin_user.id)

        assert order.status == CANCELLED
        assert order.cancelled_at is not None
        assert work_order.status == CANCELLED

    def test_cancel_is_blocked_by_started_work(self, db_session, admin_user, cart):
        order = _create(db_session, cart["product"].id, 1, admin_user.id)
        center = WorkCenter(name="Assembly", type="ASSEMBLY", status="RUNNING", capacity=1)
        db_session.add(center)
        db_session.flush()
        db_session.add(WorkOrder(order_number="WO-2026-0001", title="Weld", manufacturing_order_id=order.id,
                                 work_center_id=center.id, status=STARTED, priority="MEDIUM", progress=10))
        db_session.commit()

        with pytest.raises(ActiveWorkBlocksCancellationError) as exc_info:
            transition_status(db_session, order, CANCELLED, user_id=admin_user.id)

        assert exc_info.value.details["active_work_orders"] == ["WO-2026-0001"]
        assert order.status == PENDING

    @pytest.mark.parametrize("terminal", [COMPLETED, CANCELLED])
    def test_terminal_orders_cannot_be_reopened(self, db_session, admin_user, cart, terminal):
        order = _create(db_session, cart["product"].id, 1, admin_user.id)
        if terminal == COMPLETED:
            transition_status(db_session, order, STARTED, user_id=admin_user.id)
        transition_status(db_session, order, terminal, user_id=admin_user.id)

        for target in (PENDING, STARTED):
            with pytest.raises(InvalidTransitionError):
                transition_status(db_session, order, target, user_id=admin_user.id)
        assert order.status == terminal
