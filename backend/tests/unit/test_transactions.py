"""
Unit tests for run_in_transaction and concurrent stock movements

The concurrency tests use a file-backed SQLite database so that every
session gets its own connection, as separate requests would.
"""
import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from flowforge.db.base import Base
from flowforge.db.session import run_in_transaction
from flowforge.exceptions import BusinessRuleError, InsufficientStockError, StorageConflictError
from flowforge.models.stock import StockItem, StockMovement
from flowforge.models.user import User
from flowforge.services.stock_ledger import MOVEMENT_IN, MOVEMENT_OUT, StockLedger


class FakeSession:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class TestRunInTransaction:

    def test_commits_and_returns_result(self):
        db = FakeSession()

        assert run_in_transaction(db, lambda: 42) == 42
        assert (db.commits, db.rollbacks) == (1, 0)

    def test_business_errors_roll_back_without_retry(self):
        db = FakeSession()
        calls = []

        def work():
            calls.append(1)
            raise BusinessRuleError("nope")

        with pytest.raises(BusinessRuleError):
            run_in_transaction(db, work, attempts=3)

        assert len(calls) == 1
        assert (db.commits, db.rollbacks) == (0, 1)

    def test_transient_conflict_is_retried(self):
        db = FakeSession()
        calls = []

        def work():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return "ok"

        assert run_in_transaction(db, work, attempts=3) == "ok"
        assert len(calls) == 2
        assert (db.commits, db.rollbacks) == (1, 1)

    def test_exhausted_retries_raise_storage_conflict(self):
        db = FakeSession()

        def work():
            raise OperationalError("UPDATE stock_items", {}, Exception("database is locked"))

        with pytest.raises(StorageConflictError) as exc_info:
            run_in_transaction(db, work, attempts=2)

        assert exc_info.value.status_code == 503
        assert exc_info.value.details == {"attempts": 2}
        assert db.rollbacks == 2


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory over a throwaway SQLite file, seeded with a user and 100 units of one item"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = Session()
    user = User(email="ops@example.com", password_hash="x", role="INVENTORY")
    item = StockItem(sku="WIDGET", name="Widget", quantity=Decimal("0"))
    db.add_all([user, item])
    db.flush()
    StockLedger(db).post_movement(item.id, MOVEMENT_IN, 100, user_id=user.id)
    db.commit()
    ids = {"user_id": user.id, "item_id": item.id}
    db.close()

    yield Session, ids
    engine.dispose()


class TestConcurrentMovements:

    def test_stale_read_is_refreshed_before_validation(self, file_sessions):
        Session, ids = file_sessions
        first, second = Session(), Session()
        try:
            # Both requests have seen quantity=100
            assert second.get(StockItem, ids["item_id"]).quantity == Decimal("100")

            run_in_transaction(
                first,
                lambda: StockLedger(first).post_movement(ids["item_id"], MOVEMENT_OUT, 60, user_id=ids["user_id"]),
            )

            with pytest.raises(InsufficientStockError) as exc_info:
                run_in_transaction(
                    second,
                    lambda: StockLedger(second).post_movement(
                        ids["item_id"], MOVEMENT_OUT, 60, user_id=ids["user_id"]
                    ),
                )
            assert exc_info.value.available == Decimal("40")
        finally:
            first.close()
            second.close()

    def test_version_check_rejects_a_lost_update(self, file_sessions):
        Session, ids = file_sessions
        first, second = Session(), Session()
        try:
            stale = second.get(StockItem, ids["item_id"])
            run_in_transaction(
                first,
                lambda: StockLedger(first).post_movement(ids["item_id"], MOVEMENT_OUT, 60, user_id=ids["user_id"]),
            )

            stale.quantity = Decimal("40")
            with pytest.raises(StaleDataError):
                second.flush()
            second.rollback()
        finally:
            first.close()
            second.close()

    def test_two_simultaneous_outs_exactly_one_wins(self, file_sessions, monkeypatch):
        Session, ids = file_sessions
        both_read = threading.Barrier(2, timeout=10)
        seen = threading.local()
        original_lock = StockLedger.lock_stock_item

        def lock_then_wait(self, stock_item_id):
            item = original_lock(self, stock_item_id)
            if not getattr(seen, "waited", False):
                seen.waited = True
                both_read.wait()
            return item

        monkeypatch.setattr(StockLedger, "lock_stock_item", lock_then_wait)

        outcomes = []

        def request():
            db = Session()
            try:
                run_in_transaction(
                    db,
                    lambda: StockLedger(db).post_movement(ids["item_id"], MOVEMENT_OUT, 60, user_id=ids["user_id"]),
                    attempts=5,
                )
                outcomes.append("ok")
            except InsufficientStockError:
                outcomes.append("insufficient")
            finally:
                db.close()

        threads = [threading.Thread(target=request) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert sorted(outcomes) == ["insufficient", "ok"]

        db = Session()
        try:
            item = db.get(StockItem, ids["item_id"])
            outs = db.query(StockMovement).filter(StockMovement.movement_type == MOVEMENT_OUT).all()
            assert item.quantity == Decimal("40")
            assert item.quantity >= 0
            assert len(outs) == 1
        finally:
            db.close()
