"""
Shared test fixtures

Every test gets a fresh in-memory SQLite schema. The app's get_db dependency
is overridden to hand out the test session.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ.setdefault("DB_AUTO_CREATE", "false")
os.environ.setdefault("AUDIT_LOG_FILE", "")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import flowforge.models  # noqa: F401
from flowforge.core.security import create_access_token, hash_password
from flowforge.db.base import Base
from flowforge.db.session import get_db
from flowforge.main import app
from flowforge.models.bom import BillOfMaterials, BOMItem
from flowforge.models.product import Product
from flowforge.models.stock import StockItem
from flowforge.models.user import User
from flowforge.services.stock_ledger import MOVEMENT_IN, StockLedger


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "SecurePass123!"
_PASSWORD_HASH = None


def _password_hash() -> str:
    global _PASSWORD_HASH
    if _PASSWORD_HASH is None:
        _PASSWORD_HASH = hash_password(TEST_PASSWORD)
    return _PASSWORD_HASH


@pytest.fixture
def db_session():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """Create a test client with database override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============================================================================
# Users and auth headers
# ============================================================================

@pytest.fixture
def make_user(db_session):
    def _make(role: str = "OPERATOR", email: str = None, **fields) -> User:
        user = User(
            email=email or f"{role.lower()}@example.com",
            password_hash=_password_hash(),
            first_name=fields.pop("first_name", role.title()),
            last_name=fields.pop("last_name", "Tester"),
            role=role,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def admin_user(make_user):
    return make_user("ADMIN")


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def manager_headers(make_user):
    return auth_headers(make_user("MANAGER"))


@pytest.fixture
def inventory_headers(make_user):
    return auth_headers(make_user("INVENTORY"))


@pytest.fixture
def operator_headers(make_user):
    return auth_headers(make_user("OPERATOR"))


# ============================================================================
# Domain factories
# ============================================================================

@pytest.fixture
def make_stock_item(db_session, admin_user):
    """Stock item whose opening quantity is posted through the ledger."""
    counter = {"n": 0}

    def _make(quantity="0", unit_cost="0", sku: str = None, **fields) -> StockItem:
        counter["n"] += 1
        item = StockItem(
            sku=sku or f"CMP-{counter['n']:03d}",
            name=fields.pop("name", f"Component {counter['n']}"),
            quantity=Decimal("0"),
            unit_cost=Decimal(str(unit_cost)),
            reorder_point=Decimal(str(fields.pop("reorder_point", "0"))),
            **fields,
        )
        db_session.add(item)
        db_session.flush()
        if Decimal(str(quantity)) > 0:
            StockLedger(db_session).post_movement(
                item.id, MOVEMENT_IN, Decimal(str(quantity)), user_id=admin_user.id, reference="Initial Stock"
            )
        db_session.commit()
        return item
    return _make


@pytest.fixture
def make_product(db_session):
    counter = {"n": 0}

    def _make(name: str = None, **fields) -> Product:
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            sku=fields.pop("sku", f"FG-{counter['n']:03d}"),
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_bom(db_session):
    """BOM from (stock_item, per-unit quantity) pairs, written directly."""
    def _make(product: Product, lines, status: str = "ACTIVE", version: str = "1.0") -> BillOfMaterials:
        bom = BillOfMaterials(product_id=product.id, name=f"{product.name} BOM", version=version, status=status)
        bom.items = [
            BOMItem(component_id=item.id, quantity=Decimal(str(qty)), sequence=index + 1)
            for index, (item, qty) in enumerate(lines)
        ]
        db_session.add(bom)
        db_session.commit()
        return bom
    return _make
