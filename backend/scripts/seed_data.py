"""
Seed Example Data for FlowForge

This script seeds the database with:
1. One user per role, plus the demo user used by the development auth bypass
2. Work centers
3. Stock items, with opening quantities posted through the stock ledger
4. An example product with an ACTIVE bill of materials

Run with: python backend/scripts/seed_data.py
"""
import sys
from pathlib import Path

# Make the flowforge package importable when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from flowforge.core.config import settings
from flowforge.core.security import hash_password
from flowforge.db.session import SessionLocal, init_db, run_in_transaction
from flowforge.models.product import Product
from flowforge.models.stock import StockItem
from flowforge.models.user import User
from flowforge.models.work_center import WorkCenter
from flowforge.schemas.bom import BOMCreate, BOMItemCreate, BOMStatus
from flowforge.schemas.stock import StockItemCreate
from flowforge.schemas.work_center import WorkCenterCreate, WorkCenterType
from flowforge.services import bom_service, stock_service, work_center_service

DEFAULT_PASSWORD = "FlowForge123!"

USERS = [
    {"email": "admin@flowforge.com", "first_name": "Ada", "last_name": "Admin", "role": "ADMIN"},
    {"email": "manager@flowforge.com", "first_name": "Morgan", "last_name": "Manager", "role": "MANAGER"},
    {"email": "operator@flowforge.com", "first_name": "Oakley", "last_name": "Operator", "role": "OPERATOR"},
    {"email": "inventory@flowforge.com", "first_name": "Indy", "last_name": "Stock", "role": "INVENTORY"},
    {"email": settings.DEMO_USER_EMAIL, "first_name": "Demo", "last_name": "User", "role": "MANAGER"},
]

WORK_CENTERS = [
    {"name": "Assembly Line 1", "type": WorkCenterType.ASSEMBLY, "location": "Hall A", "capacity": 3, "hourly_rate": Decimal("45.00")},
    {"name": "CNC Mill", "type": WorkCenterType.MACHINING, "location": "Hall B", "capacity": 1, "hourly_rate": Decimal("80.00")},
    {"name": "QA Bench", "type": WorkCenterType.QUALITY, "location": "Hall A", "capacity": 2, "hourly_rate": Decimal("35.00")},
    {"name": "Packing Station", "type": WorkCenterType.PACKAGING, "location": "Dock", "capacity": 2, "hourly_rate": Decimal("25.00")},
]

STOCK_ITEMS = [
    {"sku": "STL-FRAME-01", "name": "Steel Frame", "category": "RAW", "unit_cost": Decimal("12.50"), "quantity": Decimal("200"), "reorder_point": Decimal("40")},
    {"sku": "BLT-M6-20", "name": "Bolt M6x20", "category": "HARDWARE", "unit_cost": Decimal("0.15"), "quantity": Decimal("5000"), "reorder_point": Decimal("1000")},
    {"sku": "PNL-ALU-02", "name": "Aluminium Panel", "category": "RAW", "unit_cost": Decimal("8.75"), "quantity": Decimal("120"), "reorder_point": Decimal("30")},
    {"sku": "MTR-24V", "name": "24V Motor", "category": "ELECTRONICS", "unit_cost": Decimal("32.00"), "quantity": Decimal("25"), "reorder_point": Decimal("10")},
    {"sku": "BOX-L", "name": "Shipping Box (L)", "category": "PACKAGING", "unit_cost": Decimal("1.20"), "quantity": Decimal("300"), "reorder_point": Decimal("50")},
]

PRODUCT = {"sku": "FG-CART-01", "name": "Utility Cart", "category": "FINISHED_GOODS"}

# component SKU -> quantity per cart
BOM_LINES = [
    ("STL-FRAME-01", Decimal("1")),
    ("BLT-M6-20", Decimal("16")),
    ("PNL-ALU-02", Decimal("2")),
    ("MTR-24V", Decimal("1")),
    ("BOX-L", Decimal("1")),
]


def seed_users(db: Session) -> int:
    print("\n👤 Seeding users...")
    created = 0
    for data in USERS:
        if db.query(User).filter(User.email == data["email"]).first():
            print(f"  ⏭️  {data['email']} exists")
            continue
        db.add(User(password_hash=hash_password(DEFAULT_PASSWORD), **data))
        created += 1
        print(f"  ✅ {data['email']} ({data['role']})")
    db.commit()
    return created


def seed_work_centers(db: Session) -> int:
    print("\n🏭 Seeding work centers...")
    created = 0
    for data in WORK_CENTERS:
        exists = db.query(WorkCenter).filter(func.lower(WorkCenter.name) == data["name"].lower()).first()
        if exists:
            print(f"  ⏭️  {data['name']} exists")
            continue
        run_in_transaction(db, lambda: work_center_service.create_work_center(db, WorkCenterCreate(**data)))
        created += 1
        print(f"  ✅ {data['name']}")
    return created


def seed_stock(db: Session, user_id: int) -> int:
    print("\n📦 Seeding stock items...")
    created = 0
    for data in STOCK_ITEMS:
        exists = db.query(StockItem).filter(func.lower(StockItem.sku) == data["sku"].lower()).first()
        if exists:
            print(f"  ⏭️  {data['sku']} exists")
            continue
        body = StockItemCreate(**data)
        run_in_transaction(db, lambda: stock_service.create_stock_item(db, body, user_id=user_id))
        created += 1
        print(f"  ✅ {data['sku']} ({data['quantity']} on hand)")
    return created


def seed_product_and_bom(db: Session) -> bool:
    print("\n🧾 Seeding product and BOM...")
    product = db.query(Product).filter(Product.sku == PRODUCT["sku"]).first()
    if product is None:
        product = Product(**PRODUCT)
        db.add(product)
        db.commit()
        print(f"  ✅ Product {product.sku}")

    if bom_service.active_bom_id(db, product.id) is not None:
        print("  ⏭️  Active BOM exists")
        return False

    components = {
        item.sku: item.id
        for item in db.query(StockItem).filter(StockItem.sku.in_([sku for sku, _ in BOM_LINES])).all()
    }
    body = BOMCreate(
        product_id=product.id,
        name=f"{product.name} BOM",
        status=BOMStatus.ACTIVE,
        items=[BOMItemCreate(component_id=components[sku], quantity=qty) for sku, qty in BOM_LINES],
    )
    bom = run_in_transaction(db, lambda: bom_service.create_bom(db, body))
    print(f"  ✅ BOM #{bom.id} ACTIVE with {len(bom.items)} components")
    return True


def main():
    """Main seed function"""
    print("=" * 60)
    print("FlowForge Example Data Seeder")
    print("=" * 60)

    init_db()
    db: Session = SessionLocal()

    try:
        users_created = seed_users(db)
        admin = db.query(User).filter(User.email == "admin@flowforge.com").one()
        centers_created = seed_work_centers(db)
        stock_created = seed_stock(db, admin.id)
        bom_created = seed_product_and_bom(db)

        print("\n" + "=" * 60)
        print("✅ Seeding complete!")
        print("=" * 60)
        print("\nSummary:")
        print(f"  👤 Users: {users_created} created")
        print(f"  🏭 Work centers: {centers_created} created")
        print(f"  📦 Stock items: {stock_created} created")
        print(f"  🧾 Active BOM: {'created' if bom_created else 'already present'}")
        print(f"\n💡 Tip: every seeded user logs in with password {DEFAULT_PASSWORD}")

    except Exception as e:
        print(f"\n❌ Error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
