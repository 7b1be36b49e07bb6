"""
Integration tests for stock item and movement endpoints
"""
from decimal import Decimal

import pytest

from flowforge.models.stock import StockItem, StockMovement


MOVEMENTS_URL = "/api/v1/stock/movements"


@pytest.fixture
def bolts(make_stock_item):
    return make_stock_item(quantity="150", unit_cost="0.15", sku="BOLT-M6", name="M6 Bolt", reorder_point="20")


class TestPostMovement:
    """POST /api/v1/stock/movements"""

    def test_in_movement(self, client, inventory_headers, bolts):
        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": bolts.id, "type": "IN", "quantity": 100, "reference": "PO-1001"},
            headers=inventory_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["movement"]["movement_type"] == "IN"
        assert Decimal(data["movement"]["previous_quantity"]) == Decimal("150")
        assert Decimal(data["movement"]["new_quantity"]) == Decimal("250")
        assert Decimal(data["stock_item"]["quantity"]) == Decimal("250")
        assert data["stock_item"]["last_movement"]["reference"] == "PO-1001"

    def test_out_beyond_on_hand_is_rejected(self, client, db_session, inventory_headers, make_stock_item):
        item = make_stock_item(quantity="75")

        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": item.id, "type": "OUT", "quantity": 100},
            headers=inventory_headers,
        )

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "INSUFFICIENT_STOCK"
        assert data["details"]["available"] == 75
        assert data["details"]["requested"] == 100
        assert data["message"].endswith("Available: 75, Requested: 100")

        db_session.expire_all()
        assert db_session.get(StockItem, item.id).quantity == Decimal("75")
        assert db_session.query(StockMovement).filter(StockMovement.stock_item_id == item.id).count() == 1

    def test_adjustment_sets_on_hand(self, client, inventory_headers, bolts):
        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": bolts.id, "type": "ADJUSTMENT", "quantity": "140", "notes": "Cycle count"},
            headers=inventory_headers,
        )

        assert response.status_code == 201
        assert Decimal(response.json()["movement"]["quantity"]) == Decimal("-10")
        assert Decimal(response.json()["stock_item"]["quantity"]) == Decimal("140")

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, client, inventory_headers, bolts, quantity):
        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": bolts.id, "type": "OUT", "quantity": quantity},
            headers=inventory_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_QUANTITY"

    def test_unknown_item(self, client, inventory_headers):
        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": 4040, "type": "IN", "quantity": 1},
            headers=inventory_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_unknown_type_fails_validation(self, client, inventory_headers, bolts):
        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": bolts.id, "type": "TRANSFER", "quantity": 1},
            headers=inventory_headers,
        )

        assert response.status_code == 422

    def test_operator_cannot_post(self, client, operator_headers, bolts):
        response = client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": bolts.id, "type": "IN", "quantity": 1},
            headers=operator_headers,
        )

        assert response.status_code == 403

    def test_requires_authentication(self, client, bolts):
        response = client.post(MOVEMENTS_URL, json={"stock_item_id": bolts.id, "type": "IN", "quantity": 1})

        assert response.status_code == 401


class TestListMovements:
    """GET /api/v1/stock/movements"""

    def test_newest_first_with_item_details(self, client, operator_headers, inventory_headers, bolts):
        client.post(
            MOVEMENTS_URL,
            json={"stock_item_id": bolts.id, "type": "OUT", "quantity": 5},
            headers=inventory_headers,
        )

        response = client.get(MOVEMENTS_URL, params={"stock_item_id": bolts.id}, headers=operator_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total"] == 2
        assert [row["movement_type"] for row in data["items"]] == ["OUT", "IN"]
        assert data["items"][0]["stock_item_sku"] == "BOLT-M6"
        assert data["items"][0]["user_email"] == "inventory@example.com"

    def test_filter_by_type(self, client, admin_headers, bolts, make_stock_item):
        make_stock_item(quantity="3")

        response = client.get(MOVEMENTS_URL, params={"type": "OUT"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["items"] == []


class TestStockItems:
    """/api/v1/stock"""

    def test_create_posts_initial_stock(self, client, db_session, inventory_headers):
        response = client.post(
            "/api/v1/stock",
            json={"sku": "WASH-M6", "name": "M6 Washer", "category": "hardware", "quantity": "500",
                  "unit_cost": "0.02"},
            headers=inventory_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["category"] == "HARDWARE"
        assert Decimal(data["quantity"]) == Decimal("500")
        assert Decimal(data["stock_value"]) == Decimal("10.00")
        movement = db_session.query(StockMovement).filter(StockMovement.stock_item_id == data["id"]).one()
        assert movement.reference == "Initial Stock"
        assert movement.movement_type == "IN"

    def test_duplicate_sku(self, client, inventory_headers, bolts):
        response = client.post(
            "/api/v1/stock",
            json={"sku": "BOLT-M6", "name": "Another bolt"},
            headers=inventory_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "DUPLICATE"

    def test_update_cannot_touch_quantity(self, client, inventory_headers, bolts):
        response = client.put(
            f"/api/v1/stock/{bolts.id}",
            json={"location": "Bin A4", "quantity": 1},
            headers=inventory_headers,
        )

        assert response.status_code == 200
        assert response.json()["location"] == "Bin A4"
        assert Decimal(response.json()["quantity"]) == Decimal("150")

    def test_detail_includes_totals(self, client, operator_headers, bolts):
        response = client.get(f"/api/v1/stock/{bolts.id}", headers=operator_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_movements"] == 1
        assert Decimal(data["total_in"]) == Decimal("150")
        assert Decimal(data["total_out"]) == Decimal("0")

    def test_unused_item_is_deleted(self, client, db_session, inventory_headers, make_stock_item):
        item = make_stock_item()
        item_id = item.id

        response = client.delete(f"/api/v1/stock/{item_id}", headers=inventory_headers)

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(StockItem, item_id) is None

    def test_item_with_history_is_archived(self, client, db_session, inventory_headers, operator_headers, bolts):
        response = client.delete(f"/api/v1/stock/{bolts.id}", headers=inventory_headers)

        assert response.status_code == 200
        assert "archived" in response.json()["message"]
        listing = client.get("/api/v1/stock", headers=operator_headers).json()
        assert listing["items"] == []
        archived = client.get("/api/v1/stock", params={"include_archived": True}, headers=operator_headers).json()
        assert [row["sku"] for row in archived["items"]] == ["BOLT-M6"]

    def test_list_filters_and_paginates(self, client, operator_headers, make_stock_item):
        for _ in range(3):
            make_stock_item(quantity="1", reorder_point="5")
        make_stock_item(quantity="50", reorder_point="5", sku="PLENTY")

        low = client.get("/api/v1/stock", params={"low_stock": True, "limit": 2}, headers=operator_headers).json()

        assert low["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert len(low["items"]) == 2
        assert all(row["is_low_stock"] for row in low["items"])

        found = client.get("/api/v1/stock", params={"search": "plen"}, headers=operator_headers).json()
        assert [row["sku"] for row in found["items"]] == ["PLENTY"]

    def test_stats(self, client, operator_headers, make_stock_item):
        make_stock_item(quantity="10", unit_cost="2.5")
        make_stock_item(quantity="0", unit_cost="9")

        response = client.get("/api/v1/stock/stats", headers=operator_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_items"] == 2
        assert data["out_of_stock_count"] == 1
        assert Decimal(data["total_value"]) == Decimal("25.00")
        assert data["categories"] == {"GENERAL": 2}
