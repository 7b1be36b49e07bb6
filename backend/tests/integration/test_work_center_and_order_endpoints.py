"""
Integration tests for work center and work order endpoints
"""
import pytest

from flowforge.models.work_center import WorkCenter


@pytest.fixture
def work_center(client, manager_headers):
    response = client.post(
        "/api/v1/work-centers",
        json={"name": "Assembly Line 1", "type": "ASSEMBLY", "capacity": 2, "hourly_rate": "45.00"},
        headers=manager_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def manufacturing_order(client, operator_headers, make_stock_item, make_product, make_bom):
    frame = make_stock_item(quantity="20", unit_cost="12.50")
    product = make_product("Utility Cart")
    make_bom(product, [(frame, 1)])
    response = client.post(
        "/api/v1/manufacturing-orders",
        json={"product_id": product.id, "quantity": 2},
        headers=operator_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def work_order(client, operator_headers, work_center, manufacturing_order):
    response = client.post(
        "/api/v1/work-orders",
        json={
            "title": "Weld frames",
            "manufacturing_order_id": manufacturing_order["id"],
            "work_center_id": work_center["id"],
            "estimated_hours": "4",
        },
        headers=operator_headers,
    )
    assert response.status_code == 201
    return response.json()


class TestWorkCenters:
    """/api/v1/work-centers"""

    def test_create(self, work_center):
        assert work_center["status"] == "IDLE"
        assert work_center["active_work_orders"] == 0
        assert work_center["utilization"] == 0.0

    def test_create_requires_manager(self, client, operator_headers):
        response = client.post("/api/v1/work-centers", json={"name": "Paint"}, headers=operator_headers)

        assert response.status_code == 403

    def test_duplicate_name_is_case_insensitive(self, client, manager_headers, work_center):
        response = client.post("/api/v1/work-centers", json={"name": "assembly line 1"}, headers=manager_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "DUPLICATE"

    def test_list_and_stats(self, client, operator_headers, manager_headers, work_center):
        client.post("/api/v1/work-centers", json={"name": "QC Bench", "type": "QUALITY"}, headers=manager_headers)

        listing = client.get("/api/v1/work-centers", params={"type": "QUALITY"}, headers=operator_headers).json()
        stats = client.get("/api/v1/work-centers/stats", headers=operator_headers).json()

        assert [c["name"] for c in listing["items"]] == ["QC Bench"]
        assert stats["total"] == 2
        assert stats["by_type"] == {"ASSEMBLY": 1, "QUALITY": 1}

    def test_delete_unused(self, client, db_session, manager_headers, work_center):
        response = client.delete(f"/api/v1/work-centers/{work_center['id']}", headers=manager_headers)

        assert response.status_code == 200
        assert db_session.query(WorkCenter).count() == 0

    def test_delete_with_open_work_is_refused(self, client, manager_headers, work_center, work_order):
        response = client.delete(f"/api/v1/work-centers/{work_center['id']}", headers=manager_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "WORK_CENTER_BUSY"


class TestWorkOrders:
    """/api/v1/work-orders"""

    def test_create(self, work_order, manufacturing_order, work_center):
        assert work_order["order_number"].startswith("WO-")
        assert work_order["status"] == "PENDING"
        assert work_order["manufacturing_order_number"] == manufacturing_order["order_number"]
        assert work_order["work_center_name"] == work_center["name"]

    def test_offline_center_is_refused(self, client, operator_headers, manager_headers, work_center,
                                       manufacturing_order):
        client.put(f"/api/v1/work-centers/{work_center['id']}", json={"status": "OFFLINE"},
                   headers=manager_headers)

        response = client.post(
            "/api/v1/work-orders",
            json={"title": "Paint", "manufacturing_order_id": manufacturing_order["id"],
                  "work_center_id": work_center["id"]},
            headers=operator_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "WORK_CENTER_UNAVAILABLE"

    def test_starting_work_runs_the_center(self, client, operator_headers, work_center, work_order):
        response = client.put(f"/api/v1/work-orders/{work_order['id']}", json={"status": "STARTED"},
                              headers=operator_headers)

        assert response.status_code == 200
        assert response.json()["started_at"] is not None
        center = client.get(f"/api/v1/work-centers/{work_center['id']}", headers=operator_headers).json()
        assert center["status"] == "RUNNING"
        assert center["active_work_orders"] == 1
        assert center["utilization"] == 50.0

    def test_completing_work_idles_the_center(self, client, operator_headers, work_center, work_order):
        url = f"/api/v1/work-orders/{work_order['id']}"
        client.put(url, json={"status": "STARTED"}, headers=operator_headers)

        response = client.put(url, json={"status": "COMPLETED", "actual_hours": "5"}, headers=operator_headers)

        assert response.json()["progress"] == 100
        center = client.get(f"/api/v1/work-centers/{work_center['id']}", headers=operator_headers).json()
        assert center["status"] == "IDLE"
        stats = client.get("/api/v1/work-orders/stats", headers=operator_headers).json()
        assert stats["completed"] == 1
        assert stats["average_efficiency"] == 80

    def test_invalid_transition(self, client, operator_headers, work_order):
        response = client.put(f"/api/v1/work-orders/{work_order['id']}", json={"status": "COMPLETED"},
                              headers=operator_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_started_work_blocks_order_cancellation(self, client, operator_headers, manufacturing_order,
                                                    work_order):
        client.put(f"/api/v1/work-orders/{work_order['id']}", json={"status": "STARTED"},
                   headers=operator_headers)

        response = client.post(f"/api/v1/manufacturing-orders/{manufacturing_order['id']}/cancel",
                               headers=operator_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "ACTIVE_WORK_ORDERS"
        assert response.json()["details"]["active_work_orders"] == [work_order["order_number"]]

    def test_delete_cancels(self, client, operator_headers, work_order):
        response = client.delete(f"/api/v1/work-orders/{work_order['id']}", headers=operator_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_kanban_has_a_column_per_status(self, client, operator_headers, work_order):
        board = client.get("/api/v1/work-orders/kanban", headers=operator_headers).json()

        assert list(board) == ["PENDING", "STARTED", "PAUSED", "COMPLETED", "CANCELLED"]
        assert [wo["id"] for wo in board["PENDING"]] == [work_order["id"]]
        assert board["STARTED"] == []
