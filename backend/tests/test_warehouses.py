"""Tests for warehouse CRUD and per-warehouse stock."""

from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.depot.models.inventory import InventoryItem, Warehouse
from backend.tests.conftest import auth, qty


class TestWarehouseCRUD:
    def test_create_warehouse(self, client: TestClient, keeper_token: str) -> None:
        r = client.post(
            "/api/v1/warehouses",
            json={"code": "SITE-2", "name": "Site 2 Store", "location": "North gate"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["code"] == "SITE-2"
        assert data["is_active"] is True

    def test_duplicate_code_case_insensitive(
        self, client: TestClient, keeper_token: str, warehouse_main: Warehouse
    ) -> None:
        r = client.post(
            "/api/v1/warehouses",
            json={"code": "main", "name": "Another"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 409
        assert r.json()["error"]["type"] == "ConflictError"

    def test_inactive_hidden_by_default(
        self, client: TestClient, keeper_token: str, warehouse_main: Warehouse
    ) -> None:
        r = client.patch(
            f"/api/v1/warehouses/{warehouse_main.id}",
            json={"is_active": False},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        assert client.get("/api/v1/warehouses", headers=auth(keeper_token)).json() == []

        r = client.get("/api/v1/warehouses?include_inactive=true", headers=auth(keeper_token))
        assert [w["code"] for w in r.json()] == ["MAIN"]

    def test_delete_with_stock_rejected(
        self, client: TestClient, admin_token: str, cement_stock: InventoryItem
    ) -> None:
        r = client.delete(
            f"/api/v1/warehouses/{cement_stock.warehouse_id}", headers=auth(admin_token)
        )
        assert r.status_code == 400
        assert "stock" in r.json()["error"]["message"]

    def test_delete_empty_warehouse(
        self, client: TestClient, admin_token: str, warehouse_main: Warehouse
    ) -> None:
        r = client.delete(f"/api/v1/warehouses/{warehouse_main.id}", headers=auth(admin_token))
        assert r.status_code == 204
        r = client.get(f"/api/v1/warehouses/{warehouse_main.id}", headers=auth(admin_token))
        assert r.status_code == 404

    def test_contractor_has_no_warehouse_access(
        self, client: TestClient, contractor_token: str
    ) -> None:
        r = client.get("/api/v1/warehouses", headers=auth(contractor_token))
        assert r.status_code == 403


class TestWarehouseStock:
    def test_stock_grouped_by_material(
        self,
        client: TestClient,
        db: Session,
        keeper_token: str,
        cement_stock: InventoryItem,
    ) -> None:
        db.add(
            InventoryItem(
                material_id=cement_stock.material_id,
                warehouse_id=cement_stock.warehouse_id,
                uom_id=cement_stock.uom_id,
                quantity=Decimal("20"),
                reserved_quantity=Decimal("5"),
            )
        )
        db.commit()

        r = client.get(
            f"/api/v1/warehouses/{cement_stock.warehouse_id}/stock", headers=auth(keeper_token)
        )
        assert r.status_code == 200
        rows = r.json()
        assert len(rows) == 1
        assert rows[0]["material_code"] == "CEM-001"
        assert rows[0]["uom_symbol"] == "kg"
        assert qty(rows[0]["quantity"]) == qty(120)
        assert qty(rows[0]["reserved_quantity"]) == qty(5)
        assert qty(rows[0]["available_quantity"]) == qty(115)
