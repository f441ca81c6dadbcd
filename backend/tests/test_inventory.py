"""Tests for inventory items, quantity adjustments, reserves and transactions."""

from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConcurrentUpdateError, InsufficientStockError, ValidationError
from backend.depot.models.catalog import Material
from backend.depot.models.inventory import (
    InventoryItem,
    InventoryTransaction,
    ReserveStatus,
    StockMovement,
    Warehouse,
)
from backend.depot.models.project import Project
from backend.depot.models.user import User
from backend.depot.schemas.inventory import QuantityAdjust, QuantityOperation, ReserveCreate
from backend.depot.services.inventory import adjust_quantity, cancel_reserve, create_reserve
from backend.tests.conftest import auth, qty


def _adjust(client: TestClient, token: str, item_id, quantity: str, operation: str):
    return client.patch(
        f"/api/v1/inventory-items/{item_id}/quantity",
        json={"quantity": quantity, "operation": operation},
        headers=auth(token),
    )


# ═══════════════════════════════════════════════════════════════════════════════
#  Service-layer tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestQuantityService:
    def test_unchanged_quantity_writes_nothing(
        self, db: Session, keeper_user: User, cement_stock: InventoryItem
    ) -> None:
        out = adjust_quantity(
            db,
            cement_stock.id,
            QuantityAdjust(quantity=Decimal("100"), operation=QuantityOperation.SET),
            keeper_user.id,
        )
        assert out.quantity == Decimal("100")
        assert db.query(InventoryTransaction).count() == 0
        assert db.query(StockMovement).count() == 0

    def test_stale_row_raises_concurrent_update(
        self, db: Session, keeper_user: User, cement_stock: InventoryItem
    ) -> None:
        db.refresh(cement_stock)
        assert cement_stock.quantity == Decimal("100")

        # Another writer moves the row without our identity map noticing.
        db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == cement_stock.id)
            .values(quantity=Decimal("90"))
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ConcurrentUpdateError):
            adjust_quantity(
                db,
                cement_stock.id,
                QuantityAdjust(quantity=Decimal("5"), operation=QuantityOperation.INCREASE),
                keeper_user.id,
            )
        assert db.query(InventoryTransaction).count() == 0

    def test_cannot_go_below_reserved(
        self, db: Session, keeper_user: User, cement_stock: InventoryItem
    ) -> None:
        create_reserve(
            db,
            ReserveCreate(inventory_item_id=cement_stock.id, quantity=Decimal("30")),
            keeper_user.id,
        )
        with pytest.raises(ValidationError, match="reserved"):
            adjust_quantity(
                db,
                cement_stock.id,
                QuantityAdjust(quantity=Decimal("20")),
                keeper_user.id,
            )


class TestReserveService:
    def test_reserve_more_than_available(
        self, db: Session, keeper_user: User, cement_stock: InventoryItem
    ) -> None:
        with pytest.raises(InsufficientStockError) as exc:
            create_reserve(
                db,
                ReserveCreate(inventory_item_id=cement_stock.id, quantity=Decimal("150")),
                keeper_user.id,
            )
        assert exc.value.details == {"available": "100.000", "requested": "150"}

    def test_cancel_releases_quantity(
        self,
        db: Session,
        keeper_user: User,
        cement_stock: InventoryItem,
        project: Project,
    ) -> None:
        reserve = create_reserve(
            db,
            ReserveCreate(
                inventory_item_id=cement_stock.id, project_id=project.id, quantity=Decimal("40")
            ),
            keeper_user.id,
        )
        assert reserve.project_name == "Tower Block A"
        db.refresh(cement_stock)
        assert cement_stock.reserved_quantity == Decimal("40")

        out = cancel_reserve(db, reserve.id, keeper_user.id)
        assert out.status == ReserveStatus.CANCELLED
        db.refresh(cement_stock)
        assert cement_stock.reserved_quantity == Decimal("0")

        with pytest.raises(ValidationError, match="active reserves"):
            cancel_reserve(db, reserve.id, keeper_user.id)


# ═══════════════════════════════════════════════════════════════════════════════
#  API endpoint tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestInventoryItemAPI:
    def test_create_item_records_initial_stock(
        self,
        client: TestClient,
        db: Session,
        keeper_token: str,
        cement: Material,
        warehouse_main: Warehouse,
    ) -> None:
        r = client.post(
            "/api/v1/inventory-items",
            json={
                "material_id": str(cement.id),
                "warehouse_id": str(warehouse_main.id),
                "quantity": "250",
            },
            headers=auth(keeper_token),
        )
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["material_code"] == "CEM-001"
        assert data["uom_symbol"] == "kg"
        assert qty(data["available_quantity"]) == qty(250)

        txn = db.query(InventoryTransaction).one()
        assert txn.action == "initial_stock"
        assert txn.type.value == "IN"

    def test_create_item_unknown_warehouse(
        self, client: TestClient, keeper_token: str, cement: Material
    ) -> None:
        r = client.post(
            "/api/v1/inventory-items",
            json={
                "material_id": str(cement.id),
                "warehouse_id": "00000000-0000-0000-0000-000000000000",
            },
            headers=auth(keeper_token),
        )
        assert r.status_code == 404

    @pytest.mark.parametrize(
        ("amount", "operation", "expected"),
        [
            ("25", "increase", 125),
            ("25", "decrease", 75),
            ("12.5", "set", Decimal("12.5")),
        ],
    )
    def test_adjust_operations(
        self,
        client: TestClient,
        keeper_token: str,
        cement_stock: InventoryItem,
        amount: str,
        operation: str,
        expected,
    ) -> None:
        r = _adjust(client, keeper_token, cement_stock.id, amount, operation)
        assert r.status_code == 200
        assert r.json()["message"] == "Quantity updated"
        assert qty(r.json()["data"]["quantity"]) == qty(expected)

    def test_decrease_below_zero_rejected(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        r = _adjust(client, keeper_token, cement_stock.id, "101", "decrease")
        assert r.status_code == 400
        assert "below zero" in r.json()["error"]["message"]

    def test_negative_amount_rejected(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        r = _adjust(client, keeper_token, cement_stock.id, "-5", "increase")
        assert r.status_code == 400

    def test_lost_race_is_409(
        self, client: TestClient, db: Session, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        db.refresh(cement_stock)
        # Another writer moves the row between our read and the conditional update.
        db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == cement_stock.id)
            .values(quantity=Decimal("90"))
            .execution_options(synchronize_session=False)
        )

        r = _adjust(client, keeper_token, cement_stock.id, "5", "increase")
        assert r.status_code == 409
        error = r.json()["error"]
        assert error["type"] == "ConcurrentUpdateError"
        assert "reload and retry" in error["message"]
        assert db.query(InventoryTransaction).count() == 0
        assert db.query(StockMovement).count() == 0

    def test_engineer_cannot_adjust(
        self, client: TestClient, engineer_token: str, cement_stock: InventoryItem
    ) -> None:
        r = _adjust(client, engineer_token, cement_stock.id, "1", "increase")
        assert r.status_code == 403

    def test_list_items_search(
        self, client: TestClient, engineer_token: str, cement_stock: InventoryItem
    ) -> None:
        r = client.get("/api/v1/inventory-items?search=main%20depot", headers=auth(engineer_token))
        assert r.json()["meta"]["total"] == 1
        r = client.get("/api/v1/inventory-items?search=rebar", headers=auth(engineer_token))
        assert r.json()["meta"]["total"] == 0

    def test_delete_item_with_reserve_rejected(
        self, client: TestClient, db: Session, admin_token: str, cement_stock: InventoryItem
    ) -> None:
        cement_stock.reserved_quantity = Decimal("5")
        db.commit()
        r = client.delete(f"/api/v1/inventory-items/{cement_stock.id}", headers=auth(admin_token))
        assert r.status_code == 400

    def test_delete_item(
        self, client: TestClient, admin_token: str, cement_stock: InventoryItem
    ) -> None:
        r = client.delete(f"/api/v1/inventory-items/{cement_stock.id}", headers=auth(admin_token))
        assert r.status_code == 204
        r = client.get(f"/api/v1/inventory-items/{cement_stock.id}", headers=auth(admin_token))
        assert r.status_code == 404


class TestReserveAPI:
    def test_reserve_and_cancel(
        self,
        client: TestClient,
        keeper_token: str,
        cement_stock: InventoryItem,
        project: Project,
    ) -> None:
        r = client.post(
            "/api/v1/inventory-reserves",
            json={
                "inventory_item_id": str(cement_stock.id),
                "project_id": str(project.id),
                "quantity": "10",
                "note": "Hold for level 4",
            },
            headers=auth(keeper_token),
        )
        assert r.status_code == 201
        assert r.json()["message"] == "Stock reserved"
        reserve_id = r.json()["data"]["id"]

        r = client.get(f"/api/v1/inventory-items/{cement_stock.id}", headers=auth(keeper_token))
        assert qty(r.json()["available_quantity"]) == qty(90)

        r = client.get("/api/v1/inventory-reserves?status=ACTIVE", headers=auth(keeper_token))
        assert r.json()["meta"]["total"] == 1

        r = client.post(
            f"/api/v1/inventory-reserves/{reserve_id}/cancel", headers=auth(keeper_token)
        )
        assert r.status_code == 200
        assert r.json()["data"]["status"] == "CANCELLED"

        r = client.post(
            f"/api/v1/inventory-reserves/{reserve_id}/cancel", headers=auth(keeper_token)
        )
        assert r.status_code == 400

    def test_over_reserve_is_400(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        r = client.post(
            "/api/v1/inventory-reserves",
            json={"inventory_item_id": str(cement_stock.id), "quantity": "100.5"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 400
        assert r.json()["error"]["type"] == "InsufficientStockError"

    def test_zero_reserve_rejected(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        r = client.post(
            "/api/v1/inventory-reserves",
            json={"inventory_item_id": str(cement_stock.id), "quantity": "0"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 400


class TestTransactionAPI:
    def test_filter_by_type(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        _adjust(client, keeper_token, cement_stock.id, "10", "increase")
        _adjust(client, keeper_token, cement_stock.id, "30", "decrease")

        r = client.get("/api/v1/inventory-transactions", headers=auth(keeper_token))
        assert r.json()["meta"]["total"] == 2

        r = client.get("/api/v1/inventory-transactions?type=OUT", headers=auth(keeper_token))
        rows = r.json()["data"]
        assert len(rows) == 1
        assert rows[0]["action"] == "qty_update"
        assert rows[0]["username"] == "test_keeper"
        assert qty(rows[0]["before_quantity"]) == qty(110)
        assert qty(rows[0]["after_quantity"]) == qty(80)
