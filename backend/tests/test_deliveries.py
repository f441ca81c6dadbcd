"""Tests for delivery completion and the stock it consumes."""

from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.depot.core.errors import (
    ConcurrentUpdateError,
    ConflictError,
    InsufficientStockError,
    ValidationError,
)
from backend.depot.models.catalog import Material
from backend.depot.models.inventory import (
    InventoryItem,
    InventoryReserve,
    InventoryTransaction,
    MovementType,
    ReferenceType,
    ReserveStatus,
    StockMovement,
    Warehouse,
)
from backend.depot.models.notification import Notification, NotificationCategory
from backend.depot.models.project import Project
from backend.depot.models.request import Delivery, Request, RequestStatus
from backend.depot.models.user import User
from backend.depot.schemas.inventory import ReserveCreate
from backend.depot.schemas.request import DeliveryComplete
from backend.depot.services.deliveries import complete_delivery
from backend.depot.services.inventory import create_reserve
from backend.tests.conftest import auth, qty


def _deliver(db: Session, req: Request, item: InventoryItem, user: User, notes: str | None = None):
    return complete_delivery(
        db, req.id, DeliveryComplete(inventory_item_id=item.id, notes=notes), user.id
    )


# ═══════════════════════════════════════════════════════════════════════════════
#  Service-layer tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestCompleteDelivery:
    def test_stale_item_row_leaves_nothing_behind(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        db.refresh(cement_stock)
        # Another writer moves the row without our identity map noticing.
        db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == cement_stock.id)
            .values(quantity=Decimal("90"))
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ConcurrentUpdateError):
            _deliver(db, approved_request, cement_stock, keeper_user)

        assert db.query(Delivery).count() == 0
        assert db.query(InventoryTransaction).count() == 0
        assert db.query(StockMovement).count() == 0
        db.refresh(approved_request)
        db.refresh(cement_stock)
        assert approved_request.status == RequestStatus.APPROVED
        assert cement_stock.quantity == Decimal("100")

    def test_full_flow(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        out = _deliver(db, approved_request, cement_stock, keeper_user, notes="Gate 2")
        assert out.quantity == Decimal("25.000")
        assert out.status.value == "COMPLETED"
        assert out.delivered_by == keeper_user.id

        db.refresh(cement_stock)
        db.refresh(approved_request)
        assert cement_stock.quantity == Decimal("75")
        assert approved_request.status == RequestStatus.DELIVERED

        movement = db.query(StockMovement).one()
        assert movement.type == MovementType.OUT
        assert movement.reference_type == ReferenceType.DELIVERY
        assert movement.reference_id == out.id
        assert movement.previous_stock == Decimal("100")
        assert movement.new_stock == Decimal("75")

        txn = db.query(InventoryTransaction).one()
        assert txn.action == "delivery"
        assert txn.note == "Gate 2"

    def test_requester_is_notified(
        self,
        db: Session,
        keeper_user: User,
        engineer_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        _deliver(db, approved_request, cement_stock, keeper_user)
        note = (
            db.query(Notification)
            .filter(
                Notification.user_id == engineer_user.id,
                Notification.category == NotificationCategory.DELIVERY_STATUS,
            )
            .one()
        )
        assert note.title == "Delivery completed"

    def test_second_delivery_conflicts(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        _deliver(db, approved_request, cement_stock, keeper_user)
        approved_request.status = RequestStatus.APPROVED
        db.commit()
        with pytest.raises(ConflictError, match="already has a delivery"):
            _deliver(db, approved_request, cement_stock, keeper_user)

    def test_pending_request_cannot_be_delivered(
        self,
        db: Session,
        keeper_user: User,
        pending_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        with pytest.raises(ValidationError, match="Only APPROVED"):
            _deliver(db, pending_request, cement_stock, keeper_user)

    def test_insufficient_stock(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        cement_stock.quantity = Decimal("20")
        db.commit()
        with pytest.raises(InsufficientStockError):
            _deliver(db, approved_request, cement_stock, keeper_user)
        db.refresh(approved_request)
        assert approved_request.status == RequestStatus.APPROVED

    def test_project_reserve_is_consumed(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
        project: Project,
    ) -> None:
        reserve = create_reserve(
            db,
            ReserveCreate(
                inventory_item_id=cement_stock.id, project_id=project.id, quantity=Decimal("90")
            ),
            keeper_user.id,
        )
        # 10 free plus the project's own 90 reserved covers the 25 approved.
        _deliver(db, approved_request, cement_stock, keeper_user)

        db.refresh(cement_stock)
        assert cement_stock.quantity == Decimal("75")
        assert cement_stock.reserved_quantity == Decimal("0")
        assert db.get(InventoryReserve, reserve.id).status == ReserveStatus.COMPLETED

    def test_foreign_reserve_blocks_delivery(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        create_reserve(
            db,
            ReserveCreate(inventory_item_id=cement_stock.id, quantity=Decimal("90")),
            keeper_user.id,
        )
        with pytest.raises(InsufficientStockError) as exc:
            _deliver(db, approved_request, cement_stock, keeper_user)
        assert exc.value.details == {"available": "10.000", "requested": "25.000"}

    def test_item_of_other_material_rejected(
        self,
        db: Session,
        keeper_user: User,
        approved_request: Request,
        warehouse_main: Warehouse,
        cement: Material,
    ) -> None:
        sand = Material(code="SND-001", name="Sand", uom_id=cement.uom_id)
        db.add(sand)
        db.flush()
        item = InventoryItem(
            material_id=sand.id,
            warehouse_id=warehouse_main.id,
            uom_id=cement.uom_id,
            quantity=Decimal("500"),
            reserved_quantity=Decimal("0"),
        )
        db.add(item)
        db.commit()
        with pytest.raises(ValidationError, match="different material"):
            _deliver(db, approved_request, item, keeper_user)

    def test_low_stock_alerts_staff(
        self,
        db: Session,
        admin_user: User,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
        cement: Material,
    ) -> None:
        cement.min_stock_qty = Decimal("80")
        db.commit()
        _deliver(db, approved_request, cement_stock, keeper_user)

        alerts = (
            db.query(Notification)
            .filter(Notification.category == NotificationCategory.STOCK_LEVEL)
            .all()
        )
        assert {n.user_id for n in alerts} == {admin_user.id, keeper_user.id}
        assert "75" in alerts[0].message


# ═══════════════════════════════════════════════════════════════════════════════
#  API endpoint tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestDeliveryAPI:
    def test_complete_via_api(
        self,
        client: TestClient,
        keeper_token: str,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        r = client.post(
            f"/api/v1/deliveries/{approved_request.id}/complete",
            json={"inventory_item_id": str(cement_stock.id), "notes": "Truck 7"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 201
        assert r.json()["message"] == "Delivery completed"
        delivery_id = r.json()["data"]["id"]

        r = client.get(f"/api/v1/requests/{approved_request.id}", headers=auth(keeper_token))
        assert r.json()["status"] == "DELIVERED"
        assert r.json()["delivery"]["id"] == delivery_id

        r = client.get(f"/api/v1/inventory-items/{cement_stock.id}", headers=auth(keeper_token))
        assert qty(r.json()["quantity"]) == qty(75)

    def test_engineer_cannot_complete(
        self,
        client: TestClient,
        engineer_token: str,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        r = client.post(
            f"/api/v1/deliveries/{approved_request.id}/complete",
            json={"inventory_item_id": str(cement_stock.id)},
            headers=auth(engineer_token),
        )
        assert r.status_code == 403

    def test_list_get_and_status(
        self,
        client: TestClient,
        db: Session,
        keeper_user: User,
        keeper_token: str,
        approved_request: Request,
        cement_stock: InventoryItem,
        project: Project,
    ) -> None:
        out = _deliver(db, approved_request, cement_stock, keeper_user)

        r = client.get(f"/api/v1/deliveries?project_id={project.id}", headers=auth(keeper_token))
        assert r.json()["meta"]["total"] == 1
        assert r.json()["data"][0]["material_name"] == "Portland Cement"

        r = client.get("/api/v1/deliveries?status=CANCELLED", headers=auth(keeper_token))
        assert r.json()["meta"]["total"] == 0

        r = client.get(f"/api/v1/deliveries/{out.id}", headers=auth(keeper_token))
        assert r.status_code == 200
        assert qty(r.json()["quantity"]) == qty(25)

        r = client.patch(
            f"/api/v1/deliveries/{out.id}/status",
            json={"status": "CANCELLED"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        assert r.json()["message"] == "Delivery status updated"
        assert r.json()["data"]["status"] == "CANCELLED"

    def test_notes_suggestions(
        self,
        client: TestClient,
        db: Session,
        keeper_token: str,
        keeper_user: User,
        approved_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        _deliver(db, approved_request, cement_stock, keeper_user, notes="Truck 7, gate 2")
        r = client.get("/api/v1/deliveries/suggestions?prefix=tru", headers=auth(keeper_token))
        assert r.status_code == 200
        assert r.json() == ["Truck 7, gate 2"]

        r = client.get("/api/v1/deliveries/suggestions?prefix=x", headers=auth(keeper_token))
        assert r.json() == []
