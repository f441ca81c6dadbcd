"""Tests for units of measure, institutions and the material catalogue."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, ValidationError
from backend.depot.models.catalog import Material, Uom
from backend.depot.models.inventory import InventoryItem
from backend.depot.models.request import Request
from backend.depot.models.user import User
from backend.depot.schemas.catalog import MaterialCreate, MaterialUpdate, UomCreate
from backend.depot.services.catalog import create_uom, delete_uom
from backend.depot.services.materials import create_material, update_material
from backend.tests.conftest import auth, qty


# ═══════════════════════════════════════════════════════════════════════════════
#  Service-layer tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestUomService:
    def test_symbol_unique_case_insensitive(
        self, db: Session, admin_user: User, uom_kg: Uom
    ) -> None:
        with pytest.raises(ConflictError):
            create_uom(db, UomCreate(name="Kilo", symbol="KG"), admin_user.id)

    def test_uom_in_use_cannot_be_deleted(
        self, db: Session, admin_user: User, cement: Material
    ) -> None:
        with pytest.raises(ValidationError, match="used by materials"):
            delete_uom(db, cement.uom_id, admin_user.id)


class TestMaterialService:
    def test_create_with_attributes(
        self, db: Session, admin_user: User, uom_kg: Uom
    ) -> None:
        out = create_material(
            db,
            MaterialCreate(
                code="REB-012",
                name="Rebar 12mm",
                uom_id=uom_kg.id,
                min_stock_qty="50",
                attributes=[
                    {"name": "grade", "value": "B500"},
                    {"name": "diameter", "value": "12mm"},
                ],
            ),
            admin_user.id,
        )
        assert out.code == "REB-012"
        assert [a.name for a in out.attributes] == ["diameter", "grade"]
        assert out.stock_qty == 0
        assert out.request_stats.total == 0

    def test_duplicate_code(self, db: Session, admin_user: User, cement: Material) -> None:
        with pytest.raises(ConflictError):
            create_material(
                db,
                MaterialCreate(code="cem-001", name="Other cement", uom_id=cement.uom_id),
                admin_user.id,
            )

    def test_code_locked_while_requests_open(
        self, db: Session, admin_user: User, cement: Material, pending_request: Request
    ) -> None:
        with pytest.raises(ValidationError, match="open requests"):
            update_material(db, cement.id, MaterialUpdate(code="CEM-002"), admin_user.id)

    def test_name_editable_while_requests_open(
        self, db: Session, admin_user: User, cement: Material, pending_request: Request
    ) -> None:
        out = update_material(
            db, cement.id, MaterialUpdate(name="Portland Cement 42.5"), admin_user.id
        )
        assert out.name == "Portland Cement 42.5"
        assert out.request_stats.pending == 1


# ═══════════════════════════════════════════════════════════════════════════════
#  API endpoint tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestCatalogAPI:
    def test_uom_crud(self, client: TestClient, admin_token: str) -> None:
        r = client.post(
            "/api/v1/uoms", json={"name": "Cubic metre", "symbol": "m3"}, headers=auth(admin_token)
        )
        assert r.status_code == 201
        uom_id = r.json()["data"]["id"]

        r = client.put(
            f"/api/v1/uoms/{uom_id}", json={"symbol": "m³"}, headers=auth(admin_token)
        )
        assert r.json()["data"]["symbol"] == "m³"

        r = client.delete(f"/api/v1/uoms/{uom_id}", headers=auth(admin_token))
        assert r.status_code == 204
        assert client.get("/api/v1/uoms", headers=auth(admin_token)).json() == []

    def test_institution_crud(self, client: TestClient, admin_token: str) -> None:
        r = client.post(
            "/api/v1/institutions",
            json={"name": "Ministry of Housing", "description": "Donor"},
            headers=auth(admin_token),
        )
        assert r.status_code == 201
        inst_id = r.json()["data"]["id"]

        r = client.post(
            "/api/v1/institutions",
            json={"name": "ministry of housing"},
            headers=auth(admin_token),
        )
        assert r.status_code == 409

        r = client.put(
            f"/api/v1/institutions/{inst_id}",
            json={"description": "Primary donor"},
            headers=auth(admin_token),
        )
        assert r.json()["data"]["description"] == "Primary donor"

        r = client.delete(f"/api/v1/institutions/{inst_id}", headers=auth(admin_token))
        assert r.status_code == 204

    def test_contractor_cannot_write_catalog(
        self, client: TestClient, contractor_token: str
    ) -> None:
        r = client.post(
            "/api/v1/uoms", json={"name": "Piece", "symbol": "pc"}, headers=auth(contractor_token)
        )
        assert r.status_code == 403


class TestMaterialAPI:
    def test_create_material(self, client: TestClient, keeper_token: str, uom_kg: Uom) -> None:
        r = client.post(
            "/api/v1/materials",
            json={
                "code": "SND-001",
                "name": "Washed sand",
                "uom_id": str(uom_kg.id),
                "attributes": [{"name": "grain", "value": "fine"}],
            },
            headers=auth(keeper_token),
        )
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["uom"]["symbol"] == "kg"
        assert data["attributes"][0]["value"] == "fine"

    def test_short_code_rejected(self, client: TestClient, keeper_token: str, uom_kg: Uom) -> None:
        r = client.post(
            "/api/v1/materials",
            json={"code": "X", "name": "Thing", "uom_id": str(uom_kg.id)},
            headers=auth(keeper_token),
        )
        assert r.status_code == 400

    def test_list_shows_stock_totals(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        r = client.get("/api/v1/materials", headers=auth(keeper_token))
        assert r.status_code == 200
        row = r.json()["data"][0]
        assert row["code"] == "CEM-001"
        assert qty(row["stock_qty"]) == qty(100)
        assert qty(row["available_qty"]) == qty(100)

    def test_list_cache_refreshed_after_stock_change(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        client.get("/api/v1/materials", headers=auth(keeper_token))
        r = client.patch(
            f"/api/v1/inventory-items/{cement_stock.id}/quantity",
            json={"quantity": "40", "operation": "decrease"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        r = client.get("/api/v1/materials", headers=auth(keeper_token))
        assert qty(r.json()["data"][0]["stock_qty"]) == qty(60)

    def test_list_cache_refreshed_after_uom_rename(
        self, client: TestClient, keeper_token: str, admin_token: str, cement: Material
    ) -> None:
        r = client.get("/api/v1/materials", headers=auth(keeper_token))
        assert r.json()["data"][0]["uom"]["symbol"] == "kg"

        r = client.put(
            f"/api/v1/uoms/{cement.uom_id}", json={"symbol": "KGM"}, headers=auth(admin_token)
        )
        assert r.status_code == 200

        r = client.get("/api/v1/materials", headers=auth(keeper_token))
        assert r.json()["data"][0]["uom"]["symbol"] == "KGM"

    def test_suggestions_by_prefix(
        self, client: TestClient, db: Session, engineer_token: str, cement: Material, uom_kg: Uom
    ) -> None:
        db.add_all(
            [
                Material(code="POR-002", name="Portland Cement White", uom_id=uom_kg.id),
                Material(code="PIP-050", name="PVC Pipe 50mm", uom_id=uom_kg.id),
            ]
        )
        db.commit()

        r = client.get("/api/v1/materials/suggestions?prefix=port", headers=auth(engineer_token))
        assert r.status_code == 200
        assert r.json() == ["Portland Cement", "Portland Cement White"]

        r = client.get(
            "/api/v1/materials/suggestions?prefix=p&field=code&limit=1",
            headers=auth(engineer_token),
        )
        assert r.json() == ["PIP-050"]

    def test_suggestions_treat_wildcards_literally(
        self, client: TestClient, engineer_token: str, cement: Material
    ) -> None:
        r = client.get("/api/v1/materials/suggestions?prefix=%25", headers=auth(engineer_token))
        assert r.status_code == 200
        assert r.json() == []

    def test_suggestions_refreshed_after_rename(
        self, client: TestClient, keeper_token: str, cement: Material
    ) -> None:
        url = "/api/v1/materials/suggestions?prefix=port"
        assert client.get(url, headers=auth(keeper_token)).json() == ["Portland Cement"]
        client.put(
            f"/api/v1/materials/{cement.id}", json={"name": "Slag Cement"}, headers=auth(keeper_token)
        )
        assert client.get(url, headers=auth(keeper_token)).json() == []

    def test_suggestions_unknown_field_is_400(
        self, client: TestClient, engineer_token: str
    ) -> None:
        r = client.get(
            "/api/v1/materials/suggestions?prefix=a&field=description",
            headers=auth(engineer_token),
        )
        assert r.status_code == 400
        assert r.json()["error"]["details"]["allowed"] == ["code", "name"]

    def test_suggestions_require_prefix(self, client: TestClient, engineer_token: str) -> None:
        r = client.get("/api/v1/materials/suggestions", headers=auth(engineer_token))
        assert r.status_code == 400

    def test_search_and_sort(
        self, client: TestClient, db: Session, keeper_token: str, cement: Material, uom_kg: Uom
    ) -> None:
        db.add(Material(code="AGG-020", name="Aggregate 20mm", uom_id=uom_kg.id))
        db.commit()

        r = client.get(
            "/api/v1/materials?sort_by=code&sort_direction=asc", headers=auth(keeper_token)
        )
        assert [m["code"] for m in r.json()["data"]] == ["AGG-020", "CEM-001"]

        r = client.get("/api/v1/materials?search=portland", headers=auth(keeper_token))
        assert [m["code"] for m in r.json()["data"]] == ["CEM-001"]

    def test_invalid_sort_field_is_400(self, client: TestClient, keeper_token: str) -> None:
        r = client.get("/api/v1/materials?sort_by=price", headers=auth(keeper_token))
        assert r.status_code == 400

    def test_detail_has_request_stats(
        self,
        client: TestClient,
        keeper_token: str,
        pending_request: Request,
        approved_request: Request,
    ) -> None:
        r = client.get(f"/api/v1/materials/{pending_request.material_id}", headers=auth(keeper_token))
        assert r.status_code == 200
        body = r.json()
        assert body["request_stats"] == {
            "total": 2,
            "pending": 1,
            "approved": 1,
            "rejected": 0,
            "delivered": 0,
        }
        assert {req["project_name"] for req in body["recent_requests"]} == {"Tower Block A"}

    def test_replace_attributes(
        self, client: TestClient, keeper_token: str, cement: Material
    ) -> None:
        url = f"/api/v1/materials/{cement.id}/attributes"
        client.put(url, json={"attributes": [{"name": "type", "value": "I"}]}, headers=auth(keeper_token))
        r = client.put(
            url,
            json={"attributes": [{"name": "bag", "value": "50kg"}]},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        assert [(a["name"], a["value"]) for a in r.json()["data"]["attributes"]] == [
            ("bag", "50kg")
        ]

    def test_movements_follow_adjustments(
        self, client: TestClient, keeper_token: str, cement_stock: InventoryItem
    ) -> None:
        client.patch(
            f"/api/v1/inventory-items/{cement_stock.id}/quantity",
            json={"quantity": "15", "operation": "increase", "note": "Delivery from supplier"},
            headers=auth(keeper_token),
        )
        r = client.get(
            f"/api/v1/materials/{cement_stock.material_id}/movements", headers=auth(keeper_token)
        )
        assert r.status_code == 200
        movement = r.json()["data"][0]
        assert movement["type"] == "IN"
        assert qty(movement["quantity"]) == qty(15)
        assert qty(movement["previous_stock"]) == qty(100)
        assert qty(movement["new_stock"]) == qty(115)
        assert movement["reference_type"] == "ADJUSTMENT"

    def test_delete_material_with_requests_rejected(
        self, client: TestClient, admin_token: str, pending_request: Request
    ) -> None:
        r = client.delete(
            f"/api/v1/materials/{pending_request.material_id}", headers=auth(admin_token)
        )
        assert r.status_code == 400

    def test_delete_material(self, client: TestClient, admin_token: str, cement: Material) -> None:
        r = client.delete(f"/api/v1/materials/{cement.id}", headers=auth(admin_token))
        assert r.status_code == 204
        r = client.get(f"/api/v1/materials/{cement.id}", headers=auth(admin_token))
        assert r.status_code == 404

    def test_engineer_reads_only(
        self, client: TestClient, engineer_token: str, cement: Material
    ) -> None:
        assert client.get("/api/v1/materials", headers=auth(engineer_token)).status_code == 200
        r = client.put(
            f"/api/v1/materials/{cement.id}", json={"name": "Renamed"}, headers=auth(engineer_token)
        )
        assert r.status_code == 403
