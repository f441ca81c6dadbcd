"""Tests for material requests: creation, review and status transitions."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.depot.core.errors import InsufficientStockError, ValidationError
from backend.depot.models.audit import AuditLog
from backend.depot.models.catalog import Material
from backend.depot.models.inventory import InventoryItem
from backend.depot.models.notification import Notification, NotificationCategory
from backend.depot.models.project import Project
from backend.depot.models.request import Request, RequestStatus
from backend.depot.models.user import User
from backend.depot.schemas.request import RequestReview, RequestStatusUpdate
from backend.depot.services.requests import ALLOWED_TRANSITIONS, change_status, review_request
from backend.tests.conftest import auth, qty


# ═══════════════════════════════════════════════════════════════════════════════
#  Service-layer tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestReviewService:
    def test_approve_defaults_revised_to_requested(
        self,
        db: Session,
        keeper_user: User,
        pending_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        out = review_request(
            db, pending_request.id, RequestReview(status=RequestStatus.APPROVED), keeper_user.id
        )
        assert out.status == RequestStatus.APPROVED
        assert out.revised_qty == Decimal("20")
        assert out.reviewed_by == keeper_user.id
        assert out.reviewed_at is not None

    def test_approve_without_stock(
        self, db: Session, keeper_user: User, pending_request: Request
    ) -> None:
        with pytest.raises(InsufficientStockError):
            review_request(
                db, pending_request.id, RequestReview(status=RequestStatus.APPROVED), keeper_user.id
            )
        db.refresh(pending_request)
        assert pending_request.status == RequestStatus.PENDING

    def test_review_notifies_requester(
        self,
        db: Session,
        keeper_user: User,
        engineer_user: User,
        pending_request: Request,
    ) -> None:
        review_request(
            db,
            pending_request.id,
            RequestReview(status=RequestStatus.REJECTED, note="Use stock from site B"),
            keeper_user.id,
        )
        note = db.query(Notification).filter(Notification.user_id == engineer_user.id).one()
        assert note.category == NotificationCategory.REQUEST_STATUS
        assert note.title == "Request rejected"
        assert note.reference_id == pending_request.id

    def test_only_pending_can_be_reviewed(
        self, db: Session, keeper_user: User, approved_request: Request
    ) -> None:
        with pytest.raises(ValidationError, match="Only PENDING"):
            review_request(
                db,
                approved_request.id,
                RequestReview(status=RequestStatus.REJECTED),
                keeper_user.id,
            )

    def test_review_outcome_must_be_decision(self) -> None:
        with pytest.raises(ValueError):
            RequestReview(status=RequestStatus.DELIVERED)


class TestTransitions:
    def test_delivered_is_terminal(self) -> None:
        assert ALLOWED_TRANSITIONS[RequestStatus.DELIVERED] == frozenset()

    @pytest.mark.parametrize(
        ("start", "target"),
        [
            (RequestStatus.APPROVED, RequestStatus.REJECTED),
            (RequestStatus.REJECTED, RequestStatus.PENDING),
            (RequestStatus.PENDING, RequestStatus.REJECTED),
        ],
    )
    def test_allowed_moves(
        self,
        db: Session,
        keeper_user: User,
        pending_request: Request,
        start: RequestStatus,
        target: RequestStatus,
    ) -> None:
        pending_request.status = start
        db.commit()
        out = change_status(
            db, pending_request.id, RequestStatusUpdate(status=target), keeper_user.id
        )
        assert out.status == target

    @pytest.mark.parametrize(
        ("start", "target"),
        [
            (RequestStatus.APPROVED, RequestStatus.PENDING),
            (RequestStatus.APPROVED, RequestStatus.DELIVERED),
            (RequestStatus.PENDING, RequestStatus.DELIVERED),
            (RequestStatus.DELIVERED, RequestStatus.PENDING),
        ],
    )
    def test_forbidden_moves(
        self,
        db: Session,
        keeper_user: User,
        pending_request: Request,
        start: RequestStatus,
        target: RequestStatus,
    ) -> None:
        pending_request.status = start
        db.commit()
        with pytest.raises(ValidationError, match="Cannot move"):
            change_status(
                db, pending_request.id, RequestStatusUpdate(status=target), keeper_user.id
            )


# ═══════════════════════════════════════════════════════════════════════════════
#  API endpoint tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestRequestAPI:
    def test_create_request(
        self,
        client: TestClient,
        db: Session,
        engineer_token: str,
        project: Project,
        cement: Material,
    ) -> None:
        r = client.post(
            "/api/v1/requests",
            json={
                "project_id": str(project.id),
                "material_id": str(cement.id),
                "requested_qty": "12.5",
                "request_note": "Columns C1-C4",
            },
            headers=auth(engineer_token),
        )
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["status"] == "PENDING"
        assert data["requester_username"] == "test_engineer"
        assert data["uom_symbol"] == "kg"
        assert qty(data["requested_qty"]) == qty("12.5")
        assert db.query(AuditLog).filter(AuditLog.action == "REQUEST_CREATED").count() == 1

    def test_zero_quantity_rejected(
        self, client: TestClient, engineer_token: str, project: Project, cement: Material
    ) -> None:
        r = client.post(
            "/api/v1/requests",
            json={"project_id": str(project.id), "material_id": str(cement.id), "requested_qty": "0"},
            headers=auth(engineer_token),
        )
        assert r.status_code == 400

    def test_unknown_project_is_404(
        self, client: TestClient, engineer_token: str, cement: Material
    ) -> None:
        r = client.post(
            "/api/v1/requests",
            json={
                "project_id": str(uuid.uuid4()),
                "material_id": str(cement.id),
                "requested_qty": "5",
            },
            headers=auth(engineer_token),
        )
        assert r.status_code == 404
        assert r.json()["error"]["message"] == "Project not found"

    def test_approve_with_revised_quantity(
        self,
        client: TestClient,
        keeper_token: str,
        pending_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        r = client.put(
            f"/api/v1/requests/{pending_request.id}",
            json={"status": "APPROVED", "revised_qty": "15", "note": "Partial"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        assert r.json()["message"] == "Request approved"
        data = r.json()["data"]
        assert qty(data["revised_qty"]) == qty(15)
        assert data["review_note"] == "Partial"

    def test_approve_over_available_is_400(
        self,
        client: TestClient,
        keeper_token: str,
        pending_request: Request,
        cement_stock: InventoryItem,
    ) -> None:
        r = client.put(
            f"/api/v1/requests/{pending_request.id}",
            json={"status": "APPROVED", "revised_qty": "150"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 400
        assert r.json()["error"]["details"] == {"available": "100.000", "requested": "150"}

    def test_reject(self, client: TestClient, keeper_token: str, pending_request: Request) -> None:
        r = client.put(
            f"/api/v1/requests/{pending_request.id}",
            json={"status": "REJECTED", "note": "Not in budget"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        assert r.json()["message"] == "Request rejected"

    def test_engineer_cannot_review(
        self, client: TestClient, engineer_token: str, pending_request: Request
    ) -> None:
        r = client.put(
            f"/api/v1/requests/{pending_request.id}",
            json={"status": "APPROVED"},
            headers=auth(engineer_token),
        )
        assert r.status_code == 403

    def test_status_patch_reports_allowed_targets(
        self, client: TestClient, keeper_token: str, approved_request: Request
    ) -> None:
        r = client.patch(
            f"/api/v1/requests/{approved_request.id}/status",
            json={"status": "PENDING"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 400
        assert r.json()["error"]["details"] == {"allowed": ["REJECTED"]}

        r = client.patch(
            f"/api/v1/requests/{approved_request.id}/status",
            json={"status": "REJECTED"},
            headers=auth(keeper_token),
        )
        assert r.status_code == 200
        assert r.json()["message"] == "Request status updated"

    def test_list_filters(
        self,
        client: TestClient,
        keeper_token: str,
        pending_request: Request,
        approved_request: Request,
    ) -> None:
        r = client.get("/api/v1/requests?status=PENDING", headers=auth(keeper_token))
        assert [row["id"] for row in r.json()["data"]] == [str(pending_request.id)]

        r = client.get("/api/v1/requests?min_qty=25", headers=auth(keeper_token))
        assert [row["id"] for row in r.json()["data"]] == [str(approved_request.id)]

        r = client.get(
            "/api/v1/requests?sort_by=requested_qty&sort_direction=asc", headers=auth(keeper_token)
        )
        assert [qty(row["requested_qty"]) for row in r.json()["data"]] == [qty(20), qty(30)]

    def test_inverted_quantity_range_is_400(self, client: TestClient, keeper_token: str) -> None:
        r = client.get("/api/v1/requests?min_qty=10&max_qty=5", headers=auth(keeper_token))
        assert r.status_code == 400

    def test_inverted_date_range_is_400(self, client: TestClient, keeper_token: str) -> None:
        r = client.get(
            "/api/v1/requests?start_date=2026-03-01&end_date=2026-02-01",
            headers=auth(keeper_token),
        )
        assert r.status_code == 400

    def test_detail_without_delivery(
        self, client: TestClient, engineer_token: str, approved_request: Request
    ) -> None:
        r = client.get(f"/api/v1/requests/{approved_request.id}", headers=auth(engineer_token))
        assert r.status_code == 200
        assert r.json()["delivery"] is None
        assert r.json()["project_name"] == "Tower Block A"

    def test_note_suggestions(
        self,
        client: TestClient,
        engineer_token: str,
        pending_request: Request,
        approved_request: Request,
    ) -> None:
        r = client.get("/api/v1/requests/suggestions?prefix=SLAB", headers=auth(engineer_token))
        assert r.status_code == 200
        assert r.json() == ["Slab pour, level 3"]

        r = client.get(
            "/api/v1/requests/suggestions?prefix=s&field=material_id",
            headers=auth(engineer_token),
        )
        assert r.status_code == 400
        assert r.json()["error"]["details"]["allowed"] == ["request_note", "review_note"]
