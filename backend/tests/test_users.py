"""Tests for user administration: service layer and API endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.create_admin import bootstrap_admin
from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.core.security import verify_password
from backend.depot.models.audit import AuditLog
from backend.depot.models.user import RoleEnum, User
from backend.depot.services.user_management import (
    change_own_password,
    create_user,
    load_user_permissions,
    toggle_user_active,
    update_user,
)
from backend.tests.conftest import TEST_PASSWORD, auth

NEW_PASSWORD = "Fresh@Password2026"


# ═══════════════════════════════════════════════════════════════════════════════
#  Service-layer tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestUserService:
    def test_create_user_links_role_record(
        self, db: Session, admin_user: User, seed_roles
    ) -> None:
        user = create_user(
            db,
            username="site_eng",
            password=NEW_PASSWORD,
            role=RoleEnum.ENGINEER,
            admin_id=admin_user.id,
        )
        db.commit()
        assert user.role_id == seed_roles["ENGINEER"].id
        assert "request:create" in load_user_permissions(db, user)
        assert "user:manage" not in load_user_permissions(db, user)

    def test_create_duplicate_username_case_insensitive(
        self, db: Session, admin_user: User
    ) -> None:
        with pytest.raises(ConflictError):
            create_user(
                db,
                username="TEST_ADMIN",
                password=NEW_PASSWORD,
                role=RoleEnum.ENGINEER,
                admin_id=admin_user.id,
            )

    def test_update_role_moves_permissions(
        self, db: Session, admin_user: User, engineer_user: User, seed_roles
    ) -> None:
        update_user(
            db, user_id=engineer_user.id, admin_id=admin_user.id, role=RoleEnum.WAREHOUSE_KEEPER
        )
        db.commit()
        assert engineer_user.role_id == seed_roles["WAREHOUSE_KEEPER"].id
        assert "delivery:complete" in load_user_permissions(db, engineer_user)

    def test_admin_cannot_demote_self(self, db: Session, admin_user: User) -> None:
        with pytest.raises(ValidationError, match="own admin role"):
            update_user(db, user_id=admin_user.id, admin_id=admin_user.id, role=RoleEnum.ENGINEER)

    def test_cannot_deactivate_self(self, db: Session, admin_user: User) -> None:
        with pytest.raises(ValidationError, match="deactivate yourself"):
            toggle_user_active(db, user_id=admin_user.id, admin_id=admin_user.id)

    def test_toggle_unknown_user(self, db: Session, admin_user: User) -> None:
        with pytest.raises(NotFoundError):
            toggle_user_active(db, user_id=uuid.uuid4(), admin_id=admin_user.id)

    def test_change_password_requires_current(
        self, db: Session, engineer_user: User
    ) -> None:
        with pytest.raises(ValidationError, match="incorrect"):
            change_own_password(
                db,
                user_id=engineer_user.id,
                current_password="wrong",
                new_password=NEW_PASSWORD,
            )

    def test_permissions_of_deleted_role_are_empty(
        self, db: Session, engineer_user: User, seed_roles
    ) -> None:
        seed_roles["ENGINEER"].deleted_at = datetime.now(timezone.utc)
        db.commit()
        assert load_user_permissions(db, engineer_user) == set()


class TestBootstrapAdmin:
    def test_creates_admin_with_roles(self, db: Session) -> None:
        user, created = bootstrap_admin(db, "root", NEW_PASSWORD, "root@depot.test")
        assert created
        assert user.role == RoleEnum.ADMIN
        assert "user:manage" in load_user_permissions(db, user)

    def test_recovers_locked_engineer(self, db: Session, engineer_user: User) -> None:
        engineer_user.is_active = False
        engineer_user.failed_login_attempts = 5
        engineer_user.locked_until = datetime.now(timezone.utc) + timedelta(minutes=30)
        db.commit()

        user, created = bootstrap_admin(db, "TEST_ENGINEER", NEW_PASSWORD)
        assert not created
        assert user.id == engineer_user.id
        assert user.is_active
        assert user.locked_until is None
        assert user.role == RoleEnum.ADMIN
        assert verify_password(NEW_PASSWORD, user.hashed_password)


# ═══════════════════════════════════════════════════════════════════════════════
#  API endpoint tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestUserAPI:
    def test_me_lists_sorted_permissions(self, client: TestClient, engineer_token: str) -> None:
        r = client.get("/api/v1/users/me", headers=auth(engineer_token))
        assert r.status_code == 200
        perms = r.json()["permissions"]
        assert perms == sorted(perms)
        assert "request:create" in perms
        assert "user:read" not in perms

    def test_list_users_paginated(
        self, client: TestClient, admin_token: str, engineer_user: User, keeper_user: User
    ) -> None:
        r = client.get("/api/v1/users?limit=2", headers=auth(admin_token))
        assert r.status_code == 200
        body = r.json()
        assert body["meta"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
        assert len(body["data"]) == 2

    def test_list_users_filters(
        self, client: TestClient, admin_token: str, engineer_user: User, keeper_user: User
    ) -> None:
        r = client.get("/api/v1/users?role=ENGINEER", headers=auth(admin_token))
        assert [u["username"] for u in r.json()["data"]] == ["test_engineer"]

        r = client.get("/api/v1/users?search=keep", headers=auth(admin_token))
        assert [u["username"] for u in r.json()["data"]] == ["test_keeper"]

    def test_engineer_cannot_list_users(self, client: TestClient, engineer_token: str) -> None:
        r = client.get("/api/v1/users", headers=auth(engineer_token))
        assert r.status_code == 403
        assert "user:read" in r.json()["error"]["message"]

    def test_create_user(self, client: TestClient, db: Session, admin_token: str) -> None:
        r = client.post(
            "/api/v1/users",
            json={
                "username": "new_contractor",
                "password": NEW_PASSWORD,
                "email": "contractor@example.com",
                "role": "CONTRACTOR",
            },
            headers=auth(admin_token),
        )
        assert r.status_code == 201
        body = r.json()
        assert body["message"] == "User created"
        assert body["data"]["role"] == "CONTRACTOR"
        assert "hashed_password" not in body["data"]
        assert db.query(AuditLog).filter(AuditLog.action == "USER_CREATED").count() == 1

    def test_create_user_weak_password_rejected(
        self, client: TestClient, admin_token: str
    ) -> None:
        r = client.post(
            "/api/v1/users",
            json={"username": "weakling", "password": "alllowercase1", "role": "ENGINEER"},
            headers=auth(admin_token),
        )
        assert r.status_code == 400
        assert r.json()["error"]["type"] == "ValidationError"

    def test_create_duplicate_user_is_409(
        self, client: TestClient, admin_token: str, engineer_user: User
    ) -> None:
        r = client.post(
            "/api/v1/users",
            json={"username": "test_engineer", "password": NEW_PASSWORD, "role": "ENGINEER"},
            headers=auth(admin_token),
        )
        assert r.status_code == 409

    def test_update_user(
        self, client: TestClient, admin_token: str, engineer_user: User
    ) -> None:
        r = client.patch(
            f"/api/v1/users/{engineer_user.id}",
            json={"full_name": "Site Engineer", "phone": "+966500000000"},
            headers=auth(admin_token),
        )
        assert r.status_code == 200
        assert r.json()["data"]["full_name"] == "Site Engineer"

    def test_toggle_active(
        self, client: TestClient, admin_token: str, engineer_user: User
    ) -> None:
        r = client.patch(
            f"/api/v1/users/{engineer_user.id}/toggle-active", headers=auth(admin_token)
        )
        assert r.status_code == 200
        assert r.json()["message"] == "User deactivated"
        assert r.json()["data"]["is_active"] is False

        r = client.patch(
            f"/api/v1/users/{engineer_user.id}/toggle-active", headers=auth(admin_token)
        )
        assert r.json()["message"] == "User activated"

    def test_reset_password_clears_lockout(
        self, client: TestClient, db: Session, admin_token: str, engineer_user: User
    ) -> None:
        engineer_user.failed_login_attempts = 5
        engineer_user.locked_until = datetime.now(timezone.utc) + timedelta(minutes=10)
        db.commit()

        r = client.post(
            f"/api/v1/users/{engineer_user.id}/reset-password",
            json={"new_password": NEW_PASSWORD},
            headers=auth(admin_token),
        )
        assert r.status_code == 200
        db.refresh(engineer_user)
        assert engineer_user.locked_until is None
        assert engineer_user.failed_login_attempts == 0
        assert verify_password(NEW_PASSWORD, engineer_user.hashed_password)

    def test_change_own_password(
        self, client: TestClient, db: Session, engineer_user: User, engineer_token: str
    ) -> None:
        r = client.post(
            "/api/v1/users/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": NEW_PASSWORD},
            headers=auth(engineer_token),
        )
        assert r.status_code == 200
        db.refresh(engineer_user)
        assert verify_password(NEW_PASSWORD, engineer_user.hashed_password)

    def test_get_unknown_user_is_404(self, client: TestClient, admin_token: str) -> None:
        r = client.get(f"/api/v1/users/{uuid.uuid4()}", headers=auth(admin_token))
        assert r.status_code == 404
        assert r.json()["error"]["type"] == "NotFoundError"
