"""Tests for roles, permission grants and employees."""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, ValidationError
from backend.depot.core.permissions import ALL_CODES, ROLE_PERMISSIONS
from backend.depot.models.permission import Permission, Role, RoleType
from backend.depot.models.project import Employee
from backend.depot.models.user import User
from backend.depot.schemas.staff import EmployeeCreate, RoleCreate
from backend.depot.services.staff import (
    create_employee,
    create_role,
    delete_role,
    ensure_system_roles,
    set_role_permissions,
)
from backend.tests.conftest import auth


@pytest.fixture()
def foreman_role(db: Session, seed_roles) -> Role:
    role = Role(name="Foreman", description="Site foreman", type=RoleType.EMPLOYEE)
    db.add(role)
    db.commit()
    db.refresh(role)
    return role


@pytest.fixture()
def employee(db: Session, foreman_role: Role) -> Employee:
    emp = Employee(first_name="Omar", last_name="Haddad", phone="0501234567", role_id=foreman_role.id)
    db.add(emp)
    db.commit()
    db.refresh(emp)
    return emp


# ═══════════════════════════════════════════════════════════════════════════════
#  Service-layer tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestRoleService:
    def test_seed_is_idempotent(self, db: Session, seed_roles) -> None:
        ensure_system_roles(db)
        db.commit()
        assert db.query(Permission).count() == len(ALL_CODES)
        assert db.query(Role).count() == len(ROLE_PERMISSIONS)

    def test_admin_holds_every_permission(self, db: Session, seed_roles) -> None:
        admin = seed_roles["ADMIN"]
        assert len(admin.role_permissions) == len(ALL_CODES)

    def test_duplicate_role_name(self, db: Session, admin_user: User) -> None:
        with pytest.raises(ConflictError):
            create_role(db, RoleCreate(name="engineer"), admin_user.id)

    def test_unknown_permission_codes_rejected(
        self, db: Session, admin_user: User
    ) -> None:
        role = create_role(db, RoleCreate(name="Auditor"), admin_user.id)
        with pytest.raises(ValidationError) as exc:
            set_role_permissions(db, role.id, ["audit:read", "made:up"], admin_user.id)
        assert exc.value.details == ["made:up"]

    def test_permissions_replace_previous_grants(
        self, db: Session, admin_user: User
    ) -> None:
        role = create_role(db, RoleCreate(name="Auditor"), admin_user.id)
        set_role_permissions(db, role.id, ["audit:read", "report:read"], admin_user.id)
        out = set_role_permissions(db, role.id, ["audit:read"], admin_user.id)
        assert out.permissions == ["audit:read"]

    def test_employee_roles_carry_no_permissions(
        self, db: Session, admin_user: User, foreman_role: Role
    ) -> None:
        with pytest.raises(ValidationError, match="USER roles"):
            set_role_permissions(db, foreman_role.id, ["audit:read"], admin_user.id)

    def test_system_role_cannot_be_deleted(
        self, db: Session, admin_user: User, seed_roles
    ) -> None:
        with pytest.raises(ValidationError, match="System roles"):
            delete_role(db, seed_roles["CONTRACTOR"].id, admin_user.id)

    def test_assigned_role_cannot_be_deleted(
        self, db: Session, admin_user: User, employee: Employee
    ) -> None:
        with pytest.raises(ValidationError, match="still assigned"):
            delete_role(db, employee.role_id, admin_user.id)


class TestEmployeeService:
    def test_employee_needs_employee_role(
        self, db: Session, admin_user: User, seed_roles
    ) -> None:
        data = EmployeeCreate(first_name="A", last_name="B", role_id=seed_roles["ENGINEER"].id)
        with pytest.raises(ValidationError, match="EMPLOYEE role"):
            create_employee(db, data, admin_user.id)

    def test_create_employee(self, db: Session, admin_user: User, foreman_role: Role) -> None:
        out = create_employee(
            db,
            EmployeeCreate(first_name="Sara", last_name="Nasser", role_id=foreman_role.id),
            admin_user.id,
        )
        assert out.full_name == "Sara Nasser"
        assert out.role_name == "Foreman"


# ═══════════════════════════════════════════════════════════════════════════════
#  API endpoint tests
# ═══════════════════════════════════════════════════════════════════════════════


class TestRoleAPI:
    def test_list_roles_by_type(
        self, client: TestClient, admin_token: str, foreman_role: Role
    ) -> None:
        r = client.get("/api/v1/roles?type=EMPLOYEE", headers=auth(admin_token))
        assert r.status_code == 200
        assert [role["name"] for role in r.json()] == ["Foreman"]

        r = client.get("/api/v1/roles?type=USER", headers=auth(admin_token))
        assert {role["name"] for role in r.json()} == set(ROLE_PERMISSIONS)

    def test_create_update_and_grant(self, client: TestClient, admin_token: str) -> None:
        r = client.post(
            "/api/v1/roles",
            json={"name": "Storeman", "description": "Night shift"},
            headers=auth(admin_token),
        )
        assert r.status_code == 201
        role_id = r.json()["data"]["id"]

        r = client.put(
            f"/api/v1/roles/{role_id}",
            json={"description": "Night shift keeper"},
            headers=auth(admin_token),
        )
        assert r.json()["data"]["description"] == "Night shift keeper"

        r = client.put(
            f"/api/v1/roles/{role_id}/permissions",
            json={"codes": ["inventory:read", "warehouse:read"]},
            headers=auth(admin_token),
        )
        assert r.status_code == 200
        assert r.json()["message"] == "Role permissions updated"
        assert r.json()["data"]["permissions"] == ["inventory:read", "warehouse:read"]

    def test_rename_system_role_rejected(
        self, client: TestClient, admin_token: str, seed_roles
    ) -> None:
        r = client.put(
            f"/api/v1/roles/{seed_roles['ENGINEER'].id}",
            json={"name": "Engineers"},
            headers=auth(admin_token),
        )
        assert r.status_code == 400

    def test_delete_role(self, client: TestClient, admin_token: str, foreman_role: Role) -> None:
        r = client.delete(f"/api/v1/roles/{foreman_role.id}", headers=auth(admin_token))
        assert r.status_code == 204
        r = client.get(f"/api/v1/roles/{foreman_role.id}", headers=auth(admin_token))
        assert r.status_code == 404

    def test_keeper_cannot_manage_roles(self, client: TestClient, keeper_token: str) -> None:
        r = client.post("/api/v1/roles", json={"name": "Sneaky"}, headers=auth(keeper_token))
        assert r.status_code == 403


class TestEmployeeAPI:
    def test_create_and_list(
        self, client: TestClient, admin_token: str, foreman_role: Role
    ) -> None:
        r = client.post(
            "/api/v1/employees",
            json={"first_name": "Khalid", "last_name": "Saleh", "role_id": str(foreman_role.id)},
            headers=auth(admin_token),
        )
        assert r.status_code == 201
        assert r.json()["message"] == "Employee created"

        r = client.get("/api/v1/employees?search=khal", headers=auth(admin_token))
        assert r.json()["meta"]["total"] == 1
        assert r.json()["data"][0]["full_name"] == "Khalid Saleh"

    def test_update_employee(
        self, client: TestClient, admin_token: str, employee: Employee
    ) -> None:
        r = client.put(
            f"/api/v1/employees/{employee.id}",
            json={"phone": "0559999999"},
            headers=auth(admin_token),
        )
        assert r.status_code == 200
        assert r.json()["data"]["phone"] == "0559999999"

    def test_delete_employee_hides_it(
        self, client: TestClient, admin_token: str, employee: Employee
    ) -> None:
        r = client.delete(f"/api/v1/employees/{employee.id}", headers=auth(admin_token))
        assert r.status_code == 204
        r = client.get(f"/api/v1/employees/{employee.id}", headers=auth(admin_token))
        assert r.status_code == 404

    def test_engineer_can_read_not_write(
        self, client: TestClient, engineer_token: str, foreman_role: Role
    ) -> None:
        assert client.get("/api/v1/employees", headers=auth(engineer_token)).status_code == 200
        r = client.post(
            "/api/v1/employees",
            json={"first_name": "X", "last_name": "Y", "role_id": str(foreman_role.id)},
            headers=auth(engineer_token),
        )
        assert r.status_code == 403

    def test_unknown_role_is_404(self, client: TestClient, admin_token: str) -> None:
        r = client.post(
            "/api/v1/employees",
            json={"first_name": "X", "last_name": "Y", "role_id": str(uuid.uuid4())},
            headers=auth(admin_token),
        )
        assert r.status_code == 404
