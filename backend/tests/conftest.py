"""Shared test fixtures.

Tests run against an in-memory SQLite database. Every test gets freshly
created tables that are dropped afterwards, so service code is free to
commit (and roll back on conflicts) just as it does in production.
"""

from __future__ import annotations

import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("NOTIFICATION_ENABLED", "false")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("TOKEN_DENYLIST_BACKEND", "memory")
os.environ.setdefault("FILE_STORAGE_PATH", tempfile.mkdtemp(prefix="depot-test-"))

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from backend.depot.core.config import settings
from backend.depot.core.database import Base, SessionLocal, engine, get_db
from backend.depot.core.security import create_access_token, get_password_hash
from backend.depot.main import app
from backend.depot.models.registry import (
    InventoryItem,
    Material,
    Project,
    Request,
    RequestStatus,
    Role,
    RoleEnum,
    Uom,
    User,
    Warehouse,
)
from backend.depot.services.cache import cache
from backend.depot.services.file_service import FileStorageService
from backend.depot.services.staff import ensure_system_roles

TEST_PASSWORD = "Depot@Test2026!"


# ─── Database ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Yield a session on freshly created tables; drop everything afterwards."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _clear_cache() -> Generator[None, None, None]:
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def storage(tmp_path, monkeypatch) -> FileStorageService:
    """File storage rooted in a per-test temp dir (also used by the API)."""
    monkeypatch.setattr(settings, "FILE_STORAGE_PATH", str(tmp_path))
    return FileStorageService(str(tmp_path))


# ─── Roles & users ────────────────────────────────────────────────────────────


@pytest.fixture()
def seed_roles(db: Session) -> dict[str, Role]:
    roles = ensure_system_roles(db)
    db.commit()
    return roles


def _make_user(
    db: Session, roles: dict[str, Role], username: str, role: RoleEnum, **extra: object
) -> User:
    user = User(
        username=username,
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role,
        role_id=roles[role.value].id,
        **extra,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def admin_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(db, seed_roles, "test_admin", RoleEnum.ADMIN, email="admin@depot.test")


@pytest.fixture()
def keeper_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(
        db, seed_roles, "test_keeper", RoleEnum.WAREHOUSE_KEEPER, email="keeper@depot.test"
    )


@pytest.fixture()
def engineer_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(
        db, seed_roles, "test_engineer", RoleEnum.ENGINEER, email="engineer@depot.test"
    )


@pytest.fixture()
def contractor_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(db, seed_roles, "test_contractor", RoleEnum.CONTRACTOR)


@pytest.fixture()
def admin_token(admin_user: User) -> str:
    return create_access_token(subject=str(admin_user.id))


@pytest.fixture()
def keeper_token(keeper_user: User) -> str:
    return create_access_token(subject=str(keeper_user.id))


@pytest.fixture()
def engineer_token(engineer_user: User) -> str:
    return create_access_token(subject=str(engineer_user.id))


@pytest.fixture()
def contractor_token(contractor_user: User) -> str:
    return create_access_token(subject=str(contractor_user.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


def qty(value: object) -> Decimal:
    """Quantities come back as strings or floats depending on the path."""
    return Decimal(str(value)).quantize(Decimal("0.001"))


# ─── Catalogue & stock fixtures ───────────────────────────────────────────────


@pytest.fixture()
def uom_kg(db: Session) -> Uom:
    uom = Uom(name="Kilogram", symbol="kg")
    db.add(uom)
    db.commit()
    db.refresh(uom)
    return uom


@pytest.fixture()
def warehouse_main(db: Session) -> Warehouse:
    wh = Warehouse(code="MAIN", name="Main Depot", location="Yard A")
    db.add(wh)
    db.commit()
    db.refresh(wh)
    return wh


@pytest.fixture()
def cement(db: Session, uom_kg: Uom) -> Material:
    material = Material(
        code="CEM-001",
        name="Portland Cement",
        description="Type I cement",
        uom_id=uom_kg.id,
        min_stock_qty=Decimal("10"),
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    return material


@pytest.fixture()
def project(db: Session) -> Project:
    p = Project(name="Tower Block A", description="Residential tower")
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture()
def cement_stock(
    db: Session, cement: Material, warehouse_main: Warehouse, uom_kg: Uom
) -> InventoryItem:
    """100 kg of cement at the main depot, nothing reserved."""
    item = InventoryItem(
        material_id=cement.id,
        warehouse_id=warehouse_main.id,
        uom_id=uom_kg.id,
        quantity=Decimal("100"),
        reserved_quantity=Decimal("0"),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture()
def pending_request(
    db: Session, engineer_user: User, project: Project, cement: Material
) -> Request:
    req = Request(
        requested_by=engineer_user.id,
        project_id=project.id,
        material_id=cement.id,
        requested_qty=Decimal("20"),
        status=RequestStatus.PENDING,
        request_note="Slab pour, level 3",
    )
    db.add(req)
    db.commit()
    db.refresh(req)
    return req


@pytest.fixture()
def approved_request(
    db: Session, engineer_user: User, keeper_user: User, project: Project, cement: Material
) -> Request:
    req = Request(
        requested_by=engineer_user.id,
        project_id=project.id,
        material_id=cement.id,
        requested_qty=Decimal("30"),
        revised_qty=Decimal("25"),
        status=RequestStatus.APPROVED,
        reviewed_by=keeper_user.id,
    )
    db.add(req)
    db.commit()
    db.refresh(req)
    return req
