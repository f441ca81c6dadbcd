"""Seed the database with permissions, system roles, units, a warehouse and an admin.

Usage:
    python -m backend.scripts.seed
"""

from __future__ import annotations

import os

import backend.depot.models.registry  # noqa: F401
from backend.depot.core.database import SessionLocal
from backend.depot.core.security import get_password_hash
from backend.depot.models.catalog import Uom
from backend.depot.models.inventory import Warehouse
from backend.depot.models.user import RoleEnum, User
from backend.depot.services.staff import ensure_system_roles

UOMS: list[tuple[str, str]] = [
    ("Piece", "pcs"),
    ("Kilogram", "kg"),
    ("Ton", "t"),
    ("Meter", "m"),
    ("Square meter", "m2"),
    ("Cubic meter", "m3"),
    ("Liter", "l"),
    ("Bag", "bag"),
]

ADMIN_PASSWORD = os.environ.get("DEPOT_ADMIN_PASSWORD", "Depot@Admin2026!")


def seed() -> None:
    db = SessionLocal()
    try:
        # ── Permissions & roles ────────────────────────────────────────
        roles = ensure_system_roles(db)
        print(f"System roles ready: {', '.join(sorted(roles))}")

        # ── Admin user ─────────────────────────────────────────────────
        admin = db.query(User).filter_by(username="admin").first()
        if admin:
            admin.hashed_password = get_password_hash(ADMIN_PASSWORD)
            if admin.role_id is None:
                admin.role_id = roles["ADMIN"].id
                print("Assigned ADMIN role to admin user.")
            print("Updated admin password.")
        else:
            db.add(
                User(
                    username="admin",
                    hashed_password=get_password_hash(ADMIN_PASSWORD),
                    role=RoleEnum.ADMIN,
                    role_id=roles["ADMIN"].id,
                )
            )
            print("Created admin user.")

        # ── Units of measure ───────────────────────────────────────────
        for name, symbol in UOMS:
            if not db.query(Uom).filter_by(symbol=symbol).first():
                db.add(Uom(name=name, symbol=symbol))
                print(f"Created unit: {symbol}")

        # Default warehouse
        if not db.query(Warehouse).filter_by(code="MAIN").first():
            db.add(Warehouse(code="MAIN", name="Main Depot"))
            print("Created warehouse: Main Depot")

        db.commit()
        print("Seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
