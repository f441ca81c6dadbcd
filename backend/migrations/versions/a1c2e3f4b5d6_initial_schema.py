"""initial depot schema with permission and role seed

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union
import uuid

from alembic import op
import sqlalchemy as sa

import backend.depot.models.registry  # noqa: F401
from backend.depot.core.database import Base
from backend.depot.core.permissions import (
    ALL_PERMISSION_CODES,
    ROLE_DESCRIPTIONS,
    ROLE_PERMISSIONS,
)


# revision identifiers, used by Alembic.
revision: str = "a1c2e3f4b5d6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # 1. Tables, indexes and constraints
    Base.metadata.create_all(bind=conn)

    # 2. Seed permissions
    perm_ids: dict[str, uuid.UUID] = {}
    for code, description, category in ALL_PERMISSION_CODES:
        pid = uuid.uuid4()
        perm_ids[code] = pid
        conn.execute(
            sa.text("INSERT INTO permissions (id, code, description, category) VALUES (:id, :code, :desc, :cat)"),
            {"id": pid, "code": code, "desc": description, "cat": category},
        )

    # 3. Seed system roles
    role_ids: dict[str, uuid.UUID] = {}
    for role_name in ROLE_PERMISSIONS:
        rid = uuid.uuid4()
        role_ids[role_name] = rid
        conn.execute(
            sa.text(
                "INSERT INTO roles (id, name, description, type, is_system) "
                "VALUES (:id, :name, :desc, 'USER', true)"
            ),
            {"id": rid, "name": role_name, "desc": ROLE_DESCRIPTIONS[role_name]},
        )

    # 4. Seed role-permission mappings
    for role_name, codes in ROLE_PERMISSIONS.items():
        for code in codes:
            conn.execute(
                sa.text("INSERT INTO role_permissions (role_id, permission_id) VALUES (:rid, :pid)"),
                {"rid": role_ids[role_name], "pid": perm_ids[code]},
            )


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
