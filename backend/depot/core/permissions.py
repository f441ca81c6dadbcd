"""Permission catalogue and the default grants of each system role.

Shared by the seed script, the initial migration and the test fixtures so the
three never drift apart.
"""

from __future__ import annotations

ALL_PERMISSION_CODES: list[tuple[str, str, str]] = [
    ("project:read", "View projects and members", "projects"),
    ("project:write", "Create/update projects and manage members", "projects"),
    ("material:read", "View materials and attributes", "catalog"),
    ("material:write", "Create/update/delete materials", "catalog"),
    ("catalog:read", "View units of measure and institutions", "catalog"),
    ("catalog:write", "Manage units of measure and institutions", "catalog"),
    ("warehouse:read", "View warehouses and stock", "warehouse"),
    ("warehouse:write", "Manage warehouses", "warehouse"),
    ("inventory:read", "View inventory items, reserves and transactions", "inventory"),
    ("inventory:write", "Create inventory items and reserves", "inventory"),
    ("inventory:adjust", "Adjust inventory item quantities", "inventory"),
    ("request:read", "View material requests", "requests"),
    ("request:create", "Raise material requests", "requests"),
    ("request:approve", "Approve, reject and revise requests", "requests"),
    ("delivery:read", "View deliveries", "deliveries"),
    ("delivery:complete", "Complete deliveries and change their status", "deliveries"),
    ("employee:read", "View employees", "staff"),
    ("employee:write", "Manage employees", "staff"),
    ("role:read", "View roles", "admin"),
    ("role:write", "Manage roles and their permissions", "admin"),
    ("user:read", "View user list", "admin"),
    ("user:manage", "Create/update/deactivate users", "admin"),
    ("file:read", "View and download files", "files"),
    ("file:write", "Upload and update files", "files"),
    ("file:delete", "Delete files", "files"),
    ("report:read", "View statistics", "reports"),
    ("report:export", "Generate and download reports", "reports"),
    ("audit:read", "View audit logs", "admin"),
]

ALL_CODES = [c for c, _, _ in ALL_PERMISSION_CODES]

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "ADMIN": ALL_CODES,
    "WAREHOUSE_KEEPER": [
        "project:read",
        "material:read", "material:write",
        "catalog:read", "catalog:write",
        "warehouse:read", "warehouse:write",
        "inventory:read", "inventory:write", "inventory:adjust",
        "request:read", "request:approve",
        "delivery:read", "delivery:complete",
        "employee:read",
        "file:read", "file:write",
        "report:read", "report:export",
    ],
    "ENGINEER": [
        "project:read",
        "material:read",
        "catalog:read",
        "warehouse:read",
        "inventory:read",
        "request:read", "request:create",
        "delivery:read",
        "employee:read",
        "file:read", "file:write",
        "report:read",
    ],
    "CONTRACTOR": [
        "project:read",
        "material:read",
        "catalog:read",
        "request:read", "request:create",
        "delivery:read",
        "file:read",
    ],
}

ROLE_DESCRIPTIONS: dict[str, str] = {
    "ADMIN": "Full access to every resource",
    "WAREHOUSE_KEEPER": "Runs the depot: stock, approvals and deliveries",
    "ENGINEER": "Site engineer raising material requests",
    "CONTRACTOR": "Subcontractor raising material requests",
}
