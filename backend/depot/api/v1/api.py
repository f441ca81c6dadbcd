from fastapi import APIRouter

from backend.depot.api.v1.endpoints import (
    audit,
    auth,
    catalog,
    deliveries,
    employees,
    files,
    inventory,
    materials,
    notifications,
    projects,
    reports,
    requests,
    roles,
    statistics,
    users,
    warehouses,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(roles.router, prefix="/roles", tags=["roles"])
api_router.include_router(employees.router, prefix="/employees", tags=["employees"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(catalog.uom_router, prefix="/uoms", tags=["catalog"])
api_router.include_router(catalog.institution_router, prefix="/institutions", tags=["catalog"])
api_router.include_router(materials.router, prefix="/materials", tags=["materials"])
api_router.include_router(warehouses.router, prefix="/warehouses", tags=["warehouses"])
api_router.include_router(requests.router, prefix="/requests", tags=["requests"])
api_router.include_router(deliveries.router, prefix="/deliveries", tags=["deliveries"])
api_router.include_router(inventory.items_router, prefix="/inventory-items", tags=["inventory"])
api_router.include_router(inventory.reserves_router, prefix="/inventory-reserves", tags=["inventory"])
api_router.include_router(inventory.transactions_router, prefix="/inventory-transactions", tags=["inventory"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(statistics.router, prefix="/statistics", tags=["statistics"])
api_router.include_router(audit.router, prefix="/audit-logs", tags=["audit"])
