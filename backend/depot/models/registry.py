# Import every model module so string relationships resolve and
# Base.metadata knows all tables. Import this before touching the mappers.

from backend.depot.models.user import RoleEnum, User
from backend.depot.models.permission import Permission, Role, RolePermission, RoleType
from backend.depot.models.audit import AuditLog
from backend.depot.models.catalog import Institution, Material, MaterialAttribute, Uom
from backend.depot.models.project import (
    Employee,
    Project,
    ProjectEmployee,
    ProjectStatus,
    ProjectUser,
    ProjectUserRole,
)
from backend.depot.models.inventory import (
    InventoryItem,
    InventoryReserve,
    InventoryTransaction,
    ItemType,
    MovementType,
    ReferenceType,
    ReserveStatus,
    StockMovement,
    Warehouse,
)
from backend.depot.models.request import Delivery, DeliveryStatus, Request, RequestStatus
from backend.depot.models.notification import (
    Notification,
    NotificationCategory,
    NotificationLevel,
)
from backend.depot.models.file import FileCategory, StoredFile

__all__ = [
    "RoleEnum",
    "User",
    "Permission",
    "Role",
    "RolePermission",
    "RoleType",
    "AuditLog",
    "Institution",
    "Material",
    "MaterialAttribute",
    "Uom",
    "Employee",
    "Project",
    "ProjectEmployee",
    "ProjectStatus",
    "ProjectUser",
    "ProjectUserRole",
    "InventoryItem",
    "InventoryReserve",
    "InventoryTransaction",
    "ItemType",
    "MovementType",
    "ReferenceType",
    "ReserveStatus",
    "StockMovement",
    "Warehouse",
    "Delivery",
    "DeliveryStatus",
    "Request",
    "RequestStatus",
    "Notification",
    "NotificationCategory",
    "NotificationLevel",
    "FileCategory",
    "StoredFile",
]
