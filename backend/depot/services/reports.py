"""Service layer for tabular reports (stock, requests, deliveries, users)."""
from __future__ import annotations

import io
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import PurePosixPath

from sqlalchemy.orm import Session, aliased

from backend.depot.core.errors import NotFoundError, ValidationError
from backend.depot.models.catalog import Material, Uom
from backend.depot.models.inventory import InventoryItem, Warehouse
from backend.depot.models.project import Project
from backend.depot.models.request import Delivery, Request
from backend.depot.models.user import User
from backend.depot.schemas.reports import ReportData, ReportFormat, ReportType
from backend.depot.services.export_excel import export_report_excel
from backend.depot.services.export_pdf import export_report_pdf
from backend.depot.services.file_service import FileStorageService
from backend.depot.services.periods import check_range, day_end, day_start

REPORT_TITLES = {
    ReportType.STOCK: "Stock Report",
    ReportType.REQUEST: "Request Report",
    ReportType.DELIVERY: "Delivery Report",
    ReportType.USER: "User Report",
}

REPORTS_DIR = "reports"

MEDIA_TYPES = {
    ReportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ReportFormat.PDF: "application/pdf",
}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _qty(value: Decimal | None) -> str:
    if value is None:
        return ""
    return f"{Decimal(value):.3f}"


def _ts(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def _subtitle(start_date: date | None, end_date: date | None) -> str:
    if start_date and end_date:
        return f"Period: {start_date.isoformat()} to {end_date.isoformat()}"
    if start_date:
        return f"From {start_date.isoformat()}"
    if end_date:
        return f"Up to {end_date.isoformat()}"
    return "All records"


# ── Builders ─────────────────────────────────────────────────────────────────


def _stock_rows(db: Session) -> tuple[list[str], list[list[str]]]:
    """Point-in-time stock per inventory item."""
    columns = ["Code", "Material", "Warehouse", "Unit", "Quantity", "Reserved", "Available"]
    rows = (
        db.query(InventoryItem, Material.code, Material.name, Warehouse.name, Uom.symbol)
        .join(Material, InventoryItem.material_id == Material.id)
        .join(Warehouse, InventoryItem.warehouse_id == Warehouse.id)
        .join(Uom, InventoryItem.uom_id == Uom.id)
        .filter(InventoryItem.deleted_at.is_(None), Material.deleted_at.is_(None))
        .order_by(Material.code, Warehouse.name)
        .all()
    )
    return columns, [
        [
            code,
            name,
            warehouse,
            symbol,
            _qty(item.quantity),
            _qty(item.reserved_quantity),
            _qty(item.available_quantity),
        ]
        for item, code, name, warehouse, symbol in rows
    ]


def _request_rows(
    db: Session, start_date: date | None, end_date: date | None
) -> tuple[list[str], list[list[str]]]:
    columns = ["Created", "Project", "Material", "Requested", "Revised", "Status", "Requested by"]
    query = (
        db.query(Request, Project.name, Material.name, User.username)
        .join(Project, Request.project_id == Project.id)
        .join(Material, Request.material_id == Material.id)
        .join(User, Request.requested_by == User.id)
    )
    if start_date:
        query = query.filter(Request.created_at >= day_start(start_date))
    if end_date:
        query = query.filter(Request.created_at <= day_end(end_date))
    rows = query.order_by(Request.created_at.desc()).all()
    return columns, [
        [
            _ts(req.created_at),
            project,
            material,
            _qty(req.requested_qty),
            _qty(req.revised_qty),
            req.status.value,
            username,
        ]
        for req, project, material, username in rows
    ]


def _delivery_rows(
    db: Session, start_date: date | None, end_date: date | None
) -> tuple[list[str], list[list[str]]]:
    columns = ["Delivered", "Project", "Material", "Quantity", "Status", "Delivered by"]
    deliverer = aliased(User)
    query = (
        db.query(Delivery, Project.name, Material.name, deliverer.username)
        .join(Request, Delivery.request_id == Request.id)
        .join(Project, Request.project_id == Project.id)
        .join(Material, Request.material_id == Material.id)
        .join(deliverer, Delivery.delivered_by == deliverer.id)
    )
    if start_date:
        query = query.filter(Delivery.created_at >= day_start(start_date))
    if end_date:
        query = query.filter(Delivery.created_at <= day_end(end_date))
    rows = query.order_by(Delivery.created_at.desc()).all()
    return columns, [
        [
            _ts(d.delivery_date or d.created_at),
            project,
            material,
            _qty(d.quantity),
            d.status.value,
            username,
        ]
        for d, project, material, username in rows
    ]


def _user_rows(db: Session) -> tuple[list[str], list[list[str]]]:
    columns = ["Username", "Full name", "Email", "Role", "Active", "Last login"]
    rows = db.query(User).order_by(User.username).all()
    return columns, [
        [
            u.username,
            u.full_name or "",
            u.email or "",
            u.role.value,
            "yes" if u.is_active else "no",
            _ts(u.last_login),
        ]
        for u in rows
    ]


def build_report(
    db: Session,
    report_type: ReportType,
    start_date: date | None = None,
    end_date: date | None = None,
) -> ReportData:
    """Collect the rows for *report_type* into a format-neutral table."""
    check_range(start_date, end_date)
    if report_type == ReportType.STOCK:
        columns, rows = _stock_rows(db)
        subtitle = f"As of {date.today().isoformat()}"
    elif report_type == ReportType.REQUEST:
        columns, rows = _request_rows(db, start_date, end_date)
        subtitle = _subtitle(start_date, end_date)
    elif report_type == ReportType.DELIVERY:
        columns, rows = _delivery_rows(db, start_date, end_date)
        subtitle = _subtitle(start_date, end_date)
    else:
        columns, rows = _user_rows(db)
        subtitle = "All users"

    return ReportData(
        type=report_type,
        title=REPORT_TITLES[report_type],
        subtitle=subtitle,
        columns=columns,
        rows=rows,
        generated_at=datetime.now(timezone.utc),
    )


# ── Rendering and storage ────────────────────────────────────────────────────


def render_report(report: ReportData, fmt: ReportFormat) -> io.BytesIO:
    if fmt == ReportFormat.XLSX:
        return export_report_excel(report)
    if fmt == ReportFormat.PDF:
        return export_report_pdf(report)
    raise ValidationError(f"Format {fmt.value} cannot be rendered to a file")


def report_file_name(report: ReportData, fmt: ReportFormat) -> str:
    stamp = report.generated_at.strftime("%Y%m%d-%H%M%S")
    return f"{report.type.value}-report-{stamp}.{fmt.value}"


def store_report(
    report: ReportData, fmt: ReportFormat, storage: FileStorageService | None = None
) -> str:
    """Render *report* and save it under ``reports/``; returns the file name."""
    storage = storage or FileStorageService()
    file_name = report_file_name(report, fmt)
    storage.save(f"{REPORTS_DIR}/{file_name}", render_report(report, fmt).getvalue())
    return file_name


def read_stored_report(
    file_name: str, storage: FileStorageService | None = None
) -> tuple[bytes, str]:
    """Return the bytes and media type of a report saved by :func:`store_report`."""
    if PurePosixPath(file_name).name != file_name or file_name.startswith("."):
        raise ValidationError("Invalid report file name")
    try:
        fmt = ReportFormat(PurePosixPath(file_name).suffix.lstrip("."))
    except ValueError:
        raise ValidationError("Invalid report file name") from None
    if fmt not in MEDIA_TYPES:
        raise ValidationError("Invalid report file name")

    storage = storage or FileStorageService()
    path = f"{REPORTS_DIR}/{file_name}"
    if not storage.exists(path):
        raise NotFoundError("Report not found")
    return storage.read(path), MEDIA_TYPES[fmt]
