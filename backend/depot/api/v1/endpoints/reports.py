from __future__ import annotations

import io

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope
from backend.depot.schemas.reports import AsyncReportOut, ReportData, ReportFormat, ReportRequest
from backend.depot.services.audit import log_action
from backend.depot.services.file_service import content_disposition
from backend.depot.services.reports import (
    MEDIA_TYPES,
    build_report,
    read_stored_report,
    render_report,
    report_file_name,
)
from backend.depot.workers.tasks.exports import generate_report_file

router = APIRouter()


def _export_response(buf: io.BytesIO, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        buf,
        media_type=media_type,
        headers={"Content-Disposition": content_disposition("attachment", filename)},
    )


def _log_export(
    db: Session, user_id: object, report_name: str, fmt: str, ip_address: str | None
) -> None:
    log_action(
        db,
        user_id=user_id,  # type: ignore[arg-type]
        action="REPORT_EXPORTED",
        resource_type="reports",
        resource_id=report_name,
        ip_address=ip_address,
        changes={"format": fmt},
    )
    db.commit()


@router.post("", response_model=Envelope[ReportData])
def generate_report(
    body: ReportRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("report:export")),
) -> Envelope[ReportData] | StreamingResponse:
    """Build a report and return it as JSON or stream it as xlsx/pdf."""
    report = build_report(db, body.type, body.start_date, body.end_date)
    _log_export(db, current_user.id, body.type.value, body.format.value, client_ip(request))

    if body.format == ReportFormat.JSON:
        return Envelope[ReportData](message="Report generated", data=report)
    return _export_response(
        render_report(report, body.format),
        MEDIA_TYPES[body.format],
        report_file_name(report, body.format),
    )


@router.post(
    "/async", response_model=AsyncReportOut, status_code=status.HTTP_202_ACCEPTED
)
def generate_report_async(
    body: ReportRequest,
    current_user: User = Depends(require_permission("report:export")),
) -> AsyncReportOut:
    """Queue rendering; the requester gets a REPORT_READY notification when done."""
    fmt = ReportFormat.XLSX if body.format == ReportFormat.JSON else body.format
    result = generate_report_file.delay(
        body.type.value,
        fmt.value,
        body.start_date.isoformat() if body.start_date else None,
        body.end_date.isoformat() if body.end_date else None,
        str(current_user.id),
    )
    return AsyncReportOut(task_id=str(result.id))


@router.get("/download/{file_name}")
def download_report(
    file_name: str,
    _current_user: User = Depends(require_permission("report:export")),
) -> Response:
    content, media_type = read_stored_report(file_name)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": content_disposition("attachment", file_name)},
    )
