from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import Response

from .cache import TTLCache
from .config import settings
from .exceptions import AttendanceReportError, InvalidPeriodError, NothingToExportError, ReportRenderError
from .reports import (
    ReportExport,
    export_combined_report,
    export_single_report,
    fetch_monthly_attendance,
    month_bounds,
)
from .sources import AttendanceSource, CachedAttendanceSource, JsonFileAttendanceSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attendance/reports", tags=["attendance-reports"])


def get_attendance_source(request: Request) -> AttendanceSource:
    source = getattr(request.app.state, "attendance_source", None)
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Attendance source is not configured",
        )
    return source


def _http_error(exc: AttendanceReportError) -> HTTPException:
    if isinstance(exc, InvalidPeriodError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NothingToExportError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nothing to export")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _pdf_response(export: ReportExport) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/monthly", response_model=dict)
def monthly_attendance(
    month: str = Query(..., description="Report month as YYYY-MM"),
    user_id: Optional[list[str]] = Query(default=None),
    source: AttendanceSource = Depends(get_attendance_source),
) -> dict[str, Any]:
    try:
        _, _, normalized_month = month_bounds(month)
        datas = fetch_monthly_attendance(source, month, user_ids=user_id)
    except InvalidPeriodError as exc:
        raise _http_error(exc) from exc

    return {
        "month": normalized_month,
        "users": [data.model_dump(by_alias=True, mode="json") for data in datas],
    }


@router.get("/monthly/pdf/combined")
def combined_monthly_pdf(
    month: str = Query(..., description="Report month as YYYY-MM"),
    user_id: Optional[list[str]] = Query(default=None),
    source: AttendanceSource = Depends(get_attendance_source),
) -> Response:
    try:
        export = export_combined_report(source, month, user_ids=user_id)
    except (InvalidPeriodError, NothingToExportError, ReportRenderError) as exc:
        raise _http_error(exc) from exc
    return _pdf_response(export)


@router.get("/monthly/pdf/{user_id}")
def single_monthly_pdf(
    user_id: str,
    month: str = Query(..., description="Report month as YYYY-MM"),
    source: AttendanceSource = Depends(get_attendance_source),
) -> Response:
    try:
        export = export_single_report(source, user_id, month)
    except (InvalidPeriodError, NothingToExportError, ReportRenderError) as exc:
        raise _http_error(exc) from exc
    return _pdf_response(export)


def create_app(source: AttendanceSource | None = None) -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if source is None and settings.data_file is not None:
        logger.info("Attendance source: %s (cache %ss)", settings.data_file, settings.cache_ttl_seconds)
        source = CachedAttendanceSource(
            JsonFileAttendanceSource(settings.data_file),
            TTLCache(settings.cache_ttl_seconds),
        )

    app = FastAPI(title="Campus Attendance Reports")
    app.state.attendance_source = source
    app.include_router(router)
    return app
