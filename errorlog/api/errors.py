from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from errorlog.api.deps import get_error_service, require_admin
from errorlog.core.errors import APIError
from errorlog.core.settings import Settings, get_settings
from errorlog.services import report
from errorlog.services.capture import ErrorRecord
from errorlog.services.error_service import ErrorService


router = APIRouter(
    prefix="/v1/errors",
    tags=["errors"],
    dependencies=[Depends(require_admin)],
)


def _isoformat_z(value: dt.datetime) -> str:
    s = value.isoformat()
    if s.endswith("+00:00"):
        s = s.removesuffix("+00:00") + "Z"
    return s


class ErrorSummaryRow(BaseModel):
    app_error_id: int
    gallery_id: int
    system_wide: bool
    timestamp: str
    exception_type: str
    message: str
    url: str


class ErrorFieldRow(BaseModel):
    name: str
    label: str
    value: str


class ErrorDetailResponse(ErrorSummaryRow):
    fields: list[ErrorFieldRow]


class ClearLogResponse(BaseModel):
    gallery_id: int
    deleted: int


class TrimRequest(BaseModel):
    max_items: int | None = Field(default=None, ge=0)


class TrimResponse(BaseModel):
    max_items: int
    deleted: int


def _summary_row(record: ErrorRecord) -> ErrorSummaryRow:
    return ErrorSummaryRow(
        app_error_id=int(record.id or 0),
        gallery_id=record.gallery_id,
        system_wide=record.is_system_wide,
        timestamp=_isoformat_z(record.timestamp),
        exception_type=record.primary.exception_type,
        message=record.primary.message,
        url=record.display_url,
    )


def _not_found(app_error_id: int) -> APIError:
    return APIError(
        code="ERROR_NOT_FOUND",
        message="Error record not found",
        status_code=404,
        details={"app_error_id": app_error_id},
    )


@router.get("", response_model=list[ErrorSummaryRow])
async def list_errors(
    gallery_id: int | None = Query(default=None),
    include_system: bool = Query(default=True),
    service: ErrorService = Depends(get_error_service),
) -> list[ErrorSummaryRow]:
    if gallery_id is None:
        errors = await service.store.get_all()
    else:
        errors = await service.store.find_all_for_gallery(
            gallery_id, include_system_wide=include_system
        )
    return [_summary_row(r) for r in errors]


@router.get("/{app_error_id}", response_model=ErrorDetailResponse)
async def get_error(
    app_error_id: int,
    service: ErrorService = Depends(get_error_service),
) -> ErrorDetailResponse:
    record = await service.store.find_by_id(app_error_id)
    if record is None:
        raise _not_found(app_error_id)

    fields = [
        ErrorFieldRow(
            name=item.name,
            label=report.field_label(item),
            value=report.field_text(record, item),
        )
        for item in report.ErrorItem
    ]
    return ErrorDetailResponse(**_summary_row(record).model_dump(), fields=fields)


@router.get("/{app_error_id}/report", response_class=HTMLResponse)
async def get_error_report(
    app_error_id: int,
    service: ErrorService = Depends(get_error_service),
) -> HTMLResponse:
    record = await service.store.find_by_id(app_error_id)
    if record is None:
        raise _not_found(app_error_id)
    return HTMLResponse(content=report.to_html_page(record))


@router.delete("/{app_error_id}", status_code=204)
async def delete_error(
    app_error_id: int,
    service: ErrorService = Depends(get_error_service),
) -> Response:
    await service.store.delete(app_error_id)
    return Response(status_code=204)


@router.delete("", response_model=ClearLogResponse)
async def clear_log(
    gallery_id: int = Query(...),
    service: ErrorService = Depends(get_error_service),
) -> ClearLogResponse:
    deleted = await service.store.clear_log(gallery_id)
    return ClearLogResponse(gallery_id=gallery_id, deleted=deleted)


@router.post("/trim", response_model=TrimResponse)
async def trim_errors(
    payload: TrimRequest | None = None,
    service: ErrorService = Depends(get_error_service),
    settings: Settings = Depends(get_settings),
) -> TrimResponse:
    max_items = settings.max_number_error_items
    if payload is not None and payload.max_items is not None:
        max_items = payload.max_items
    deleted = await service.retention.trim(max_items)
    return TrimResponse(max_items=max_items, deleted=deleted)
