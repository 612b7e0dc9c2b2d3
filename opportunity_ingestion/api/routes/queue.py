import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from opportunity_ingestion.core.config import Settings, get_settings
from opportunity_ingestion.schemas.preview import DraftDefaults, PromotionForm
from opportunity_ingestion.schemas.queue import (
    BulkActionRequest,
    BulkActionResult,
    PreviewOut,
    PromotionOutcome,
    QueueOut,
)
from opportunity_ingestion.schemas.records import (
    IngestionRecord,
    QueueSortBy,
    SortDir,
    StatusFilter,
    StatusPatchRequest,
)
from opportunity_ingestion.services.ingestion_client import (
    IngestionClient,
    IngestionClientError,
    IngestionConflictError,
    IngestionNotFoundError,
    IngestionUnavailableError,
    get_ingestion_client,
)
from opportunity_ingestion.services.phone import format_for_display
from opportunity_ingestion.services.promotion import (
    InvalidTransitionError,
    MissingSourceUrlError,
    PromotionValidationError,
    PromotionWorkflow,
)
from opportunity_ingestion.services.queue import (
    EmptySelectionError,
    IngestionQueueController,
    UnknownRecordError,
    build_row,
)

router = APIRouter()


def _controller(
    client: IngestionClient,
    settings: Settings,
    records: list[IngestionRecord],
) -> IngestionQueueController:
    return IngestionQueueController(
        PromotionWorkflow(client),
        records,
        retain_failed_selection=settings.retain_failed_selection,
    )


async def _load_queue(client: IngestionClient, settings: Settings) -> IngestionQueueController:
    try:
        records = await client.list_records(limit=settings.queue_fetch_limit)
    except IngestionClientError as exc:
        _raise_http_error(exc)
    return _controller(client, settings, records)


async def _load_selected(
    client: IngestionClient,
    settings: Settings,
    record_ids: list[str],
) -> IngestionQueueController:
    """Fetch only the given records; ids unknown upstream are left out of the controller."""
    results = await asyncio.gather(*(client.get_record(record_id) for record_id in record_ids), return_exceptions=True)
    records: list[IngestionRecord] = []
    for result in results:
        if isinstance(result, IngestionRecord):
            records.append(result)
        elif isinstance(result, IngestionNotFoundError):
            continue
        elif isinstance(result, IngestionClientError):
            _raise_http_error(result)
        else:
            raise result
    return _controller(client, settings, records)


def _raise_http_error(exc: Exception) -> None:
    if isinstance(exc, IngestionUnavailableError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if isinstance(exc, (IngestionNotFoundError, UnknownRecordError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (IngestionConflictError, InvalidTransitionError, MissingSourceUrlError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, PromotionValidationError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "field_errors": exc.field_errors},
        ) from exc
    if isinstance(exc, EmptySelectionError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    raise exc


@router.get("", response_model=QueueOut)
async def list_queue(
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
    query: str = Query(default=""),
    status_filter: StatusFilter = Query(default="all", alias="status"),
    sort_by: QueueSortBy = Query(default="created_at"),
    sort_order: SortDir = Query(default="desc"),
    limit: int | None = Query(default=None, ge=1, le=500),
) -> QueueOut:
    controller = await _load_queue(client, settings)
    controller.query = query
    controller.status = status_filter
    controller.sort_by = sort_by
    controller.sort_order = sort_order

    visible = controller.visible()
    if limit is not None:
        visible = visible[:limit]
    return QueueOut(rows=[build_row(record) for record in visible], counts=controller.status_counts())


@router.get("/{record_id}/preview", response_model=PreviewOut)
async def get_preview(
    record_id: str,
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
) -> PreviewOut:
    controller = await _load_selected(client, settings, [record_id])
    try:
        preview = controller.preview(record_id)
    except UnknownRecordError as exc:
        _raise_http_error(exc)

    return PreviewOut(
        record_id=record_id,
        preview=preview,
        display_phones=[format_for_display(phone) for phone in preview.contacts.phones],
    )


@router.get("/{record_id}/draft", response_model=DraftDefaults)
async def get_draft(
    record_id: str,
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
) -> DraftDefaults:
    controller = await _load_selected(client, settings, [record_id])
    try:
        return controller.draft_defaults(record_id)
    except UnknownRecordError as exc:
        _raise_http_error(exc)


@router.patch("/{record_id}", response_model=IngestionRecord)
async def patch_record_status(
    record_id: str,
    payload: StatusPatchRequest,
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
) -> IngestionRecord:
    controller = await _load_selected(client, settings, [record_id])
    try:
        return await controller.change_status(record_id, payload.status)
    except (
        UnknownRecordError,
        InvalidTransitionError,
        IngestionUnavailableError,
        IngestionNotFoundError,
        IngestionConflictError,
    ) as exc:
        _raise_http_error(exc)


@router.post("/bulk", response_model=BulkActionResult)
async def run_bulk_action(
    payload: BulkActionRequest,
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
) -> BulkActionResult:
    record_ids = list(dict.fromkeys(payload.ids))
    controller = await _load_selected(client, settings, record_ids)
    for record_id in record_ids:
        controller.toggle_select(record_id)

    try:
        if payload.action == "approve":
            return await controller.bulk_approve()
        if payload.action == "reject":
            return await controller.bulk_reject()
        return await controller.bulk_promote(payload.account_id)
    except EmptySelectionError as exc:
        _raise_http_error(exc)


@router.post("/{record_id}/promote", response_model=PromotionOutcome)
async def promote_record(
    record_id: str,
    payload: PromotionForm,
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
):
    controller = await _load_selected(client, settings, [record_id])
    try:
        outcome = await controller.promote(record_id, payload)
    except (UnknownRecordError, InvalidTransitionError, PromotionValidationError) as exc:
        _raise_http_error(exc)

    if not outcome.ok:
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=outcome.model_dump(mode="json"))
    return outcome


@router.post("/{record_id}/refresh", response_model=IngestionRecord)
async def refresh_record(
    record_id: str,
    client=Depends(get_ingestion_client),
    settings: Settings = Depends(get_settings),
) -> IngestionRecord:
    controller = await _load_selected(client, settings, [record_id])
    try:
        return await controller.refresh(record_id)
    except (
        UnknownRecordError,
        MissingSourceUrlError,
        IngestionUnavailableError,
        IngestionNotFoundError,
        IngestionConflictError,
    ) as exc:
        _raise_http_error(exc)
