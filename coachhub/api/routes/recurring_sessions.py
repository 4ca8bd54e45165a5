"""
Recurring session endpoints.

Preview is read-only: it shows the dates a template's recurrence rule
would produce. Generate materializes them for a client, skipping dates the
client is already booked for. Bulk generate does the same for several
clients under one batch id.

A failed occurrence is reported in the response body; it doesn't fail
the request.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Header, status

from ...core.scheduling import PreviewRequest, SchedulingError
from ..dependencies import AuthenticatedUser, SchedulingServiceDep, SettingsDep
from ..errors import invalid_request, to_http_exception
from ..schemas import (
    BulkGenerateRequestModel,
    BulkGenerateResponse,
    CheckConflictsRequestModel,
    CheckConflictsResponse,
    ClientOutcomeModel,
    GenerateRequestModel,
    GenerateResponse,
    PreviewRequestModel,
    PreviewResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/preview",
    response_model=PreviewResponse,
    status_code=status.HTTP_200_OK,
    summary="Preview recurrence dates",
    description="Compute the dates a template's recurrence rule produces. Writes nothing.",
)
async def preview_recurrence(
    request: PreviewRequestModel,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
) -> PreviewResponse:
    try:
        result = service.preview(PreviewRequest(
            template_id=request.template_id,
            start_date=request.start_date,
            end_date=request.end_date,
            max_occurrences=request.max_occurrences,
        ))
    except SchedulingError as e:
        raise to_http_exception(e)

    return PreviewResponse(
        dates=list(result.dates),
        count=len(result.dates),
        truncated=result.truncated,
        description=result.description,
    )


@router.post(
    "/check-conflicts",
    response_model=CheckConflictsResponse,
    status_code=status.HTTP_200_OK,
    summary="Check dates against a client's schedule",
)
async def check_conflicts(
    request: CheckConflictsRequestModel,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
) -> CheckConflictsResponse:
    try:
        result = service.check_conflicts(
            request.client_id,
            list(request.dates),
            request.duration_minutes,
        )
    except SchedulingError as e:
        raise to_http_exception(e)

    return CheckConflictsResponse.from_domain(result)


@router.post(
    "/generate",
    response_model=GenerateResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate recurring sessions",
    description="Materialize a template's recurrence series for one client",
    responses={
        400: {"description": "Template is inactive, not recurring, or overrides are invalid"},
        404: {"description": "Template not found"},
        503: {"description": "Schedule store unavailable during conflict check"},
        504: {"description": "Generation exceeded its time budget"},
    },
)
async def generate_recurring_sessions(
    request: GenerateRequestModel,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
    settings: SettingsDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> GenerateResponse:
    logger.info(
        "Generating recurring sessions",
        extra={
            "template_id": str(request.template_id),
            "client_id": request.client_id,
            "generated_by": x_user_id,
        }
    )

    try:
        domain_request = request.to_domain(x_user_id)
    except ValueError as e:
        raise invalid_request(e)

    try:
        result = await service.generate_with_timeout(
            domain_request,
            timeout_seconds=settings.generation_timeout_seconds,
        )
    except SchedulingError as e:
        raise to_http_exception(e)

    return GenerateResponse.from_domain(result)


@router.post(
    "/bulk-generate",
    response_model=BulkGenerateResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate recurring sessions for several clients",
    description="Same template and window for every client, tracked under one batch id",
)
async def bulk_generate_recurring_sessions(
    request: BulkGenerateRequestModel,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
    settings: SettingsDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> BulkGenerateResponse:
    try:
        domain_request = request.to_domain(x_user_id)
    except ValueError as e:
        raise invalid_request(e)

    try:
        result = await service.generate_bulk(
            domain_request,
            max_concurrency=settings.bulk_max_concurrency,
            # one generation budget per client
            timeout_seconds=settings.generation_timeout_seconds * max(1, len(request.client_ids)),
        )
    except SchedulingError as e:
        raise to_http_exception(e)

    if result.failed_clients:
        logger.warning(
            "Bulk generation finished with failed clients",
            extra={"batch_id": result.batch_id, "failed_clients": result.failed_clients}
        )

    return BulkGenerateResponse(
        batch_id=result.batch_id,
        total_generated=result.total_generated,
        failed_clients=result.failed_clients,
        results=[ClientOutcomeModel.from_domain(outcome) for outcome in result.outcomes],
    )
