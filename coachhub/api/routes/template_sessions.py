"""
Generation record endpoints.

Read-only views over the records that link generated sessions back to
their templates: by template, by recurrence series, by batch.
"""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from ...core.scheduling import GenerationStatus, RecordFilters, SchedulingError
from ..dependencies import AuthenticatedUser, SchedulingServiceDep
from ..errors import to_http_exception
from ..schemas import RecordModel

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=list[RecordModel],
    status_code=status.HTTP_200_OK,
    summary="List generation records for a template",
    description="Newest first. Filters combine with AND.",
)
async def list_template_sessions(
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
    template_id: Annotated[UUID, Query(alias="templateId")],
    generation_status: Annotated[Optional[GenerationStatus], Query(alias="status")] = None,
    client_id: Annotated[Optional[str], Query(alias="clientId")] = None,
    coach_id: Annotated[Optional[str], Query(alias="coachId")] = None,
    is_from_recurrence: Annotated[Optional[bool], Query(alias="isFromRecurrence")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[RecordModel]:
    records = service.records_for_template(
        template_id,
        RecordFilters(
            status=generation_status,
            coach_id=coach_id,
            client_id=client_id,
            is_from_recurrence=is_from_recurrence,
            limit=limit,
        ),
    )
    return [RecordModel.from_domain(record) for record in records]


@router.get(
    "/series/{parent_recurrence_id}",
    response_model=list[RecordModel],
    status_code=status.HTTP_200_OK,
    summary="Get a recurrence series",
    description="All records of one recurrence series, ordered by sequence number",
)
async def get_recurrence_series(
    parent_recurrence_id: UUID,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
) -> list[RecordModel]:
    records = service.recurrence_series(parent_recurrence_id)
    return [RecordModel.from_domain(record) for record in records]


@router.get(
    "/batch/{batch_id}",
    response_model=list[RecordModel],
    status_code=status.HTTP_200_OK,
    summary="Get a generation batch",
)
async def get_batch(
    batch_id: str,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
) -> list[RecordModel]:
    records = service.batch_records(batch_id)
    return [RecordModel.from_domain(record) for record in records]


@router.get(
    "/{record_id}/siblings",
    response_model=list[RecordModel],
    status_code=status.HTTP_200_OK,
    summary="Get the other records of a record's series",
    responses={404: {"description": "Record not found"}},
)
async def get_recurrence_siblings(
    record_id: UUID,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
) -> list[RecordModel]:
    try:
        records = service.recurrence_siblings(record_id)
    except SchedulingError as e:
        raise to_http_exception(e)

    return [RecordModel.from_domain(record) for record in records]
