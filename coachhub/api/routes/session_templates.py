"""
Per-template endpoints: one-off session generation and usage statistics.
"""

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Header, status

from ...core.scheduling import SchedulingError
from ..dependencies import AuthenticatedUser, SchedulingServiceDep
from ..errors import invalid_request, to_http_exception
from ..schemas import (
    GenerateResponse,
    SingleSessionRequestModel,
    UsageStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/{template_id}/generate-session",
    response_model=GenerateResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate one session from a template",
    description="Creates a single pending session; works for recurring and one-off templates",
    responses={
        400: {"description": "Template is inactive or overrides are invalid"},
        404: {"description": "Template not found"},
        503: {"description": "Schedule store unavailable during conflict check"},
    },
)
async def generate_session_from_template(
    template_id: UUID,
    request: SingleSessionRequestModel,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> GenerateResponse:
    try:
        domain_request = request.to_domain(template_id, x_user_id)
    except ValueError as e:
        raise invalid_request(e)

    try:
        result = service.generate_single(domain_request)
    except SchedulingError as e:
        raise to_http_exception(e)

    logger.info(
        "Single session generation finished",
        extra={
            "template_id": str(template_id),
            "client_id": request.client_id,
            "generated": result.total_generated,
            "conflicts": len(result.conflicts),
        }
    )

    return GenerateResponse.from_domain(result)


@router.get(
    "/{template_id}/usage-stats",
    response_model=UsageStatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Template usage statistics",
    responses={404: {"description": "Template not found"}},
)
async def get_usage_stats(
    template_id: UUID,
    api_key: AuthenticatedUser,
    service: SchedulingServiceDep,
) -> UsageStatsResponse:
    try:
        stats = service.usage_stats(template_id)
    except SchedulingError as e:
        raise to_http_exception(e)

    return UsageStatsResponse.from_domain(stats)
