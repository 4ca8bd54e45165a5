"""
FastAPI dependency injection.

Dependencies provide the scheduling service and configuration to route
handlers. Routes never build their own repositories, so tests can swap
any of these with `app.dependency_overrides`.

In mock mode every request shares one in-memory store, so data written by
one request is visible to the next.
"""

import logging
from typing import Annotated, Generator, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.scheduling import RecurrenceCalculator, RecurringSessionService
from ..infrastructure.codecs import load_templates_file
from ..infrastructure.memory import (
    InMemoryGenerationRecordRepository,
    InMemorySessionRepository,
    InMemoryStore,
    InMemoryTemplateRepository,
)
from ..infrastructure.snowflake.client import SnowflakeConfig, get_snowflake_connection
from ..infrastructure.snowflake.repositories import (
    SnowflakeGenerationRecordRepository,
    SnowflakeSessionRepository,
    SnowflakeTemplateRepository,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Global mock store (shared across requests in mock mode)
_mock_store: Optional[InMemoryStore] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


def get_mock_store(settings: Settings) -> InMemoryStore:
    """The shared in-memory store, created (and seeded) on first use."""
    global _mock_store

    if _mock_store is None:
        templates = load_templates_file(settings.template_seed_path) if settings.template_seed_path else []
        _mock_store = InMemoryStore(templates)
        logger.info(
            "Created shared in-memory store",
            extra={"seed_path": settings.template_seed_path, "templates": len(templates)}
        )
    return _mock_store


def reset_mock_store() -> None:
    """Drop the shared store (tests)."""
    global _mock_store
    _mock_store = None


def build_service(
    settings: Settings,
    templates,
    sessions,
    records,
) -> RecurringSessionService:
    return RecurringSessionService(
        templates=templates,
        sessions=sessions,
        records=records,
        calculator=RecurrenceCalculator(max_scan_steps=settings.recurrence_max_scan_steps),
        tracking_write_attempts=settings.tracking_write_attempts,
    )


def get_scheduling_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[RecurringSessionService, None, None]:
    """
    Provide the RecurringSessionService for one request.

    A generator so the Snowflake connection is closed after the response,
    even when the handler raises.
    """
    if settings.snowflake_mock_mode:
        store = get_mock_store(settings)
        logger.debug("Using shared in-memory store")
        yield build_service(
            settings,
            InMemoryTemplateRepository(store),
            InMemorySessionRepository(store),
            InMemoryGenerationRecordRepository(store),
        )
    else:
        with get_snowflake_connection(snowflake_config(settings)) as conn:
            logger.debug("Created scheduling service with Snowflake connection")
            yield build_service(
                settings,
                SnowflakeTemplateRepository(conn),
                SnowflakeSessionRepository(conn),
                SnowflakeGenerationRecordRepository(conn),
            )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
SchedulingServiceDep = Annotated[RecurringSessionService, Depends(get_scheduling_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
