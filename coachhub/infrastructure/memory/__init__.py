"""
In-memory repositories.

Back the API in mock mode (shared across requests, like a local database)
and give tests real repository behavior without Snowflake.
"""

from .store import (
    InMemoryGenerationRecordRepository,
    InMemorySessionRepository,
    InMemoryStore,
    InMemoryTemplateRepository,
)

__all__ = [
    "InMemoryGenerationRecordRepository",
    "InMemorySessionRepository",
    "InMemoryStore",
    "InMemoryTemplateRepository",
]
