"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .generation_records import SnowflakeGenerationRecordRepository
from .sessions import SnowflakeSessionRepository
from .templates import SnowflakeTemplateRepository

__all__ = [
    "SnowflakeGenerationRecordRepository",
    "SnowflakeSessionRepository",
    "SnowflakeTemplateRepository",
]
