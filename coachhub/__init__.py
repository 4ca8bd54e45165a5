"""
CoachHub Scheduling - recurring coaching-session generation service.

This package contains the complete application:
- core: Framework-agnostic scheduling logic
- infrastructure: Persistence adapters (Snowflake, in-memory)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
