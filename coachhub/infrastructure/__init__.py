"""
Infrastructure layer - persistence adapters.

Each subpackage implements the scheduling repositories for one backend:
- snowflake: Database persistence
- memory: In-memory store for mock mode and tests

codecs holds the dict/JSON shapes both backends share.
"""
