"""Snowflake persistence for templates, sessions and generation records."""
