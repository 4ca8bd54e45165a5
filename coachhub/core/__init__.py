"""
Core business logic for coaching-session scheduling.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. Repositories are described as Protocols
and injected, so the scheduling logic can be tested in isolation.
"""
