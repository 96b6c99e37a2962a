"""Pydantic schemas for the REST and realtime surfaces."""
