"""Pydantic schemas for API requests, responses and broker messages."""
