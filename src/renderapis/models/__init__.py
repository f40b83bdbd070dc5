"""Pydantic models for projects and service health."""
