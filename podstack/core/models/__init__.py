"""Pydantic models for podstack.yml."""
