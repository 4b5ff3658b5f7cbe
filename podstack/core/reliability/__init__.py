"""Polling and retry primitives with injectable clocks."""
