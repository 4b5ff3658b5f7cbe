"""Configuration discovery and loading."""
