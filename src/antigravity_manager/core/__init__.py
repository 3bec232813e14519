"""Core utilities shared across services."""
