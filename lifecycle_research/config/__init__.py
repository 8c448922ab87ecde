"""Configuration module for the lifecycle research pipeline."""

from lifecycle_research.config.settings import MAX_QUERIES_CEILING, Settings, get_settings

__all__ = ["Settings", "get_settings", "MAX_QUERIES_CEILING"]
