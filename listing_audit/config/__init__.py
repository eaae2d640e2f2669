"""Configuration module for the listing audit pipeline."""

from listing_audit.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
