"""HTTP API for the listing audit pipeline."""

from listing_audit.api.app import create_app
from listing_audit.api.container import ServiceContainer

__all__ = ["create_app", "ServiceContainer"]
