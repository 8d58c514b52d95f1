"""Supabase data access."""

from .client import get_client, get_service_client

__all__ = ["get_client", "get_service_client"]
