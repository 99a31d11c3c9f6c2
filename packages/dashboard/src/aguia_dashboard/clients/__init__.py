"""Clients for the hosted backend."""

from aguia_dashboard.clients.query import Filter
from aguia_dashboard.clients.supabase import (
    AuthenticationError,
    RateLimitError,
    SupabaseClient,
    SupabaseError,
    UniqueViolationError,
)

__all__ = [
    "Filter",
    "SupabaseClient",
    "SupabaseError",
    "AuthenticationError",
    "RateLimitError",
    "UniqueViolationError",
]
