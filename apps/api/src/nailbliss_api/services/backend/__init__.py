"""Hosted backend gateway."""

from .supabase import (
    BackendAuthorizationError,
    BackendError,
    ProfileNotFoundError,
    SupabaseBackend,
)

__all__ = ["BackendAuthorizationError", "BackendError", "ProfileNotFoundError", "SupabaseBackend"]
