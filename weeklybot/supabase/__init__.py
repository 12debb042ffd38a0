"""Supabase integration: REST client and record store backend."""

from weeklybot.supabase.client import SupabaseAPIError, SupabaseClient
from weeklybot.supabase.storage import SupabaseRecordStore

__all__ = [
    "SupabaseClient",
    "SupabaseAPIError",
    "SupabaseRecordStore",
]
