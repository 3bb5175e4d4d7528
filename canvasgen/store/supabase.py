"""Supabase client utility for key-value persistence.

Provides a singleton Supabase client for backend storage.
Uses service key for backend operations (bypasses RLS).
"""
from typing import Optional

import structlog
from supabase import create_client, Client

from canvasgen.config import get_settings

logger = structlog.get_logger()

# Singleton client instance
_supabase_client: Optional[Client] = None


class SupabaseClient:
    """Wrapper for Supabase client with the calls the KV store needs."""

    def __init__(self, client: Client):
        self._client = client

    @property
    def client(self) -> Client:
        """Get the underlying Supabase client."""
        return self._client

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Select rows from a table.

        Args:
            table: Table name
            columns: Columns to select (default "*")
            filters: Filter conditions as {column: value}
            limit: Maximum number of rows

        Returns:
            List of matching rows
        """
        try:
            query = self._client.table(table).select(columns)

            if filters:
                for col, val in filters.items():
                    query = query.eq(col, val)

            if limit:
                query = query.limit(limit)

            result = query.execute()
            return result.data if result.data else []
        except Exception as e:
            logger.error("supabase_select_error", table=table, error=str(e))
            raise

    def upsert(self, table: str, data: dict, on_conflict: str = "key") -> dict:
        """Insert a row, or update it when the conflict column already exists.

        Args:
            table: Table name
            data: Row data
            on_conflict: Unique column used to detect an existing row

        Returns:
            Stored row data
        """
        try:
            result = self._client.table(table).upsert(data, on_conflict=on_conflict).execute()
            return result.data[0] if result.data else {}
        except Exception as e:
            logger.error("supabase_upsert_error", table=table, error=str(e))
            raise

    def delete(self, table: str, filters: dict) -> list[dict]:
        """Delete rows from a table.

        Args:
            table: Table name
            filters: Filter conditions to identify rows

        Returns:
            List of deleted rows
        """
        try:
            query = self._client.table(table).delete()
            for col, val in filters.items():
                query = query.eq(col, val)
            result = query.execute()
            return result.data if result.data else []
        except Exception as e:
            logger.error("supabase_delete_error", table=table, error=str(e))
            raise


def get_supabase_client() -> Optional[SupabaseClient]:
    """Get the singleton Supabase client instance.

    Returns:
        SupabaseClient instance, or None if not configured
    """
    global _supabase_client

    if _supabase_client is None:
        settings = get_settings()

        if not settings.supabase_configured():
            logger.warning(
                "supabase_not_configured",
                has_url=bool(settings.supabase_url),
                has_key=bool(settings.supabase_service_key),
            )
            return None

        try:
            _supabase_client = create_client(
                settings.supabase_url,
                settings.supabase_service_key,
            )
            logger.info("supabase_client_initialized")
        except Exception as e:
            logger.error("supabase_client_init_error", error=str(e))
            return None

    return SupabaseClient(_supabase_client)


def reset_supabase_client():
    """Reset the Supabase client (for testing)."""
    global _supabase_client
    _supabase_client = None
