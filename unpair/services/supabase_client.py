"""Supabase client wrapper with async context manager support."""

from datetime import datetime, timezone
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from ulid import ULID

from unpair.utils.config import AppConfig
from unpair.utils.errors import SupabaseError
from unpair.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global service-role client (singleton pattern)
_client: Optional[Client] = None


def _client_options() -> ClientOptions:
    return ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
    )


def get_supabase_client() -> Client:
    """Get or create the service-role Supabase client singleton."""
    global _client

    if _client is None:
        url = AppConfig.SUPABASE_URL
        key = AppConfig.SUPABASE_SERVICE_ROLE_KEY

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        _client = create_client(url, key, _client_options())
        logger.info("Supabase client initialized", url=url)

    return _client


def create_auth_client() -> Client:
    """Create a fresh anon-key client for end-user auth flows.

    Signing a user in attaches their session to the client, so these flows
    never run on the shared service-role client.
    """
    url = AppConfig.SUPABASE_URL
    key = AppConfig.SUPABASE_ANON_KEY
    if not url or not key:
        raise SupabaseError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
    return create_client(url, key, _client_options())


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        return False


def generate_id() -> str:
    """Generate a text-based record ID (ULID format)."""
    return str(ULID())


def utc_now() -> str:
    """Timestamp written to created_at columns."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def is_duplicate_key_error(error: Exception) -> bool:
    """True when Postgres rejected an insert on a unique constraint."""
    text = str(error).lower()
    return "duplicate key" in text or "23505" in text


def _first(result) -> Optional[dict]:
    return result.data[0] if result.data and len(result.data) > 0 else None


# Generic row helpers used by the workflow modules
async def insert_row(table: str, row: dict) -> dict:
    """Insert a row and return it as stored."""
    async with SupabaseClient() as client:
        try:
            result = client.table(table).insert(row).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to insert into {table}: {e}") from e
        created = _first(result)
        if created is None:
            raise SupabaseError(f"Failed to insert into {table}: no data returned")
        return created


async def get_row(table: str, column: str, value: str) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table(table).select("*").eq(column, value).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to read {table}: {e}") from e
        return _first(result)


async def select_rows(
    table: str,
    filters: Optional[dict] = None,
    order_by: Optional[str] = None,
    desc: bool = False,
    limit: Optional[int] = None,
) -> list[dict]:
    """Select rows matching all equality filters."""
    async with SupabaseClient() as client:
        try:
            query = client.table(table).select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit:
                query = query.limit(limit)
            result = query.execute()
        except Exception as e:
            raise SupabaseError(f"Failed to query {table}: {e}") from e
        return result.data if result.data else []


async def update_row(table: str, column: str, value: str, updates: dict) -> dict:
    async with SupabaseClient() as client:
        try:
            result = client.table(table).update(updates).eq(column, value).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update {table}: {e}") from e
        updated = _first(result)
        if updated is None:
            raise SupabaseError(f"Failed to update {table}: {value}")
        return updated


async def upsert_row(table: str, row: dict) -> dict:
    async with SupabaseClient() as client:
        try:
            result = client.table(table).upsert(row).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to upsert into {table}: {e}") from e
        stored = _first(result)
        if stored is None:
            raise SupabaseError(f"Failed to upsert into {table}: no data returned")
        return stored


async def delete_row(table: str, column: str, value: str) -> None:
    async with SupabaseClient() as client:
        try:
            client.table(table).delete().eq(column, value).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete from {table}: {e}") from e


# Conversations table operations
async def get_conversations_for_user(user_id: str) -> list[dict]:
    """Conversations whose participants array contains the user."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(AppConfig.CONVERSATIONS_TABLE)
                .select("*")
                .contains("participants", [user_id])
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get conversations: {e}") from e
        return result.data if result.data else []


# Submission keys (idempotent submissions)
async def claim_submission_key(idempotency_key: str, record_type: str, record_id: str) -> dict:
    """Reserve a submission key for a record id, before the record is written.

    Returns the stored key row. When the key was already claimed, that earlier
    row comes back unchanged, so its record_id differs from the one passed in.
    """
    row = {
        "idempotency_key": idempotency_key,
        "record_type": record_type,
        "record_id": record_id,
        "created_at": utc_now(),
    }
    async with SupabaseClient() as client:
        try:
            client.table(AppConfig.SUBMISSION_KEYS_TABLE).insert(row).execute()
            return row
        except Exception as e:
            if not is_duplicate_key_error(e):
                raise SupabaseError(f"Failed to claim submission key: {e}") from e

    existing = await get_row(AppConfig.SUBMISSION_KEYS_TABLE, "idempotency_key", idempotency_key)
    if existing is None:
        raise SupabaseError("Submission key vanished after a duplicate key error")
    return existing
