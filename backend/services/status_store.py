"""Durable status records for per-document indexing."""
import logging
import threading
from dataclasses import replace
from typing import Dict
from supabase import create_client, Client

from models.document_index import IndexState
from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


class InMemoryIndexStatusStore:
    """Process-local status store."""

    def __init__(self):
        self._states: Dict[str, IndexState] = {}
        self._lock = threading.Lock()

    def get(self, document_id: str) -> IndexState:
        """Return a copy of the stored state, or a fresh PENDING state."""
        with self._lock:
            state = self._states.get(document_id)
            return replace(state) if state else IndexState(document_id=document_id)

    def save(self, state: IndexState) -> None:
        with self._lock:
            self._states[state.document_id] = replace(state)


class SupabaseIndexStatusStore:
    """Status store backed by the ``document_indexes`` table."""

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = "document_indexes"
    ):
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.client: Client = create_client(supabase_url, supabase_key)
        self.table_name = table_name
        logger.info(f"Initialized SupabaseIndexStatusStore with table: {table_name}")

    def get(self, document_id: str) -> IndexState:
        result = (
            self.client.table(self.table_name)
            .select("*")
            .eq("document_id", document_id)
            .limit(1)
            .execute()
        )
        if result.data:
            return IndexState.from_dict(result.data[0])
        return IndexState(document_id=document_id)

    def save(self, state: IndexState) -> None:
        try:
            self.client.table(self.table_name).upsert(
                state.to_dict(), on_conflict="document_id"
            ).execute()
        except Exception as e:
            logger.error(f"Error saving index status for {state.document_id}: {e}")
            raise
