"""Unit tests for index status stores."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import MagicMock, patch
from models.document_index import IndexState, IndexStatus
from services.status_store import InMemoryIndexStatusStore, SupabaseIndexStatusStore


class TestInMemoryIndexStatusStore:
    """Test suite for InMemoryIndexStatusStore."""

    def test_unknown_document_is_pending(self):
        store = InMemoryIndexStatusStore()
        state = store.get("doc.pdf")
        assert state.document_id == "doc.pdf"
        assert state.status is IndexStatus.PENDING

    def test_save_and_get(self):
        store = InMemoryIndexStatusStore()
        state = IndexState(document_id="doc.pdf")
        state.start()
        store.save(state)

        assert store.get("doc.pdf").status is IndexStatus.INDEXING

    def test_returns_copies(self):
        store = InMemoryIndexStatusStore()
        state = IndexState(document_id="doc.pdf")
        store.save(state)

        state.start()
        fetched = store.get("doc.pdf")
        fetched.progress = 99

        assert store.get("doc.pdf").status is IndexStatus.PENDING
        assert store.get("doc.pdf").progress == 0


class TestSupabaseIndexStatusStore:
    """Test suite for SupabaseIndexStatusStore."""

    def test_initialization_without_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            SupabaseIndexStatusStore(supabase_url=None, supabase_key=None)

    @patch('services.status_store.create_client')
    def test_get_existing_row(self, mock_create_client):
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client
        mock_table = mock_client.table.return_value
        mock_table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{
                "document_id": "doc.pdf",
                "status": "READY",
                "progress": 100,
                "chunk_count": 4,
                "checksum": "abc",
                "error_message": None,
                "indexed_at": "2026-02-21T02:08:26.18976+00:00",
            }]
        )

        store = SupabaseIndexStatusStore(supabase_url="http://test", supabase_key="key")
        state = store.get("doc.pdf")

        mock_client.table.assert_called_with("document_indexes")
        mock_table.select.return_value.eq.assert_called_with("document_id", "doc.pdf")
        assert state.status is IndexStatus.READY
        assert state.chunk_count == 4
        assert state.indexed_at is not None

    @patch('services.status_store.create_client')
    def test_get_missing_row_is_pending(self, mock_create_client):
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client
        mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[]
        )

        store = SupabaseIndexStatusStore(supabase_url="http://test", supabase_key="key")
        assert store.get("doc.pdf").status is IndexStatus.PENDING

    @patch('services.status_store.create_client')
    def test_save_upserts_by_document_id(self, mock_create_client):
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client

        store = SupabaseIndexStatusStore(supabase_url="http://test", supabase_key="key")
        state = IndexState(document_id="doc.pdf")
        state.start()
        store.save(state)

        args, kwargs = mock_client.table.return_value.upsert.call_args
        assert args[0]["document_id"] == "doc.pdf"
        assert args[0]["status"] == "INDEXING"
        assert kwargs["on_conflict"] == "document_id"

    @patch('services.status_store.create_client')
    def test_save_propagates_errors(self, mock_create_client):
        mock_client = MagicMock()
        mock_create_client.return_value = mock_client
        mock_client.table.return_value.upsert.return_value.execute.side_effect = Exception("db down")

        store = SupabaseIndexStatusStore(supabase_url="http://test", supabase_key="key")

        with pytest.raises(Exception, match="db down"):
            store.save(IndexState(document_id="doc.pdf"))
