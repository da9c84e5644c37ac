"""Append-only storage for threads and messages."""
import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional
from supabase import create_client, Client

from models.chunk import Citation
from models.conversation import Message, MessageRole, Thread
from models.timestamps import parse_timestamp
from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


class InMemoryMessageStore:
    """Process-local message store; creation order is insertion order."""

    def __init__(self):
        self._threads: List[Thread] = []
        self._messages: Dict[str, List[Message]] = defaultdict(list)
        self._lock = threading.Lock()

    def create_thread(self, thread: Thread) -> Thread:
        with self._lock:
            self._threads.append(thread)
        return thread

    def latest_thread(self, document_id: str) -> Optional[Thread]:
        with self._lock:
            matches = [t for t in self._threads if t.document_id == document_id]
        return matches[-1] if matches else None

    def add_message(self, message: Message) -> None:
        with self._lock:
            self._messages[message.thread_id].append(message)

    def list_messages(self, thread_id: str, limit: Optional[int] = None) -> List[Message]:
        """Most recent ``limit`` messages (all when None), oldest first."""
        with self._lock:
            messages = list(self._messages.get(thread_id, []))
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages


class SupabaseMessageStore:
    """Message store backed by the ``threads`` and ``messages`` tables."""

    def __init__(self, supabase_url: str = SUPABASE_URL, supabase_key: str = SUPABASE_KEY):
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info("SupabaseMessageStore initialized")

    def create_thread(self, thread: Thread) -> Thread:
        try:
            self.client.table("threads").insert({
                "thread_id": thread.thread_id,
                "document_id": thread.document_id,
                "created_at": thread.created_at.isoformat()
            }).execute()
        except Exception as e:
            logger.error(f"Error creating thread for document {thread.document_id}: {e}")
            raise
        return thread

    def latest_thread(self, document_id: str) -> Optional[Thread]:
        result = (
            self.client.table("threads")
            .select("*")
            .eq("document_id", document_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        return Thread(
            thread_id=row["thread_id"],
            document_id=row["document_id"],
            created_at=parse_timestamp(row["created_at"])
        )

    def add_message(self, message: Message) -> None:
        try:
            self.client.table("messages").insert({
                "thread_id": message.thread_id,
                "role": message.role.value,
                "content": message.content,
                "token_estimate": message.token_estimate,
                "citations": [c.to_dict() for c in message.citations],
                "created_at": message.created_at.isoformat()
            }).execute()
        except Exception as e:
            logger.error(f"Error adding message to thread {message.thread_id}: {e}")
            raise

    def list_messages(self, thread_id: str, limit: Optional[int] = None) -> List[Message]:
        query = (
            self.client.table("messages")
            .select("*")
            .eq("thread_id", thread_id)
            .order("created_at", desc=True)
        )
        if limit is not None:
            query = query.limit(limit)

        result = query.execute()
        rows = list(reversed(result.data or []))

        return [
            Message(
                thread_id=row["thread_id"],
                role=MessageRole(row["role"]),
                content=row["content"],
                token_estimate=row.get("token_estimate") or 0,
                citations=[Citation.from_dict(c) for c in (row.get("citations") or [])],
                created_at=parse_timestamp(row["created_at"])
            )
            for row in rows
        ]
