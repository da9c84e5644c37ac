"""Conversation manager: one thread per document and bounded conversational memory."""
import logging
import uuid
from typing import List, Optional

from models.chunk import Citation
from models.conversation import Message, MessageRole, Thread
from services.llm_client import LLMClient
from services.tokens import TokenEstimator, default_estimator
from config import MEMORY_TOKEN_THRESHOLD, MEMORY_MAX_MESSAGES, MEMORY_RECENT_MESSAGES

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Summarize the following conversation between a student and a study assistant "
    "in roughly 200-300 words. Preserve the key questions asked and the answers given."
)
FALLBACK_MESSAGES = 5
FALLBACK_CHARS = 100


def format_transcript(messages: List[Message]) -> str:
    return "\n".join(f"{m.role.value}: {m.content}" for m in messages)


def _clip(text: str) -> str:
    if len(text) <= FALLBACK_CHARS:
        return text
    return text[:FALLBACK_CHARS] + "..."


class ConversationManager:
    """Manages per-document threads and builds memory strings for prompts."""

    def __init__(
        self,
        store,
        llm_client: Optional[LLMClient] = None,
        estimator: Optional[TokenEstimator] = None,
        token_threshold: int = MEMORY_TOKEN_THRESHOLD,
        max_messages: int = MEMORY_MAX_MESSAGES,
        recent_messages: int = MEMORY_RECENT_MESSAGES
    ):
        """
        Initialize the conversation manager.

        Args:
            store: Message store (in-memory or Supabase)
            llm_client: Generation capability used to summarize long histories
            estimator: Token estimation strategy
            token_threshold: Total tokens at which summarization kicks in
            max_messages: How many recent messages memory considers
            recent_messages: Messages kept verbatim alongside a summary
        """
        self.store = store
        self.llm_client = llm_client
        self.estimator = estimator or default_estimator
        self.token_threshold = token_threshold
        self.max_messages = max_messages
        self.recent_messages = recent_messages
        logger.info("ConversationManager initialized")

    def get_or_create_thread(self, document_id: str) -> str:
        """
        Return the document's thread id, creating the thread on first access.

        If duplicates ever exist the most recently created one wins.
        """
        existing = self.store.latest_thread(document_id)
        if existing is not None:
            logger.debug(f"Resumed thread {existing.thread_id} for document {document_id}")
            return existing.thread_id

        thread = self.store.create_thread(
            Thread(thread_id=str(uuid.uuid4()), document_id=document_id)
        )
        logger.info(f"Created new thread {thread.thread_id} for document {document_id}")
        return thread.thread_id

    def append_message(
        self,
        thread_id: str,
        role: MessageRole,
        content: str,
        citations: Optional[List[Citation]] = None
    ) -> Message:
        """Append a message, recording its token estimate at write time."""
        message = Message(
            thread_id=thread_id,
            role=MessageRole(role),
            content=content,
            token_estimate=self.estimator.estimate(content),
            citations=list(citations or []),
        )
        self.store.add_message(message)
        logger.info(f"Added {message.role.value} message to thread {thread_id}")
        return message

    def get_history(self, thread_id: str) -> List[Message]:
        return self.store.list_messages(thread_id)

    def build_memory(self, thread_id: str) -> str:
        """
        Build the conversation memory string for a prompt.

        Short histories are returned verbatim. Past the token threshold,
        everything but the last ``recent_messages`` is summarized and the
        recent messages follow verbatim.
        """
        messages = self.store.list_messages(thread_id, limit=self.max_messages)
        if not messages:
            return ""

        total_tokens = sum(m.token_estimate for m in messages)
        if total_tokens < self.token_threshold:
            return format_transcript(messages)

        split = max(0, len(messages) - self.recent_messages)
        old, recent = messages[:split], messages[split:]
        logger.info(
            f"Thread {thread_id} memory at {total_tokens} tokens; "
            f"summarizing {len(old)} older messages"
        )

        summary = self._summarize(old) if old else ""
        recent_text = format_transcript(recent)
        if not summary:
            return recent_text
        return f"Summary of earlier conversation:\n{summary}\n\nRecent messages:\n{recent_text}"

    def _summarize(self, messages: List[Message]) -> str:
        if self.llm_client is not None:
            try:
                response = self.llm_client.complete(
                    messages=[
                        {"role": "system", "content": SUMMARY_PROMPT},
                        {"role": "user", "content": format_transcript(messages)},
                    ],
                    temperature=0.3,
                    max_tokens=400
                )
                if response.text.strip():
                    return response.text.strip()
                logger.warning("Summarizer returned empty text, using local fallback")
            except Exception as e:
                logger.warning(f"Summarization failed, using local fallback: {e}")

        return "\n".join(
            f"{m.role.value}: {_clip(m.content)}"
            for m in messages[:FALLBACK_MESSAGES]
        )
