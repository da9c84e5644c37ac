"""Chat turn orchestration: retrieve -> memory -> prompt -> stream -> persist."""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from models.conversation import MessageRole
from services.conversation_manager import ConversationManager
from services.document_loader import DocumentLoader
from services.llm_client import LLMClient, LLMClientError
from services.prompt_builder import PromptBuilder
from services.retrieval_engine import RetrievalEngine

logger = logging.getLogger(__name__)

NOT_INDEXED_MESSAGE = "Document not indexed yet. Please wait for indexing to complete."


@dataclass
class StreamEvent:
    """One server-push event: ``timing``, ``token``, ``error`` or ``done``."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **self.data}

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict())}\n\n"


@dataclass
class ChatTurn:
    document_id: str
    thread_id: str
    message: str
    system_prompt: Optional[str] = None


def _elapsed_ms(since: float) -> int:
    return int((time.time() - since) * 1000)


class ChatOrchestrator:
    """Runs a single, strictly sequential chat turn and relays the model's token stream."""

    def __init__(
        self,
        retrieval_engine: RetrievalEngine,
        conversation_manager: ConversationManager,
        llm_client: LLMClient,
        document_loader: DocumentLoader,
        prompt_builder: Optional[PromptBuilder] = None,
        temperature: float = 0.2
    ):
        self.retrieval_engine = retrieval_engine
        self.conversation_manager = conversation_manager
        self.llm_client = llm_client
        self.document_loader = document_loader
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.temperature = temperature

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[StreamEvent]:
        """
        Relay model fragments as ``token`` events, with ``timing`` events for
        time-to-first-token and total duration.

        Provider errors propagate out of the iterator. Closing the iterator
        closes the provider stream.
        """
        start_time = time.time()
        first_token_ms: Optional[int] = None
        token_count = 0

        fragments = self.llm_client.stream(messages, temperature=self.temperature)
        try:
            for fragment in fragments:
                if first_token_ms is None:
                    first_token_ms = _elapsed_ms(start_time)
                    yield StreamEvent("timing", {"timing": {"firstTokenMs": first_token_ms}})
                token_count += 1
                yield StreamEvent("token", {"content": fragment})
        finally:
            fragments.close()

        yield StreamEvent("timing", {"timing": {
            "totalMs": _elapsed_ms(start_time),
            "firstTokenMs": first_token_ms or 0,
            "tokenCount": token_count,
        }})

    def run_turn(self, turn: ChatTurn) -> Iterator[StreamEvent]:
        """
        Run one chat turn, ending with exactly one ``done`` or ``error`` event.

        The user and assistant messages are persisted only after the model
        stream completes; a failed or abandoned stream persists nothing.
        """
        request_start = time.time()
        logger.info(f"Starting chat turn for document {turn.document_id}, thread {turn.thread_id}")

        try:
            retrieval_start = time.time()
            retrieval = self.retrieval_engine.retrieve(turn.document_id, turn.message)
            retrieval_ms = _elapsed_ms(retrieval_start)

            if not retrieval.index_found:
                yield StreamEvent("error", {"error": NOT_INDEXED_MESSAGE})
                return
            if retrieval.error:
                logger.warning(f"Retrieval failed, answering without context: {retrieval.error}")

            memory = self.conversation_manager.build_memory(turn.thread_id)

            prompt = self.prompt_builder.build(
                system_prompt=turn.system_prompt,
                document_label=self.document_loader.label(turn.document_id),
                memory=memory,
                user_message=turn.message,
                ranked_chunks=retrieval.chunks
            )

            yield StreamEvent("timing", {"timing": {
                "retrievalMs": retrieval_ms,
                "contextTokens": retrieval.total_tokens,
            }})

            response_parts: List[str] = []
            first_token_ms = 0
            events = self.stream(prompt.messages)
            try:
                for event in events:
                    if event.type == "token":
                        response_parts.append(event.data["content"])
                        yield event
                    elif "totalMs" not in event.data["timing"]:
                        first_token_ms = event.data["timing"]["firstTokenMs"]
                        yield event
                    # the stream's own total is superseded by the turn total below
            finally:
                events.close()

            full_response = "".join(response_parts)

            self.conversation_manager.append_message(turn.thread_id, MessageRole.USER, turn.message)
            self.conversation_manager.append_message(
                turn.thread_id, MessageRole.ASSISTANT, full_response, citations=prompt.citations
            )

            timing = {
                "totalMs": _elapsed_ms(request_start),
                "firstTokenMs": first_token_ms,
                "retrievalMs": retrieval_ms,
            }
            yield StreamEvent("timing", {"timing": timing})
            yield StreamEvent("done", {
                "citations": [c.to_dict() for c in prompt.citations],
                "timing": timing,
            })

            logger.info(
                f"Completed chat turn in {timing['totalMs']}ms "
                f"(first token: {first_token_ms}ms, retrieval: {retrieval_ms}ms)",
                extra={"document_id": turn.document_id, "thread_id": turn.thread_id}
            )

        except LLMClientError as e:
            logger.error(f"LLM client error during streaming: {e.error.message}")
            yield StreamEvent("error", {"error": e.error.message})
        except Exception as e:
            logger.error(f"Unexpected error during chat turn: {e}", exc_info=True)
            yield StreamEvent("error", {"error": str(e) or type(e).__name__})
