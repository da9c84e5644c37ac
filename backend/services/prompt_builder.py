"""Token-budgeted prompt assembly."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.chunk import Citation, RetrievedChunk
from services.tokens import TokenEstimator, default_estimator
from config import MAX_PROMPT_TOKENS

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a study assistant. Answer concisely in British English using only the "
    "provided document context. Always cite page numbers in your answers."
)
CONTEXT_HEADER = "=== Relevant Document Sections ===\n\n"
NO_CONTEXT_NOTICE = "No relevant sections found in the document."
MEMORY_HEADER = "Previous conversation:\n"
MEMORY_RESERVE = 500
CONTEXT_RESERVE = 200


@dataclass
class PromptResult:
    messages: List[Dict[str, str]]
    citations: List[Citation] = field(default_factory=list)
    estimated_tokens: int = 0


class PromptBuilder:
    """
    Assembles model input under a hard token ceiling.

    Priority: system instructions and document label are never truncated;
    memory is kept whole if it fits under ``ceiling - 500`` and truncated
    otherwise; chunks are added whole in rank order until the next one would
    pass ``ceiling - 200``.
    """

    def __init__(self, max_tokens: int = MAX_PROMPT_TOKENS, estimator: Optional[TokenEstimator] = None):
        self.max_tokens = max_tokens
        self.estimator = estimator or default_estimator

    def format_chunk(self, item: RetrievedChunk) -> str:
        return f"[Pages {item.chunk.page_start}-{item.chunk.page_end}]:\n{item.chunk.text}\n\n"

    def build(
        self,
        system_prompt: Optional[str],
        document_label: str,
        memory: str,
        user_message: str,
        ranked_chunks: List[RetrievedChunk]
    ) -> PromptResult:
        estimate = self.estimator.estimate
        full_system_prompt = f"{system_prompt or DEFAULT_SYSTEM_PROMPT}\n\nDocument: {document_label}"
        tokens_used = estimate(full_system_prompt) + estimate(user_message)

        if memory:
            memory_budget = self.max_tokens - MEMORY_RESERVE - tokens_used - estimate(MEMORY_HEADER)
            if estimate(memory) >= memory_budget:
                memory = self.estimator.truncate(memory, memory_budget - 1)
            if memory:
                tokens_used += estimate(MEMORY_HEADER) + estimate(memory)

        citations: List[Citation] = []
        sections: List[str] = []
        header_tokens = estimate(CONTEXT_HEADER)
        context_limit = self.max_tokens - CONTEXT_RESERVE

        for item in ranked_chunks:
            chunk_text = self.format_chunk(item)
            chunk_tokens = estimate(chunk_text)
            pending_header = 0 if sections else header_tokens
            if tokens_used + pending_header + chunk_tokens > context_limit:
                break
            sections.append(chunk_text)
            tokens_used += pending_header + chunk_tokens
            citations.append(item.citation())

        if sections:
            context_text = CONTEXT_HEADER + "".join(sections)
        else:
            context_text = NO_CONTEXT_NOTICE
            tokens_used += estimate(NO_CONTEXT_NOTICE)

        messages = [
            {"role": "system", "content": full_system_prompt},
            {"role": "system", "content": context_text},
        ]
        if memory:
            messages.append({"role": "system", "content": MEMORY_HEADER + memory})
        messages.append({"role": "user", "content": user_message})

        logger.info(
            f"Built prompt with {len(messages)} messages, ~{tokens_used} tokens, "
            f"{len(citations)} citations"
        )
        return PromptResult(messages=messages, citations=citations, estimated_tokens=tokens_used)
