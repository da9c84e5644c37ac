"""API request/response models."""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatStreamRequest(BaseModel):
    """Request body for POST /chat/stream."""
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId")
    thread_id: str = Field(..., alias="threadId")
    message: str
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")


class TriggerIndexResponse(BaseModel):
    success: bool
    started: bool
    message: str


class IndexStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    progress: int
    chunk_count: int = Field(..., alias="chunkCount")
    error_message: Optional[str] = Field(None, alias="errorMessage")


class ThreadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., alias="threadId")


class MessageOut(BaseModel):
    role: str
    content: str
    token_estimate: int
    citations: List[Dict[str, Any]]
    created_at: str


class HistoryResponse(BaseModel):
    messages: List[MessageOut]
