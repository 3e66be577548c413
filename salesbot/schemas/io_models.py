"""Pydantic models for API I/O and agent results."""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class TurnResult(BaseModel):
    content: str
    messages: List[Dict[str, Any]] = Field(default_factory=list)


class ChatCreate(BaseModel):
    title: Optional[str] = None


class ChatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: Optional[str] = None
    created_at: Optional[datetime] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str
    created_at: Optional[datetime] = None


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class SendMessageResponse(BaseModel):
    reply: str
    chat_id: int
    title: Optional[str] = None
