from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ChatRole(str, Enum):
    system = 'system'
    user = 'user'
    assistant = 'assistant'
    tool = 'tool'
    function = 'function'


class ChatMessage(BaseModel):
    role: ChatRole
    content: str
    name: str | None = None
    attachments: list[str] = Field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        payload: dict[str, Any] = {'role': self.role.value, 'content': self.content}
        if self.name:
            payload['name'] = self.name
        return payload


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)


class Attachment(BaseModel):
    name: str
    text: str


class ConsultationReply(BaseModel):
    content: str
    summary_ready: bool = False
    error: str | None = None
    status_code: int | None = None


class TextSessionSnapshot(BaseModel):
    session_id: str
    created_at: datetime
    updated_at: datetime
    messages: list[ChatMessage]
    summary_ready: bool


class VoiceSessionSnapshot(BaseModel):
    session_id: str
    phase: str
    mode: str | None = None
    call_live: bool = False
    summary_ready: bool = False
    status: str
    reason: str | None = None
    created_at: datetime
    updated_at: datetime
