from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

import openai
from openai import AsyncOpenAI

from bridgecare.config import Settings
from bridgecare.types import ChatMessage


logger = logging.getLogger(__name__)

EMPTY_REPLY = 'Sorry, I could not generate a response.'
FALLBACK_REPLY = "I'm having trouble processing your request right now. Please try again in a moment."
CONFIGURATION_ERROR = 'Server configuration error prevented AI call.'


class ChatServiceError(RuntimeError):
    """A chat-completion failure, already mapped to user-facing text."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class ChatCompletionConfig:
    base_url: str | None
    api_key: str | None
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: int


def map_api_error(exc: openai.APIError) -> ChatServiceError:
    if isinstance(exc, openai.APIStatusError):
        status = int(exc.status_code or 500)
        if status == 401:
            message = 'AI Authentication Error: Invalid API Key.'
        elif status == 429:
            message = 'AI Service Error: Rate limit exceeded.'
        elif status >= 500:
            message = 'AI Service Error: Server issue. Please try again later.'
        else:
            message = f'AI Service Error: {exc.message}'
        return ChatServiceError(status, message)
    if isinstance(exc, openai.APIConnectionError):
        return ChatServiceError(503, 'AI Service Error: Could not reach the AI service.')
    return ChatServiceError(500, f'AI Service Error: {exc.message}')


def _message_payload(message: ChatMessage | dict[str, Any]) -> dict[str, Any]:
    if isinstance(message, ChatMessage):
        return message.to_api()
    return ChatMessage.model_validate(message).to_api()


class ChatCompletionClient:
    """Async OpenAI chat-completions helper; one HTTP client per call."""

    def __init__(self, cfg: ChatCompletionConfig):
        self.cfg = cfg

    @property
    def configured(self) -> bool:
        return bool(self.cfg.api_key)

    def client(self) -> AsyncOpenAI:
        if not self.configured:
            logger.error('OPENAI_API_KEY is not set; refusing chat completion call')
            raise ChatServiceError(500, CONFIGURATION_ERROR)
        return AsyncOpenAI(
            api_key=self.cfg.api_key,
            base_url=self.cfg.base_url,
            timeout=max(30, int(self.cfg.timeout_seconds)),
        )

    async def complete(self, messages: Iterable[ChatMessage | dict[str, Any]]) -> str:
        payload = [_message_payload(message) for message in messages]
        logger.info('Sending %d messages to %s', len(payload), self.cfg.model)
        try:
            async with self.client() as client:
                completion = await client.chat.completions.create(
                    model=self.cfg.model,
                    messages=payload,
                    temperature=self.cfg.temperature,
                    max_tokens=self.cfg.max_tokens,
                )
        except openai.APIError as exc:
            error = map_api_error(exc)
            logger.warning('Chat completion failed (status %s): %s', error.status, exc)
            raise error from exc

        choices = completion.choices or []
        content = choices[0].message.content if choices else None
        return content or EMPTY_REPLY


def build_chat_client(settings: Settings) -> ChatCompletionClient:
    return ChatCompletionClient(
        ChatCompletionConfig(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            model=settings.chat_model,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
            timeout_seconds=settings.chat_timeout_seconds,
        )
    )
