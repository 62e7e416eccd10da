from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from bridgecare.adapters import llm
from bridgecare.adapters.llm import (
    CONFIGURATION_ERROR,
    EMPTY_REPLY,
    ChatCompletionClient,
    ChatCompletionConfig,
    ChatServiceError,
    build_chat_client,
    map_api_error,
)
from bridgecare.types import ChatMessage, ChatRole

_REQUEST = httpx.Request('POST', 'https://api.openai.com/v1/chat/completions')


def _status_error(cls, status: int, message: str = 'upstream said no'):
    return cls(message, response=httpx.Response(status, request=_REQUEST), body=None)


def _config(api_key: str | None = 'sk-test') -> ChatCompletionConfig:
    return ChatCompletionConfig(
        base_url=None,
        api_key=api_key,
        model='gpt-4o',
        temperature=0.7,
        max_tokens=1500,
        timeout_seconds=60,
    )


class FakeAsyncOpenAI:
    """Stands in for the SDK client; records create() kwargs."""

    def __init__(self, content: str | None = 'Hello there', error: Exception | None = None):
        self.content = content
        self.error = error
        self.requests: list[dict] = []
        self.closed = False
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        return False


def _install(monkeypatch, fake: FakeAsyncOpenAI) -> list[dict]:
    created: list[dict] = []

    def factory(**kwargs):
        created.append(kwargs)
        return fake

    monkeypatch.setattr(llm, 'AsyncOpenAI', factory)
    return created


@pytest.mark.parametrize(
    ('cls', 'status', 'expected'),
    [
        (openai.AuthenticationError, 401, 'AI Authentication Error: Invalid API Key.'),
        (openai.RateLimitError, 429, 'AI Service Error: Rate limit exceeded.'),
        (openai.InternalServerError, 503, 'AI Service Error: Server issue. Please try again later.'),
        (openai.BadRequestError, 400, 'AI Service Error: upstream said no'),
    ],
)
def test_map_api_error_by_status(cls, status, expected):
    error = map_api_error(_status_error(cls, status))

    assert error.status == status
    assert error.message == expected


def test_map_api_error_connection_failure():
    error = map_api_error(openai.APIConnectionError(request=_REQUEST))

    assert error.status == 503
    assert error.message.startswith('AI Service Error')


def test_missing_api_key_is_a_configuration_error():
    client = ChatCompletionClient(_config(api_key=None))

    assert not client.configured
    with pytest.raises(ChatServiceError) as excinfo:
        asyncio.run(client.complete([ChatMessage(role=ChatRole.user, content='hi')]))
    assert excinfo.value.status == 500
    assert excinfo.value.message == CONFIGURATION_ERROR


def test_complete_sends_configured_request(monkeypatch):
    fake = FakeAsyncOpenAI(content='Tell me more about the pain.')
    created = _install(monkeypatch, fake)
    client = ChatCompletionClient(_config())

    reply = asyncio.run(
        client.complete(
            [
                ChatMessage(role=ChatRole.system, content='be brief'),
                {'role': 'user', 'content': 'I have a headache', 'attachments': ['notes.txt']},
            ]
        )
    )

    assert reply == 'Tell me more about the pain.'
    assert created[0]['api_key'] == 'sk-test'
    assert fake.closed
    request = fake.requests[0]
    assert request['model'] == 'gpt-4o'
    assert request['temperature'] == 0.7
    assert request['max_tokens'] == 1500
    assert request['messages'] == [
        {'role': 'system', 'content': 'be brief'},
        {'role': 'user', 'content': 'I have a headache'},
    ]


def test_complete_returns_placeholder_for_empty_content(monkeypatch):
    _install(monkeypatch, FakeAsyncOpenAI(content=None))

    reply = asyncio.run(ChatCompletionClient(_config()).complete([{'role': 'user', 'content': 'hi'}]))

    assert reply == EMPTY_REPLY


def test_complete_maps_sdk_errors(monkeypatch):
    _install(monkeypatch, FakeAsyncOpenAI(error=_status_error(openai.RateLimitError, 429)))

    with pytest.raises(ChatServiceError) as excinfo:
        asyncio.run(ChatCompletionClient(_config()).complete([{'role': 'user', 'content': 'hi'}]))

    assert excinfo.value.status == 429
    assert isinstance(excinfo.value.__cause__, openai.RateLimitError)


def test_build_chat_client_uses_settings(settings):
    client = build_chat_client(settings)

    assert client.cfg.model == 'gpt-4o'
    assert client.cfg.temperature == 0.7
    assert client.cfg.max_tokens == 1500
    assert client.cfg.api_key is None
