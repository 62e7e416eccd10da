from __future__ import annotations

import pytest
from fakes import FakeChatClient

from bridgecare.config import Settings, get_settings
from bridgecare.server import create_app


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for key in ('OPENAI_API_KEY', 'API_KEY', 'LLM_API_KEY', 'VAPI_API_KEY', 'NEXT_PUBLIC_VAPI_API_KEY'):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('DATA_DIR', str(tmp_path / 'data'))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path / 'data')


@pytest.fixture
def fake_chat() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def app(settings, fake_chat):
    application = create_app(settings, chat_client=fake_chat)
    application.config.update(TESTING=True)
    return application


@pytest.fixture
def client(app):
    return app.test_client()
