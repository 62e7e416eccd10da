from __future__ import annotations

from datetime import timedelta

import pytest

from bridgecare.state import SessionLimitReached, SessionNotFound, SessionRegistry, now_utc


def _registry(**overrides) -> SessionRegistry[list]:
    options = {'ttl_seconds': 3600, 'max_sessions': 4}
    options.update(overrides)
    return SessionRegistry(list, **options)


def test_create_and_get():
    registry = _registry()

    entry = registry.create()

    assert registry.get(entry.session_id) is entry
    assert entry.value == []
    assert len(registry) == 1


def test_unknown_session_raises():
    registry = _registry()

    with pytest.raises(SessionNotFound) as excinfo:
        registry.get('missing')
    assert str(excinfo.value) == 'Session not found: missing'
    with pytest.raises(SessionNotFound):
        registry.delete('missing')


def test_use_touches_updated_at():
    registry = _registry()
    entry = registry.create()
    entry.updated_at = now_utc() - timedelta(minutes=5)
    before = entry.updated_at

    with registry.use(entry.session_id) as active:
        active.value.append('turn')

    assert entry.value == ['turn']
    assert entry.updated_at > before


def test_session_limit():
    registry = _registry(max_sessions=1)
    registry.create()

    with pytest.raises(SessionLimitReached):
        registry.create()


def test_idle_sessions_expire():
    registry = _registry(ttl_seconds=60)
    stale = registry.create()
    fresh = registry.create()
    stale.updated_at = now_utc() - timedelta(seconds=120)

    assert registry.cleanup() == 1
    with pytest.raises(SessionNotFound):
        registry.get(stale.session_id)
    assert registry.get(fresh.session_id) is fresh


def test_zero_ttl_keeps_sessions():
    registry = _registry(ttl_seconds=0)
    entry = registry.create()
    entry.updated_at = now_utc() - timedelta(days=2)

    assert registry.cleanup() == 0
    assert len(registry) == 1
