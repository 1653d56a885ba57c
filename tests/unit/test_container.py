from __future__ import annotations

from unittest.mock import MagicMock, patch

from flask import Flask

from _fakes import FakeCounterStore, InMemoryStore
from pixedge.services import container as container_module
from pixedge.services.container import ServiceContainer, build_services, build_store, get_services, init_services
from pixedge.services.local_store import LocalStore
from pixedge.utils.jwt import TokenCodec


def _services(**overrides):
    options = {"store": InMemoryStore(), "telegram": MagicMock(), "codec": TokenCodec("container-secret")}
    options.update(overrides)
    return build_services(**options)


def test_build_services_wires_shared_store():
    store = InMemoryStore(counters=FakeCounterStore())
    services = _services(store=store)

    assert isinstance(services, ServiceContainer)
    assert services.store is store
    assert services.uploads.store is store
    assert services.limiter.enabled is True
    assert services.uploads.telegram is services.telegram


def test_build_services_without_counters_disables_limiting():
    assert _services().limiter.enabled is False


def test_ephemeral_secret_when_unset(monkeypatch):
    monkeypatch.delenv("PIXEDGE_AUTH_SECRET", raising=False)
    first = container_module._auth_secret()
    second = container_module._auth_secret()
    assert len(first) >= 32
    assert first != second


def test_build_store_falls_back_to_local_when_redis_down():
    client = MagicMock()
    client.ping.side_effect = ConnectionError("refused")
    with patch.object(container_module, "REDIS_ENABLED", True), patch.object(
        container_module, "build_redis_client", return_value=client
    ):
        assert isinstance(build_store(), LocalStore)


def test_build_store_uses_redis_when_reachable():
    client = MagicMock()
    with patch.object(container_module, "REDIS_ENABLED", True), patch.object(
        container_module, "build_redis_client", return_value=client
    ):
        store = build_store()
    assert store.backend == "redis"
    assert store.counters is not None


def test_init_services_with_provided_container():
    app = Flask(__name__)
    provided = _services()
    assert init_services(app, services=provided) is provided
    assert app.extensions["services"] is provided


def test_get_services_returns_registered_container():
    app = Flask(__name__)
    provided = _services()
    app.extensions["services"] = provided
    with app.app_context():
        assert get_services() is provided
        assert get_services() is provided
