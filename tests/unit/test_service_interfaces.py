"""
Unit tests for service interface validation.
Prevents AttributeError exceptions by validating method signatures exist.
"""

import inspect

import pytest

from app.containers import AppContainer
from app.services import LifespanService
from core.config.settings import BackendSettings
from services.backend.client import BackendClient
from services.market_feed.stream_client import MarketStreamClient
from services.sync.session import MarketSession

LIFESPAN_CLASSES = [BackendClient, MarketStreamClient, MarketSession]


class TestServiceAsyncMethodSignatures:
    """Test that lifecycle methods are coroutines"""

    @pytest.mark.parametrize("service_class", LIFESPAN_CLASSES)
    def test_async_start_and_stop(self, service_class):
        for name in ("start", "stop"):
            method = getattr(service_class, name)
            assert inspect.iscoroutinefunction(method), f"{service_class.__name__}.{name}() must be async"

    def test_backend_client_is_async_context_manager(self):
        assert inspect.iscoroutinefunction(BackendClient.__aenter__)
        assert inspect.iscoroutinefunction(BackendClient.__aexit__)

    @pytest.mark.parametrize("method_name", [
        "add_instrument", "remove_instrument", "search", "place_order",
        "trade_history", "refresh_baseline", "drain", "post",
    ])
    def test_session_commands_are_async(self, method_name):
        assert inspect.iscoroutinefunction(getattr(MarketSession, method_name))


class TestProtocolCompliance:
    def test_session_implements_lifespan_and_scheduler(self, test_settings):
        backend = BackendClient(test_settings.backend)
        session = MarketSession(test_settings, backend)
        assert isinstance(session, LifespanService)
        assert callable(session.schedule)
        assert isinstance(backend, LifespanService)
        assert isinstance(session.stream, LifespanService)

    def test_session_wires_registry_persistence_to_itself(self, test_settings):
        session = MarketSession(test_settings, BackendClient(test_settings.backend))
        assert session.registry.persistence is session
        assert session.stream.url == "wss://backend.test/ws/market/ws1"


class TestContainerWiring:
    def test_lifespan_services_are_singletons(self, test_settings):
        container = AppContainer()
        container.settings.override(test_settings)
        try:
            services = container.lifespan_services()
            assert all(isinstance(s, LifespanService) for s in services)
            assert services[0] is container.backend_client()
            assert services[1] is container.market_session()
            assert container.market_session().backend is container.backend_client()
        finally:
            container.settings.reset_override()

    def test_backend_client_uses_backend_settings(self, test_settings):
        container = AppContainer()
        container.settings.override(test_settings)
        try:
            settings = container.backend_client().settings
            assert isinstance(settings, BackendSettings)
            assert settings.base_url == "https://backend.test"
        finally:
            container.settings.reset_override()
