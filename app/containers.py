# DI container for the market session
from dependency_injector import containers, providers
from core.config.settings import Settings
from services.backend.client import BackendClient
from services.instrument_data.name_resolver import InstrumentNameResolver
from services.sync.session import MarketSession


class AppContainer(containers.DeclarativeContainer):
    """Application dependency injection container"""

    # Configuration
    settings = providers.Singleton(Settings)

    # Backend REST API
    backend_client = providers.Singleton(
        BackendClient,
        settings=settings.provided.backend,
    )

    name_resolver = providers.Singleton(InstrumentNameResolver)

    # One session per process; the stream connection is opened by MarketSession.start()
    market_session = providers.Singleton(
        MarketSession,
        settings=settings,
        backend=backend_client,
        resolver=name_resolver,
    )

    # Started in order, stopped in reverse
    lifespan_services = providers.List(
        backend_client,
        market_session,
    )
