# Lifecycle protocol shared by everything the container starts and stops
from typing import Protocol, runtime_checkable


@runtime_checkable
class LifespanService(Protocol):
    """Protocol for services that need startup/shutdown lifecycle management"""

    async def start(self) -> None:
        """Start the service"""
        ...

    async def stop(self) -> None:
        """Stop the service, releasing connections it opened"""
        ...
