from .coordinator import SyncCoordinator
from .session import MarketSession, SnapshotListener

__all__ = ["MarketSession", "SnapshotListener", "SyncCoordinator"]
