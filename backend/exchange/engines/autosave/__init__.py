"""Change detection, debounced saving and local/remote draft persistence."""

from .change_detector import ChangeDetector, snapshot_hash
from .coordinator import AutosaveState, DebouncedSaveCoordinator, UnloadResult
from .local_cache import LocalDraftCache
from .persistence import DualTierPersistence, LoadResult, SaveOutcome
from .remote import RemoteDraftStore, SqliteDraftStore

__all__ = [
    "ChangeDetector",
    "snapshot_hash",
    "AutosaveState",
    "DebouncedSaveCoordinator",
    "UnloadResult",
    "LocalDraftCache",
    "DualTierPersistence",
    "LoadResult",
    "SaveOutcome",
    "RemoteDraftStore",
    "SqliteDraftStore",
]
