"""Factory function for creating slot store instances based on settings."""

from pathlib import Path

from fullscore.settings import Settings
from fullscore.slot_store.protocol import SlotStore


def create_slot_store(settings: Settings) -> SlotStore:
    """Create a SlotStore based on settings.

    Selects LocalSlotStore when store_path is configured, otherwise falls back
    to MemorySlotStore. Backends are imported lazily.
    """
    if settings.store_path:
        from fullscore.slot_store.local import LocalSlotStore

        return LocalSlotStore(Path(settings.store_path))

    from fullscore.slot_store.memory import MemorySlotStore

    return MemorySlotStore()
