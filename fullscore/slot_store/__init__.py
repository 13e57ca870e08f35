"""Slot store protocol and backends for the shared session medium."""

from .factory import create_slot_store
from .local import LocalSlotStore
from .memory import MemorySlotStore
from .protocol import SlotStore

__all__ = [
    "LocalSlotStore",
    "MemorySlotStore",
    "SlotStore",
    "create_slot_store",
]
