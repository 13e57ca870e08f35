"""Delivery of archived session data to collectors."""

from .http import HttpTransport
from .memory import MemoryTransport
from .protocol import Transport

__all__ = ["HttpTransport", "MemoryTransport", "Transport"]
