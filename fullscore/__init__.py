"""Full Score - Linear behavioral traces and a cross-context session protocol.

@public

Full Score records a visitor's journey as one compact string per execution
context and keeps several concurrently open contexts of the same journey in
sync through nothing but a shared key-value store.

Core Capabilities:
    - **Trace Codec**: Space, time and action events encoded into a linear,
      cookie-safe string with run-folding of repeated actions
    - **Session Protocol**: Bounded slot pool, epoch record and handoff chain
      shared by sibling contexts without locks
    - **Delivery**: Archived slots batched to collector endpoints over httpx

Quick Start:
    >>> from fullscore import ActionDescriptor, ExecutionContext, MemorySlotStore, MemoryTransport, SessionController
    >>>
    >>> controller = SessionController(MemorySlotStore(), MemoryTransport(), ExecutionContext(path="/"))
    >>> await controller.start()
    >>> await controller.record_action(ActionDescriptor(tag="button", depth=3))
    >>> controller.trace
    '!home*3button1'

Environment Variables:
    - FULLSCORE_*: Protocol constants, see fullscore.settings
    - FULLSCORE_LOGGING_CONFIG: Path to a YAML logging configuration
    - FULLSCORE_LOG_LEVEL: Default level of the fullscore loggers
"""

from .beat import ActionDescriptor, BeatMaps, TraceBuilder, TraceEvent, decode, tokenize
from .exceptions import (
    EpochFormatError,
    FullScoreError,
    RecordFormatError,
    SlotCapacityError,
    SlotFormatError,
    StoreError,
    TraceDecodeError,
)
from .logging import LoggingConfig, get_score_logger, setup_logging
from .rhythm import EpochRecord, ExecutionContext, LifecycleState, SessionController, Slot, parse_batch
from .settings import Settings, settings
from .slot_store import LocalSlotStore, MemorySlotStore, SlotStore, create_slot_store
from .transport import HttpTransport, MemoryTransport, Transport

__version__ = "0.1.0"

__all__ = [
    "ActionDescriptor",
    "BeatMaps",
    "EpochFormatError",
    "EpochRecord",
    "ExecutionContext",
    "FullScoreError",
    "HttpTransport",
    "LifecycleState",
    "LocalSlotStore",
    "LoggingConfig",
    "MemorySlotStore",
    "MemoryTransport",
    "RecordFormatError",
    "SessionController",
    "Settings",
    "Slot",
    "SlotCapacityError",
    "SlotFormatError",
    "SlotStore",
    "StoreError",
    "TraceBuilder",
    "TraceDecodeError",
    "TraceEvent",
    "Transport",
    "create_slot_store",
    "decode",
    "get_score_logger",
    "settings",
    "setup_logging",
    "tokenize",
]
