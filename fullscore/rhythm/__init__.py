"""Session protocol: slot pool, epoch coordination and the per-context controller."""

from ._models import DEFAULT_BITFIELD, EpochRecord, ExecutionContext, LifecycleState, Slot, parse_batch
from .classify import DeviceClass, OriginClass, classify_device, classify_origin
from .controller import SessionController
from .epoch import EpochCoordinator, merge_traces
from .pool import SlotPool

__all__ = [
    "DEFAULT_BITFIELD",
    "DeviceClass",
    "EpochCoordinator",
    "EpochRecord",
    "ExecutionContext",
    "LifecycleState",
    "OriginClass",
    "SessionController",
    "Slot",
    "SlotPool",
    "classify_device",
    "classify_origin",
    "merge_traces",
    "parse_batch",
]
