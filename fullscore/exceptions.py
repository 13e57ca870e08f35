"""Exception hierarchy for fullscore.

All exceptions inherit from FullScoreError. Most protocol conditions (hash
collisions, capacity overflow, epoch changes) are not errors and are handled
inside the controller; these types cover malformed data and store failures.
"""


class FullScoreError(Exception):
    """Base exception for all fullscore errors."""


class TraceDecodeError(FullScoreError):
    """Raised by strict tokenization when a trace contains a malformed token."""


class RecordFormatError(FullScoreError):
    """Raised when a serialized shared record cannot be parsed."""


class SlotFormatError(RecordFormatError):
    """Raised when a serialized slot is malformed."""


class EpochFormatError(RecordFormatError):
    """Raised when the serialized epoch record is malformed."""


class StoreError(FullScoreError):
    """Base exception for slot store failures."""


class SlotCapacityError(StoreError):
    """Raised when a store refuses a value above its size limit."""
