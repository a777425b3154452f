"""mailguard: at-most-once email delivery across fallback backends."""

__version__ = "0.1.0"

from .backends import DeliveryBackend, DeliveryError, SimulatedBackend
from .dispatcher import DeliveryDispatcher, DispatchResult, DispatchStatus
from .ledger import IdempotencyLedger
from .message import Message

__all__ = [
    "DeliveryDispatcher",
    "DispatchResult",
    "DispatchStatus",
    "DeliveryBackend",
    "DeliveryError",
    "SimulatedBackend",
    "IdempotencyLedger",
    "Message",
]
