"""
Call receipts: the outcome of every executed call, keyed by call hash.
"""
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any
import time
import logging
from threading import RLock

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
FAILED = "failed"


@dataclass
class CallReceipt:
    """
    Outcome of one executed call.

    Attributes:
        call_hash: Call hash
        status: 'confirmed' or 'failed'
        block_height: Block the call executed at
        error: Rejection message of a failed call
        error_code: Stable error kind (e.g. 'ClaimDelayNotMet')
        result: Operation-specific return data (e.g. reward amount)
    """
    call_hash: str
    status: str
    block_height: int
    error: Optional[str] = None
    error_code: Optional[str] = None
    result: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=lambda: int(time.time()))

    @property
    def ok(self) -> bool:
        return self.status == CONFIRMED

    def to_dict(self) -> dict:
        return asdict(self)


class CallReceiptStore:
    """Bounded in-memory store; re-executing a call hash replaces its receipt."""

    def __init__(self, max_receipts: int = 10000):
        self._receipts: "OrderedDict[str, CallReceipt]" = OrderedDict()
        self.max_receipts = max_receipts
        self._lock = RLock()

    def record(self, receipt: CallReceipt) -> CallReceipt:
        with self._lock:
            self._receipts.pop(receipt.call_hash, None)
            self._receipts[receipt.call_hash] = receipt
            while len(self._receipts) > self.max_receipts:
                evicted, _ = self._receipts.popitem(last=False)
                logger.debug(f"Evicted receipt {evicted[:16]}")
        return receipt

    def get(self, call_hash: str) -> Optional[CallReceipt]:
        with self._lock:
            return self._receipts.get(call_hash)

    def __len__(self) -> int:
        return len(self._receipts)
