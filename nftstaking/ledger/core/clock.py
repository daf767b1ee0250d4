"""
Block clock.

The ledger never reads wall-clock time; every delay is measured against this
monotonically increasing integer counter.
"""
import logging
import threading

logger = logging.getLogger(__name__)


class BlockClock:
    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Block height must be non-negative")
        self._height = height
        self._lock = threading.Lock()

    @property
    def height(self) -> int:
        return self._height

    def __call__(self) -> int:
        return self._height

    def mine(self, blocks: int = 1) -> int:
        """Advances the counter by `blocks` and returns the new height."""
        if blocks < 0:
            raise ValueError("Cannot move the block clock backwards")
        with self._lock:
            self._height += blocks
            logger.debug(f"Block clock advanced to {self._height}")
            return self._height

    def advance_to(self, height: int) -> int:
        with self._lock:
            if height < self._height:
                raise ValueError(f"Cannot move block clock from {self._height} back to {height}")
            self._height = height
            return self._height
