"""
Staking lifecycle events.

The contract emits only after a call has committed, so neither listeners nor
the event log ever see effects of a rolled-back call.
"""
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

STAKED = "staked"
UNSTAKED = "unstaked"
WITHDRAWN = "withdrawn"
REWARD_PAID = "reward_paid"
PARAMETER_UPDATED = "parameter_updated"
INITIALIZED = "initialized"

EVENT_TYPES = (STAKED, UNSTAKED, WITHDRAWN, REWARD_PAID, PARAMETER_UPDATED, INITIALIZED)


@dataclass(frozen=True)
class LedgerEvent:
    name: str
    block: int
    data: Dict[str, Any] = field(default_factory=dict)


class EventBus:
    """
    Synchronous pub/sub plus a bounded log of the most recent events.

    Listeners are called with keyword arguments: `block` and the event data.
    """

    def __init__(self, keep: int = 1000):
        self._listeners: Dict[str, List[Callable[..., None]]] = defaultdict(list)
        self.log: Deque[LedgerEvent] = deque(maxlen=keep)

    def subscribe(self, event_type: str, callback: Callable[..., None]) -> None:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type '{event_type}'")
        self._listeners[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: Callable[..., None]) -> None:
        try:
            self._listeners[event_type].remove(callback)
        except ValueError:
            logger.warning(f"Callback not subscribed to {event_type}")

    def emit(self, event_type: str, block: int, **data: Any) -> LedgerEvent:
        event = LedgerEvent(event_type, block, data)
        self.log.append(event)

        # A failing listener does not affect the others or the committed call
        for callback in list(self._listeners.get(event_type, ())):
            try:
                callback(block=block, **data)
            except Exception as e:
                logger.error(f"Error in {event_type} listener: {e}", exc_info=True)
        logger.debug(f"Emitted {event_type} at block {block}")
        return event

    def recent(self, event_type: Optional[str] = None, account: Optional[str] = None) -> List[LedgerEvent]:
        """Logged events, oldest first, optionally filtered by type and account."""
        return [
            e for e in self.log
            if (event_type is None or e.name == event_type)
            and (account is None or e.data.get("account") == account)
        ]
