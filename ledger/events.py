import logging
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple

__all__ = [
    'event_bus', 'Event', 'EventBus',
    'TRANSACTION_ADDED', 'TRANSACTION_REMOVED', 'TRANSFER_COMPLETED', 'BALANCE_ALERT',
    'register_default_handlers',
]

logger = logging.getLogger(__name__)


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], dict]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, [])
        if handler not in self._subscribers[name]:
            self._subscribers[name].append(handler)

    def publish(self, name: str, payload: dict) -> List[dict]:
        handlers = self._subscribers.get(name, [])
        if not handlers:
            return []

        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        logger.debug("Publishing %s to %d handler(s)", name, len(handlers))
        return [handler(event, payload) for handler in handlers]

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._subscribers.get(name, []):
            self._subscribers[name].remove(handler)


TRANSACTION_ADDED = "TRANSACTION_ADDED"
TRANSACTION_REMOVED = "TRANSACTION_REMOVED"
TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
BALANCE_ALERT = "BALANCE_ALERT"

event_bus = EventBus()


def balance_delta_handler(event: Event, payload: dict) -> dict:
    """Summarise how a committed change moved the total balance."""
    deltas = payload.get("deltas", {})
    return {"balance_delta": sum(deltas.values()), "accounts": sorted(deltas)}


def check_balance_handler(event: Event, payload: dict) -> dict:
    balance = payload.get("balance", 0)
    threshold = payload.get("threshold", 0)
    account = payload.get("account_name") or payload.get("account_id", "")

    if threshold > 0 and balance < threshold:
        return {
            "alert": f"Low balance on {account}: {balance:,.0f} is below {threshold:,.0f}",
            "account_id": payload.get("account_id"),
            "balance": balance,
            "threshold": threshold,
        }
    return {}


def register_default_handlers(bus: EventBus = event_bus) -> EventBus:
    for name in (TRANSACTION_ADDED, TRANSACTION_REMOVED, TRANSFER_COMPLETED):
        bus.subscribe(name, balance_delta_handler)
    bus.subscribe(BALANCE_ALERT, check_balance_handler)
    return bus


register_default_handlers()
