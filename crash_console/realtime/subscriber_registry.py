"""Registry for crash state subscribers."""
import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class SubscriberRegistry:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; the returned callable removes it again."""
        self._subscribers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, topic: str, event: Any) -> None:
        # Copy: handlers may unsubscribe while being notified.
        for handler in list(self._subscribers.get(topic, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber for '%s' failed", topic)

    def count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def clear(self) -> None:
        self._subscribers.clear()
