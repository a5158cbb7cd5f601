from typing import Dict, List, Callable, Any
import asyncio
import logging

logger = logging.getLogger(__name__)

class EventBus:
    """Publishes store change events to subscribed readers.

    Sync handlers run inline on the event loop thread; store state is not
    safe to read from worker threads.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, handler: Callable):
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Callable):
        if event_type in self._handlers:
            self._handlers[event_type].remove(handler)

    def handlers(self, event_type: str) -> List[Callable]:
        return list(self._handlers.get(event_type, [])) + list(self._handlers.get("*", []))

    async def publish(self, event_type: str, data: Dict[str, Any]):
        handlers = self.handlers(event_type)
        if not handlers:
            return

        payload = {"event": event_type, **data}
        tasks = []
        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(payload)))
            else:
                try:
                    handler(payload)
                except Exception as e:
                    logger.error(f"Error in sync event handler {handler.__name__}: {e}")

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for handler, result in zip([h for h in handlers if asyncio.iscoroutinefunction(h)], results):
                if isinstance(result, Exception):
                    logger.error(f"Error in event handler {handler.__name__}: {result}")
