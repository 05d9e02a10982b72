from dataclasses import dataclass
from typing import Dict, List, Callable, Set
import asyncio
import inspect
import logging
logger = logging.getLogger(__name__)

@dataclass
class FileProgress:
    """Progress information for a single file."""
    filename: str
    bytes_uploaded: int = 0
    total_bytes: int = 0
    percent: float = 0.0
    status: str = "pending"  # pending, uploading, completed, failed, cancelled


class EventEmitter:
    """Simple event emitter for upload events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._lock = asyncio.Lock()
        # Strong references to listener tasks scheduled by emit_nowait
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners."""
        if event_name not in self._listeners:
            return

        async with self._lock:
            for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
                try:
                    if inspect.iscoroutinefunction(callback):
                        await callback(*args, **kwargs)
                    else:
                        callback(*args, **kwargs)
                except Exception as e:
                    logger.error(f"Error in event listener for {event_name}: {e}")

    def emit_nowait(self, event_name: str, *args, **kwargs):
        """
        Emit an event from synchronous code.

        Plain callbacks run immediately; coroutine listeners are scheduled on
        the running loop, or run to completion when no loop is running.
        """
        for callback in self._listeners.get(event_name, [])[:]:
            try:
                if inspect.iscoroutinefunction(callback):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        asyncio.run(callback(*args, **kwargs))
                    else:
                        task = loop.create_task(callback(*args, **kwargs))
                        self._pending.add(task)
                        task.add_done_callback(self._pending.discard)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
