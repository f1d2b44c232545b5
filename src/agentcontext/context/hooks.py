import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..models import CompactionStrategy, ConversationSummary, Message, ThresholdLevel
from .errors import ObserverFailure

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    MESSAGE_ADDED = "message_added"
    BEFORE_COMPACT = "before_compact"
    AFTER_COMPACT = "after_compact"
    SUMMARIZED = "summarized"
    THRESHOLD_REACHED = "threshold_reached"


@dataclass
class ContextHooks:
    """Optional callbacks, registered together via ``HookDispatcher.register_hooks``."""

    on_message_added: Optional[Callable[[Message], Any]] = None
    on_before_compact: Optional[Callable[[CompactionStrategy], Any]] = None
    on_after_compact: Optional[Callable[[int], Any]] = None
    on_summarized: Optional[Callable[[ConversationSummary], Any]] = None
    on_threshold_reached: Optional[Callable[[ThresholdLevel], Any]] = None


_HOOK_FIELDS = {
    "on_message_added": HookEvent.MESSAGE_ADDED,
    "on_before_compact": HookEvent.BEFORE_COMPACT,
    "on_after_compact": HookEvent.AFTER_COMPACT,
    "on_summarized": HookEvent.SUMMARIZED,
    "on_threshold_reached": HookEvent.THRESHOLD_REACHED,
}


class HookDispatcher:
    """Synchronous observer lists, one per event, called in registration order.

    An observer that raises does not stop the others. Its error is wrapped in
    ``ObserverFailure`` and returned from ``dispatch``.
    """

    def __init__(self) -> None:
        self._observers: Dict[HookEvent, List[Callable[..., Any]]] = {
            event: [] for event in HookEvent
        }

    def register(self, event: HookEvent, callback: Callable[..., Any]) -> Callable[..., Any]:
        if not callable(callback):
            raise TypeError("hook callback must be callable")
        self._observers[HookEvent(event)].append(callback)
        return callback

    def unregister(self, event: HookEvent, callback: Callable[..., Any]) -> bool:
        observers = self._observers[HookEvent(event)]
        if callback in observers:
            observers.remove(callback)
            return True
        return False

    def register_hooks(self, hooks: ContextHooks) -> None:
        for name, event in _HOOK_FIELDS.items():
            callback = getattr(hooks, name)
            if callback is not None:
                self.register(event, callback)

    def on_message_added(self, callback: Callable[[Message], Any]):
        return self.register(HookEvent.MESSAGE_ADDED, callback)

    def on_before_compact(self, callback: Callable[[CompactionStrategy], Any]):
        return self.register(HookEvent.BEFORE_COMPACT, callback)

    def on_after_compact(self, callback: Callable[[int], Any]):
        return self.register(HookEvent.AFTER_COMPACT, callback)

    def on_summarized(self, callback: Callable[[ConversationSummary], Any]):
        return self.register(HookEvent.SUMMARIZED, callback)

    def on_threshold_reached(self, callback: Callable[[ThresholdLevel], Any]):
        return self.register(HookEvent.THRESHOLD_REACHED, callback)

    def observers(self, event: HookEvent) -> List[Callable[..., Any]]:
        return list(self._observers[HookEvent(event)])

    def dispatch(self, event: HookEvent, *args: Any) -> List[ObserverFailure]:
        """Call every observer of ``event``. Returns the failures, if any."""
        event = HookEvent(event)
        failures: List[ObserverFailure] = []
        for callback in list(self._observers[event]):
            try:
                callback(*args)
            except Exception as e:
                failure = ObserverFailure(event.value, callback, e)
                logger.warning("%s", failure, exc_info=e)
                failures.append(failure)
        return failures
