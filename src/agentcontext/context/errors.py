from typing import Any


class ContextError(Exception):
    """Base class for context manager errors."""


class InvalidMessage(ContextError):
    """Message rejected at append time (bad role, missing content, duplicate id)."""


class SummarizationFailed(ContextError):
    """The summary strategy failed; the previous summary is kept."""


class ObserverFailure(ContextError):
    """A hook observer raised while handling an event.

    Collected by the dispatcher and reported next to the result of the
    operation that fired the event. Never raised from a primary operation.
    """

    def __init__(self, event: str, observer: Any, error: BaseException) -> None:
        self.event = event
        self.observer = observer
        self.error = error
        name = getattr(observer, "__qualname__", None) or repr(observer)
        super().__init__(f"observer {name} failed on {event}: {error}")
