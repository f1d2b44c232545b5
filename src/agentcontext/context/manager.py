"""
Context manager for a single agent session.

``SimpleContextManager`` composes the message store, threshold monitor,
compaction and summarization engines and the hook dispatcher. All state
changes and snapshot copies happen under one re-entrant lock, so readers
never see a half-applied mutation and hook observers may call back into the
manager to read state.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Protocol

from ..models import (
    CompactionStrategy,
    ContextThresholds,
    ConversationContext,
    ConversationSummary,
    Message,
    SummarySchema,
    ThresholdLevel,
    ToolCallRecord,
)
from .compaction import CompactionEngine
from .errors import ObserverFailure
from .estimator import TokenEstimator, estimate_tokens
from .hooks import HookDispatcher, HookEvent
from .store import MessageStore
from .summarization import HeuristicSummaryStrategy, SummarizationEngine, SummaryStrategy
from .thresholds import ThresholdMonitor

logger = logging.getLogger(__name__)


class ContextManager(Protocol):
    """Operations the agent loop relies on."""

    def append(self, message: Message) -> Message: ...

    def compact(self, strategy: CompactionStrategy) -> int: ...

    def summarize(self, schema: Optional[SummarySchema] = None) -> ConversationSummary: ...

    def get_context(self) -> ConversationContext: ...


class SimpleContextManager:
    """Default in-memory context manager."""

    def __init__(
        self,
        session_id: str,
        thresholds: Optional[ContextThresholds] = None,
        *,
        estimator: TokenEstimator = estimate_tokens,
        keep_windows: Optional[Mapping[CompactionStrategy, int]] = None,
        summary_strategy: Optional[SummaryStrategy] = None,
        hooks: Optional[HookDispatcher] = None,
    ) -> None:
        self.session_id = session_id
        self.thresholds = thresholds or ContextThresholds()
        self.hooks = hooks or HookDispatcher()
        self.last_observer_failures: List[ObserverFailure] = []

        self._store = MessageStore(
            estimator=estimator,
            preserve_recent_tool_calls=self.thresholds.preserve_recent_tool_calls,
        )
        self._monitor = ThresholdMonitor(self.thresholds)
        self._compaction = CompactionEngine(keep_windows)
        self._summarization = SummarizationEngine(
            summary_strategy or HeuristicSummaryStrategy()
        )
        self._summary: Optional[ConversationSummary] = None
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (
            f"SimpleContextManager(session_id={self.session_id!r}, "
            f"messages={len(self._store)}, tokens={self._store.token_count})"
        )

    # -- mutations ---------------------------------------------------------

    def append(self, message: Message) -> Message:
        """Add a message to the log and evaluate thresholds.

        Raises:
            InvalidMessage: the role is unknown, content is missing, the id
                was already used in this session or the timestamp is behind
                the session clock. Nothing is stored in that case.
        """
        with self._lock:
            stored = self._store.append(message)
            failures = self.hooks.dispatch(HookEvent.MESSAGE_ADDED, copy.deepcopy(stored))
            failures.extend(self._check_thresholds())
            self.last_observer_failures = failures
            return copy.deepcopy(stored)

    def compact(self, strategy: CompactionStrategy) -> int:
        """Apply ``strategy`` and return how many messages were removed."""
        strategy = CompactionStrategy(strategy)
        with self._lock:
            failures = self.hooks.dispatch(HookEvent.BEFORE_COMPACT, strategy)
            removed = self._compaction.compact(self._store, strategy)
            failures.extend(self.hooks.dispatch(HookEvent.AFTER_COMPACT, removed))
            failures.extend(self._check_thresholds())
            self.last_observer_failures = failures
            return removed

    def summarize(self, schema: Optional[SummarySchema] = None) -> ConversationSummary:
        """Generate a summary and replace the stored one.

        Raises:
            SummarizationFailed: the strategy failed. The previous summary is
                kept unchanged.
        """
        schema = schema or SummarySchema()
        with self._lock:
            summary = self._summarization.summarize(self._snapshot(), schema)
            self._summary = summary
            logger.info(
                "Summarized session %s (%s messages, %s tokens)",
                self.session_id,
                len(self._store),
                self._store.token_count,
            )
            self.last_observer_failures = self.hooks.dispatch(
                HookEvent.SUMMARIZED, copy.deepcopy(summary)
            )
            return copy.deepcopy(summary)

    # -- queries -----------------------------------------------------------

    def get_context(self) -> ConversationContext:
        """Independent copy of the full session state."""
        with self._lock:
            return self._snapshot()

    snapshot = get_context

    def recent_messages(self, n: int) -> List[Message]:
        with self._lock:
            return self._store.recent_messages(n)

    def recent_tool_calls(self, n: Optional[int] = None) -> List[ToolCallRecord]:
        with self._lock:
            return self._store.recent_tool_calls(n)

    @property
    def token_count(self) -> int:
        return self._store.token_count

    @property
    def message_count(self) -> int:
        return len(self._store)

    @property
    def summary(self) -> Optional[ConversationSummary]:
        with self._lock:
            return copy.deepcopy(self._summary)

    @property
    def threshold_level(self) -> ThresholdLevel:
        return self._monitor.evaluate(self._store.token_count)

    def get_log_context(self) -> Dict[str, Any]:
        """Fields for structured logging and telemetry."""
        with self._lock:
            token_count = self._store.token_count
            return {
                "session_id": self.session_id,
                "message_count": len(self._store),
                "token_count": token_count,
                "threshold_status": self._monitor.status(token_count),
            }

    # -- internals ---------------------------------------------------------

    def _snapshot(self) -> ConversationContext:
        messages, tool_calls, token_count = self._store.snapshot()
        return ConversationContext(
            session_id=self.session_id,
            messages=messages,
            tool_calls=tool_calls,
            token_count=token_count,
            summary=copy.deepcopy(self._summary),
        )

    def _check_thresholds(self) -> List[ObserverFailure]:
        level = self._monitor.evaluate(self._store.token_count)
        if level is ThresholdLevel.NONE:
            return []
        if level in (ThresholdLevel.ROT, ThresholdLevel.HARD):
            logger.warning(
                "Session %s reached %s threshold (%s tokens)",
                self.session_id,
                level.value,
                self._store.token_count,
            )
        else:
            logger.debug(
                "Session %s reached %s threshold (%s tokens)",
                self.session_id,
                level.value,
                self._store.token_count,
            )
        return self.hooks.dispatch(HookEvent.THRESHOLD_REACHED, level)
