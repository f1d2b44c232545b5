import asyncio
import logging
from typing import Any, Callable, Dict, List

from ..context.errors import ObserverFailure, SummarizationFailed
from ..context.estimator import CharacterEstimator
from ..context.hooks import ContextHooks
from ..context.manager import SimpleContextManager
from ..models import (
    CompactionStrategy,
    ConversationContext,
    ConversationSummary,
    Message,
    SummarySchema,
    ThresholdLevel,
)
from ..settings import Settings, get_settings
from .llm_summarizer import build_summary_strategy

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[str], SimpleContextManager]

AUTO_COMPACT_POLICY: Dict[ThresholdLevel, CompactionStrategy] = {
    ThresholdLevel.COMPACTION: CompactionStrategy.CONSERVATIVE,
    ThresholdLevel.SUMMARIZATION: CompactionStrategy.BALANCED,
    ThresholdLevel.ROT: CompactionStrategy.AGGRESSIVE,
    ThresholdLevel.HARD: CompactionStrategy.AGGRESSIVE,
}


def build_manager_factory(settings: Settings) -> ManagerFactory:
    """Return a factory creating managers configured from ``settings``."""
    thresholds = settings.context_thresholds()
    keep_windows = settings.keep_windows()
    estimator = CharacterEstimator(settings.chars_per_token)
    strategy = build_summary_strategy(settings)

    def factory(session_id: str) -> SimpleContextManager:
        return SimpleContextManager(
            session_id,
            thresholds,
            estimator=estimator,
            keep_windows=keep_windows,
            summary_strategy=strategy,
        )

    return factory


class SessionService:
    """Keeps one context manager per session and serializes access per session.

    Sessions live in memory only and are dropped by ``end_session``.
    """

    def __init__(
        self,
        manager_factory: ManagerFactory,
        auto_compact: bool = False,
        hooks: ContextHooks | None = None,
    ) -> None:
        self._factory = manager_factory
        self._auto_compact = auto_compact
        self._hooks = hooks
        self._managers: Dict[str, SimpleContextManager] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def get_manager(self, session_id: str) -> SimpleContextManager:
        """Return or create the manager for session_id."""
        manager = self._managers.get(session_id)
        if manager is None:
            manager = self._factory(session_id)
            if self._hooks is not None:
                manager.hooks.register_hooks(self._hooks)
            self._managers[session_id] = manager
            logger.info("Created context for session %s", session_id)
        return manager

    def has_session(self, session_id: str) -> bool:
        return session_id in self._managers

    def session_ids(self) -> List[str]:
        return list(self._managers)

    async def append(self, session_id: str, message: Message) -> Message:
        """Append a message; with auto-compaction on, react to the threshold reached.

        Observer failures from the append and from any compaction or
        summarization it triggered end up in ``last_observer_failures``.
        """
        async with self._lock(session_id):
            manager = self.get_manager(session_id)
            stored = manager.append(message)
            if self._auto_compact:
                failures = list(manager.last_observer_failures)
                failures.extend(await asyncio.to_thread(self._apply_policy, manager))
                manager.last_observer_failures = failures
            return stored

    async def compact(self, session_id: str, strategy: CompactionStrategy) -> int:
        async with self._lock(session_id):
            return self.get_manager(session_id).compact(strategy)

    async def summarize(
        self, session_id: str, schema: SummarySchema | None = None
    ) -> ConversationSummary:
        """Summarize in a worker thread; strategies may block on network calls."""
        async with self._lock(session_id):
            manager = self.get_manager(session_id)
            return await asyncio.to_thread(manager.summarize, schema)

    async def get_context(self, session_id: str) -> ConversationContext | None:
        """Snapshot for session_id, or None if the session does not exist."""
        async with self._lock(session_id):
            manager = self._managers.get(session_id)
            return manager.get_context() if manager is not None else None

    async def get_log_context(self, session_id: str) -> Dict[str, Any] | None:
        async with self._lock(session_id):
            manager = self._managers.get(session_id)
            return manager.get_log_context() if manager is not None else None

    async def end_session(self, session_id: str) -> bool:
        """Discard the session's state. Returns True if it existed."""
        async with self._lock(session_id):
            existed = self._managers.pop(session_id, None) is not None
        self._locks.pop(session_id, None)
        if existed:
            logger.info("Ended session %s", session_id)
        return existed

    def _apply_policy(self, manager: SimpleContextManager) -> List[ObserverFailure]:
        """Compact (and summarize) for the current level. Returns observer failures."""
        level = manager.threshold_level
        strategy = AUTO_COMPACT_POLICY.get(level)
        if strategy is None:
            return []
        removed = manager.compact(strategy)
        failures = list(manager.last_observer_failures)
        logger.info(
            "Auto-compacted session %s at %s threshold: removed %s messages",
            manager.session_id,
            level.value,
            removed,
        )
        if level.severity >= ThresholdLevel.SUMMARIZATION.severity:
            try:
                manager.summarize()
            except SummarizationFailed as e:
                logger.warning(
                    "Auto-summarization failed for session %s: %s",
                    manager.session_id,
                    e,
                )
            else:
                failures.extend(manager.last_observer_failures)
        return failures


def get_session_service() -> SessionService:
    """Return the process-wide session service, built from settings on first use."""
    global _session_service_instance
    if _session_service_instance is None:
        settings = get_settings()
        _session_service_instance = SessionService(
            manager_factory=build_manager_factory(settings),
            auto_compact=settings.auto_compact,
        )
    return _session_service_instance


def reset_session_service() -> None:
    """Drop all sessions and the cached service."""
    global _session_service_instance
    _session_service_instance = None


_session_service_instance: SessionService | None = None
