"""Context management for agent sessions.

Tracks the message log of a session, its approximate token cost and the
configured watermarks, and exposes compaction, summarization and lifecycle
hooks to the agent loop.
"""

from .compaction import DEFAULT_KEEP_WINDOWS, CompactionEngine, select_kept
from .errors import ContextError, InvalidMessage, ObserverFailure, SummarizationFailed
from .estimator import CharacterEstimator, TokenEstimator, estimate_tokens
from .hooks import ContextHooks, HookDispatcher, HookEvent
from .manager import ContextManager, SimpleContextManager
from .store import MessageStore
from .summarization import (
    HeuristicSummaryStrategy,
    SummarizationEngine,
    SummaryStrategy,
    apply_schema,
)
from .thresholds import ThresholdMonitor

__all__ = [
    "DEFAULT_KEEP_WINDOWS",
    "CharacterEstimator",
    "CompactionEngine",
    "ContextError",
    "ContextHooks",
    "ContextManager",
    "HeuristicSummaryStrategy",
    "HookDispatcher",
    "HookEvent",
    "InvalidMessage",
    "MessageStore",
    "ObserverFailure",
    "SimpleContextManager",
    "SummarizationEngine",
    "SummarizationFailed",
    "SummaryStrategy",
    "ThresholdMonitor",
    "TokenEstimator",
    "apply_schema",
    "estimate_tokens",
    "select_kept",
]
