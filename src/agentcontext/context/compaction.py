"""
Compaction of the message log.

Each strategy maps to a keep window: the number of most recent messages
retained verbatim. System messages are always retained wherever they sit in
the log. The surviving messages keep their original relative order and the
running cost is recomputed from the kept set.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from ..models import CompactionStrategy, Message, MessageRole
from .store import MessageStore

logger = logging.getLogger(__name__)

DEFAULT_KEEP_WINDOWS: Dict[CompactionStrategy, int] = {
    CompactionStrategy.AGGRESSIVE: 5,
    CompactionStrategy.BALANCED: 10,
    CompactionStrategy.CONSERVATIVE: 20,
}


def select_kept(messages: Sequence[Message], keep_window: int) -> List[Message]:
    """System messages plus the last ``keep_window`` messages, in log order."""
    if keep_window < 0:
        raise ValueError("keep_window must be non-negative")
    cutoff = max(len(messages) - keep_window, 0)
    return [
        msg
        for index, msg in enumerate(messages)
        if index >= cutoff or msg.role == MessageRole.SYSTEM.value
    ]


class CompactionEngine:
    """Applies a compaction strategy to a MessageStore."""

    def __init__(self, keep_windows: Optional[Mapping[CompactionStrategy, int]] = None) -> None:
        windows = dict(DEFAULT_KEEP_WINDOWS)
        if keep_windows:
            windows.update({CompactionStrategy(k): v for k, v in keep_windows.items()})
        self.keep_windows = windows

    def keep_window(self, strategy: CompactionStrategy) -> int:
        return self.keep_windows[CompactionStrategy(strategy)]

    def compact(self, store: MessageStore, strategy: CompactionStrategy) -> int:
        """Drop older non-system messages. Returns the number removed."""
        window = self.keep_window(strategy)
        messages = store.messages
        if len(messages) <= window:
            return 0

        kept = select_kept(messages, window)
        if len(kept) == len(messages):
            return 0

        before = store.token_count
        removed = store.retain(kept)
        logger.info(
            "Compacted %s messages with %s strategy (kept=%s, tokens %s -> %s)",
            removed,
            CompactionStrategy(strategy).value,
            len(kept),
            before,
            store.token_count,
        )
        return removed
