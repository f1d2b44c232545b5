import copy
import logging
import uuid
from dataclasses import replace
from typing import List, Optional, Sequence, Set, Tuple

from ..models import Message, MessageRole, ToolCallRecord
from .errors import InvalidMessage
from .estimator import TokenEstimator, estimate_tokens

logger = logging.getLogger(__name__)

_VALID_ROLES = {role.value for role in MessageRole}


def _tail(items: Sequence, n: int) -> list:
    if n < 0:
        raise ValueError("n must be non-negative")
    if n == 0:
        return []
    return list(items[-n:])


class MessageStore:
    """Ordered, append-only log of messages and the tool calls they carry.

    The store owns the running cost counter. It is incremented on append and
    recomputed in full whenever messages are removed.
    """

    def __init__(
        self,
        estimator: TokenEstimator = estimate_tokens,
        preserve_recent_tool_calls: int = 5,
    ) -> None:
        self._estimator = estimator
        self._preserve_recent_tool_calls = preserve_recent_tool_calls
        self._messages: List[Message] = []
        self._tool_calls: List[ToolCallRecord] = []
        # every id used in the session, including compacted-away messages
        self._ids: Set[str] = set()
        self._token_count = 0
        self._clock = 0

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def token_count(self) -> int:
        return self._token_count

    @property
    def clock(self) -> int:
        return self._clock

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def tool_calls(self) -> Tuple[ToolCallRecord, ...]:
        return tuple(self._tool_calls)

    def _new_id(self) -> str:
        while True:
            candidate = f"msg-{uuid.uuid4().hex[:12]}"
            if candidate not in self._ids:
                return candidate

    def _validate(self, message: Message) -> str:
        role = message.role.value if isinstance(message.role, MessageRole) else message.role
        if role not in _VALID_ROLES:
            raise InvalidMessage(f"invalid role: {message.role!r}")
        if not isinstance(message.content, str):
            raise InvalidMessage("message content is required and must be a string")
        if message.id and message.id in self._ids:
            raise InvalidMessage(f"duplicate message id: {message.id}")
        if message.timestamp is not None and message.timestamp < self._clock:
            raise InvalidMessage(
                f"timestamp {message.timestamp} is earlier than the session clock {self._clock}"
            )
        if message.tool_call is not None and not isinstance(message.tool_call, ToolCallRecord):
            raise InvalidMessage("tool_call must be a ToolCallRecord")
        return role

    def append(self, message: Message) -> Message:
        """Store a message, back-filling id and timestamp. Returns the stored message."""
        role = self._validate(message)
        cost = self._estimator(message.content)

        if message.timestamp is None:
            timestamp = self._clock + 1
        else:
            timestamp = message.timestamp
        stored = replace(
            message,
            role=role,
            id=message.id or self._new_id(),
            timestamp=timestamp,
        )

        self._messages.append(stored)
        self._ids.add(stored.id)
        self._clock = max(self._clock, timestamp)
        self._token_count += cost
        if role == MessageRole.TOOL.value and stored.tool_call is not None:
            self._tool_calls.append(stored.tool_call)

        logger.debug(
            "Stored message %s role=%s cost=%s total=%s",
            stored.id,
            role,
            cost,
            self._token_count,
        )
        return stored

    def retain(self, kept: Sequence[Message]) -> int:
        """Replace the message log with ``kept`` and recompute cost. Returns removed count.

        Ids of removed messages stay reserved for the rest of the session.
        """
        original = len(self._messages)
        self._messages = list(kept)
        self.recompute_cost()
        return original - len(self._messages)

    def recompute_cost(self) -> int:
        self._token_count = sum(self._estimator(m.content) for m in self._messages)
        return self._token_count

    def recent_messages(self, n: int) -> List[Message]:
        """Last ``n`` messages in original order."""
        return copy.deepcopy(_tail(self._messages, n))

    def recent_tool_calls(self, n: Optional[int] = None) -> List[ToolCallRecord]:
        """Last ``n`` tool calls, defaulting to the configured preserve count."""
        if n is None:
            n = self._preserve_recent_tool_calls
        return copy.deepcopy(_tail(self._tool_calls, n))

    def snapshot(self) -> Tuple[List[Message], List[ToolCallRecord], int]:
        """Deep copies of messages and tool calls plus the running cost."""
        return (
            copy.deepcopy(self._messages),
            copy.deepcopy(self._tool_calls),
            self._token_count,
        )
