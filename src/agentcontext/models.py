from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class CompactionStrategy(str, Enum):
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"


class ThresholdLevel(str, Enum):
    """Watermark levels in increasing order of severity."""

    NONE = "none"
    COMPACTION = "compaction"
    SUMMARIZATION = "summarization"
    ROT = "rot"
    HARD = "hard"

    @property
    def severity(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [
    ThresholdLevel.NONE,
    ThresholdLevel.COMPACTION,
    ThresholdLevel.SUMMARIZATION,
    ThresholdLevel.ROT,
    ThresholdLevel.HARD,
]


@dataclass(frozen=True)
class ToolCallRecord:
    """A single tool invocation carried by a tool message."""

    id: str
    tool: str
    input: Dict[str, Dict[str, Any]] = field(
        default_factory=lambda: {"full": {}, "compact": {}}
    )
    output: Dict[str, str] = field(default_factory=lambda: {"full": "", "compact": ""})
    timestamp: int = 0


@dataclass(frozen=True)
class Message:
    """A conversation message. id and timestamp are back-filled on append."""

    role: str
    content: str
    id: Optional[str] = None
    timestamp: Optional[int] = None
    tool_call: Optional[ToolCallRecord] = None


@dataclass
class SummarySchema:
    """Which summary fields to populate."""

    include_modified_files: bool = True
    include_user_goal: bool = True
    include_last_stop_point: bool = True
    include_key_decisions: bool = True
    include_unresolved_issues: bool = True
    include_next_steps: bool = True

    @classmethod
    def none(cls) -> "SummarySchema":
        return cls(
            include_modified_files=False,
            include_user_goal=False,
            include_last_stop_point=False,
            include_key_decisions=False,
            include_unresolved_issues=False,
            include_next_steps=False,
        )


@dataclass
class ConversationSummary:
    """Structured snapshot of the conversation. Disabled fields stay empty."""

    modified_files: List[str] = field(default_factory=list)
    user_goal: str = ""
    last_stop_point: str = ""
    key_decisions: List[str] = field(default_factory=list)
    unresolved_issues: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ContextThresholds:
    """Running-cost watermarks plus the recent tool-call window."""

    compaction_trigger: int = 128_000
    summarization_trigger: int = 150_000
    rot_threshold: int = 200_000
    hard_limit: int = 1_000_000
    preserve_recent_tool_calls: int = 5


@dataclass
class ConversationContext:
    """Independent copy of a session's state, as handed to the agent loop."""

    session_id: str
    messages: List[Message] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    token_count: int = 0
    summary: Optional[ConversationSummary] = None
