"""
Structured summaries of a conversation.

Generation is delegated to a ``SummaryStrategy``. The engine hands the
strategy an independent snapshot, masks every field the schema disables and
turns any strategy error into ``SummarizationFailed``.
"""

import logging
from typing import List, Protocol

from ..models import ConversationContext, ConversationSummary, MessageRole, SummarySchema
from .errors import SummarizationFailed

logger = logging.getLogger(__name__)

GOAL_PREVIEW_CHARS = 200
STOP_POINT_PREVIEW_CHARS = 100

FILE_WRITING_TOOLS = frozenset(
    {"write_file", "edit_file", "create_file", "apply_patch", "str_replace", "write", "edit"}
)
_PATH_KEYS = ("path", "file_path", "filename")


class SummaryStrategy(Protocol):
    """Produces a summary from a read-only view of the conversation."""

    def generate(
        self, context: ConversationContext, schema: SummarySchema
    ) -> ConversationSummary: ...


def apply_schema(summary: ConversationSummary, schema: SummarySchema) -> ConversationSummary:
    """Return a copy of ``summary`` with disabled fields emptied."""
    return ConversationSummary(
        modified_files=list(summary.modified_files) if schema.include_modified_files else [],
        user_goal=summary.user_goal if schema.include_user_goal else "",
        last_stop_point=summary.last_stop_point if schema.include_last_stop_point else "",
        key_decisions=list(summary.key_decisions) if schema.include_key_decisions else [],
        unresolved_issues=(
            list(summary.unresolved_issues) if schema.include_unresolved_issues else []
        ),
        next_steps=list(summary.next_steps) if schema.include_next_steps else [],
    )


class HeuristicSummaryStrategy:
    """Extracts what it can from the log without calling a model.

    The goal is the first user message and the stopping point the last
    message, both truncated. Modified files come from file-writing tool
    calls. Decisions, issues and next steps are left empty.
    """

    def __init__(
        self,
        goal_preview_chars: int = GOAL_PREVIEW_CHARS,
        stop_point_preview_chars: int = STOP_POINT_PREVIEW_CHARS,
    ) -> None:
        self.goal_preview_chars = goal_preview_chars
        self.stop_point_preview_chars = stop_point_preview_chars

    def generate(
        self, context: ConversationContext, schema: SummarySchema
    ) -> ConversationSummary:
        summary = ConversationSummary()

        if schema.include_user_goal:
            first_user = next(
                (m for m in context.messages if m.role == MessageRole.USER.value), None
            )
            if first_user is not None:
                summary.user_goal = first_user.content[: self.goal_preview_chars]

        if schema.include_last_stop_point:
            if context.messages:
                last = context.messages[-1]
                preview = last.content[: self.stop_point_preview_chars]
                summary.last_stop_point = f"Last message from {last.role}: {preview}..."
            else:
                summary.last_stop_point = "No messages"

        if schema.include_modified_files:
            summary.modified_files = self._modified_files(context)

        return summary

    @staticmethod
    def _modified_files(context: ConversationContext) -> List[str]:
        files: List[str] = []
        for call in context.tool_calls:
            if call.tool not in FILE_WRITING_TOOLS:
                continue
            arguments = call.input.get("full") or {}
            for key in _PATH_KEYS:
                value = arguments.get(key)
                if isinstance(value, str) and value and value not in files:
                    files.append(value)
                    break
        return files


class SummarizationEngine:
    """Runs a strategy and enforces the schema on its output."""

    def __init__(self, strategy: SummaryStrategy) -> None:
        self.strategy = strategy

    def summarize(
        self, context: ConversationContext, schema: SummarySchema
    ) -> ConversationSummary:
        try:
            generated = self.strategy.generate(context, schema)
        except SummarizationFailed:
            raise
        except Exception as e:
            logger.warning("Summary strategy %s failed: %s", type(self.strategy).__name__, e)
            raise SummarizationFailed(str(e)) from e

        if not isinstance(generated, ConversationSummary):
            raise SummarizationFailed(
                f"summary strategy returned {type(generated).__name__}, "
                "expected ConversationSummary"
            )
        return apply_schema(generated, schema)
