from dataclasses import fields

import pytest

from agentcontext.context.errors import SummarizationFailed
from agentcontext.context.summarization import (
    HeuristicSummaryStrategy,
    SummarizationEngine,
    apply_schema,
)
from agentcontext.models import (
    ConversationContext,
    ConversationSummary,
    Message,
    SummarySchema,
    ToolCallRecord,
)


def _context(*messages: Message, tool_calls=()) -> ConversationContext:
    return ConversationContext(
        session_id="s1", messages=list(messages), tool_calls=list(tool_calls)
    )


def test_goal_is_first_user_message_truncated() -> None:
    ctx = _context(
        Message(role="system", content="be helpful"),
        Message(role="user", content="g" * 300),
        Message(role="user", content="second ask"),
    )
    summary = HeuristicSummaryStrategy().generate(ctx, SummarySchema())
    assert summary.user_goal == "g" * 200


def test_stop_point_describes_last_message() -> None:
    ctx = _context(
        Message(role="user", content="fix the bug"),
        Message(role="assistant", content="patched parser.py"),
    )
    summary = HeuristicSummaryStrategy().generate(ctx, SummarySchema())
    assert summary.last_stop_point == "Last message from assistant: patched parser.py..."


def test_stop_point_for_empty_log() -> None:
    summary = HeuristicSummaryStrategy().generate(_context(), SummarySchema())
    assert summary.last_stop_point == "No messages"
    assert summary.user_goal == ""


def test_modified_files_from_file_writing_tools() -> None:
    calls = [
        ToolCallRecord(id="1", tool="write_file", input={"full": {"path": "a.py"}, "compact": {}}),
        ToolCallRecord(id="2", tool="read_file", input={"full": {"path": "b.py"}, "compact": {}}),
        ToolCallRecord(
            id="3", tool="edit_file", input={"full": {"file_path": "c.py"}, "compact": {}}
        ),
        ToolCallRecord(id="4", tool="write_file", input={"full": {"path": "a.py"}, "compact": {}}),
    ]
    summary = HeuristicSummaryStrategy().generate(_context(tool_calls=calls), SummarySchema())
    assert summary.modified_files == ["a.py", "c.py"]


def test_heuristic_is_deterministic() -> None:
    ctx = _context(Message(role="user", content="goal"), Message(role="assistant", content="ok"))
    strategy = HeuristicSummaryStrategy()
    assert strategy.generate(ctx, SummarySchema()) == strategy.generate(ctx, SummarySchema())


def test_all_flags_false_gives_full_empty_shape() -> None:
    """Every field is present and empty when the schema disables all of them."""
    ctx = _context(Message(role="user", content="goal"))
    summary = SummarizationEngine(HeuristicSummaryStrategy()).summarize(ctx, SummarySchema.none())
    assert {f.name for f in fields(summary)} == {
        "modified_files",
        "user_goal",
        "last_stop_point",
        "key_decisions",
        "unresolved_issues",
        "next_steps",
    }
    assert summary == ConversationSummary()


def test_engine_masks_fields_a_strategy_fills_anyway() -> None:
    class Chatty:
        def generate(self, context, schema):
            return ConversationSummary(
                modified_files=["x"],
                user_goal="goal",
                last_stop_point="stop",
                key_decisions=["d"],
                unresolved_issues=["i"],
                next_steps=["n"],
            )

    schema = SummarySchema(
        include_modified_files=False,
        include_user_goal=True,
        include_last_stop_point=False,
        include_key_decisions=True,
        include_unresolved_issues=False,
        include_next_steps=True,
    )
    summary = SummarizationEngine(Chatty()).summarize(_context(), schema)
    assert summary == ConversationSummary(
        user_goal="goal", key_decisions=["d"], next_steps=["n"]
    )


def test_engine_wraps_strategy_errors() -> None:
    class Broken:
        def generate(self, context, schema):
            raise RuntimeError("model unavailable")

    with pytest.raises(SummarizationFailed, match="model unavailable"):
        SummarizationEngine(Broken()).summarize(_context(), SummarySchema())


def test_engine_rejects_wrong_return_type() -> None:
    class Wrong:
        def generate(self, context, schema):
            return {"user_goal": "x"}

    with pytest.raises(SummarizationFailed):
        SummarizationEngine(Wrong()).summarize(_context(), SummarySchema())


def test_apply_schema_copies_lists() -> None:
    original = ConversationSummary(next_steps=["a"])
    masked = apply_schema(original, SummarySchema())
    masked.next_steps.append("b")
    assert original.next_steps == ["a"]
