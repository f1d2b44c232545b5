import pytest

from agentcontext.context.errors import InvalidMessage, SummarizationFailed
from agentcontext.context.estimator import estimate_tokens
from agentcontext.context.hooks import ContextHooks
from agentcontext.context.manager import SimpleContextManager
from agentcontext.models import (
    CompactionStrategy,
    ContextThresholds,
    ConversationSummary,
    Message,
    SummarySchema,
    ThresholdLevel,
    ToolCallRecord,
)


def _cost_matches(manager: SimpleContextManager) -> bool:
    context = manager.get_context()
    return context.token_count == sum(estimate_tokens(m.content) for m in context.messages)


def test_append_100_chars_adds_25(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="a" * 100))
    assert manager.token_count == 25


def test_cost_invariant_across_appends_and_compactions() -> None:
    manager = SimpleContextManager("s", ContextThresholds())
    for i in range(40):
        role = "system" if i % 13 == 0 else "user"
        manager.append(Message(role=role, content="x" * (i * 7 % 53)))
        assert _cost_matches(manager)
    for strategy in (
        CompactionStrategy.CONSERVATIVE,
        CompactionStrategy.BALANCED,
        CompactionStrategy.AGGRESSIVE,
    ):
        before = manager.message_count
        manager.compact(strategy)
        assert manager.message_count <= before
        assert _cost_matches(manager)


def test_append_never_decreases_count(manager: SimpleContextManager) -> None:
    for i in range(10):
        before = manager.message_count
        manager.append(Message(role="assistant", content=str(i)))
        assert manager.message_count == before + 1


def test_aggressive_compaction_of_thirty() -> None:
    manager = SimpleContextManager("s", ContextThresholds())
    for i in range(30):
        manager.append(Message(role="user", content=f"turn {i}"))
    assert manager.compact(CompactionStrategy.AGGRESSIVE) == 25
    assert manager.message_count == 5


@pytest.mark.parametrize("strategy", list(CompactionStrategy))
def test_system_messages_survive_every_strategy(strategy: CompactionStrategy) -> None:
    manager = SimpleContextManager("s", ContextThresholds())
    manager.append(Message(role="system", content="rules", id="sys-a"))
    for i in range(30):
        manager.append(Message(role="user", content=f"turn {i}"))
        if i == 12:
            manager.append(Message(role="system", content="more rules", id="sys-b"))
    manager.compact(strategy)
    ids = [m.id for m in manager.get_context().messages]
    assert {"sys-a", "sys-b"} <= set(ids)


def test_hard_threshold_reported_alone(manager: SimpleContextManager) -> None:
    """A single append crossing every watermark reports only HARD."""
    levels = []
    manager.hooks.on_threshold_reached(levels.append)
    manager.append(Message(role="user", content="z" * 2000))
    assert levels == [ThresholdLevel.HARD]


def test_threshold_refires_on_every_mutation(manager: SimpleContextManager) -> None:
    levels = []
    manager.hooks.on_threshold_reached(levels.append)
    manager.append(Message(role="user", content="a" * 440))
    manager.append(Message(role="user", content="b"))
    manager.compact(CompactionStrategy.CONSERVATIVE)
    assert levels == [ThresholdLevel.COMPACTION] * 3


def test_no_threshold_event_below_watermarks(manager: SimpleContextManager) -> None:
    levels = []
    manager.hooks.on_threshold_reached(levels.append)
    manager.append(Message(role="user", content="short"))
    assert levels == []
    assert manager.threshold_level is ThresholdLevel.NONE


def test_get_context_returns_independent_snapshots(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="hello"))
    manager.append(
        Message(role="tool", content="out", tool_call=ToolCallRecord(id="c1", tool="ls"))
    )
    first = manager.get_context()
    second = manager.get_context()
    assert first == second
    first.messages.clear()
    first.tool_calls.clear()
    assert len(second.messages) == 2
    assert manager.message_count == 2
    assert len(manager.get_context().tool_calls) == 1


def test_snapshot_not_affected_by_later_mutation(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="one"))
    snap = manager.snapshot()
    manager.append(Message(role="user", content="two"))
    assert [m.content for m in snap.messages] == ["one"]


def test_summarize_all_flags_false(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="goal"))
    summary = manager.summarize(SummarySchema.none())
    assert summary == ConversationSummary()
    assert manager.get_context().summary == ConversationSummary()


def test_summarize_replaces_previous_summary(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="first goal"))
    manager.summarize()
    manager.append(Message(role="assistant", content="done"))
    summary = manager.summarize()
    assert summary.last_stop_point.startswith("Last message from assistant: done")
    assert manager.get_context().summary == summary


def test_summarize_does_not_mutate_store(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="goal"))
    before = manager.get_context()
    manager.summarize()
    after = manager.get_context()
    assert after.messages == before.messages
    assert after.token_count == before.token_count


def test_failed_summarization_keeps_prior_summary(thresholds: ContextThresholds) -> None:
    class Flaky:
        def __init__(self):
            self.fail = False

        def generate(self, context, schema):
            if self.fail:
                raise RuntimeError("model timed out")
            return ConversationSummary(user_goal="ship it")

    strategy = Flaky()
    manager = SimpleContextManager("s", thresholds, summary_strategy=strategy)
    manager.append(Message(role="user", content="goal"))
    prior = manager.summarize()

    strategy.fail = True
    with pytest.raises(SummarizationFailed):
        manager.summarize()
    assert manager.get_context().summary == prior


def test_summary_absent_until_summarized(manager: SimpleContextManager) -> None:
    assert manager.get_context().summary is None
    assert manager.summary is None


def test_invalid_message_leaves_state_unchanged(manager: SimpleContextManager) -> None:
    added = []
    manager.hooks.on_message_added(added.append)
    manager.append(Message(role="user", content="ok"))
    with pytest.raises(InvalidMessage):
        manager.append(Message(role="robot", content="bad"))
    assert manager.message_count == 1
    assert len(added) == 1


def test_hooks_fire_for_each_operation(manager: SimpleContextManager) -> None:
    events = []
    manager.hooks.register_hooks(
        ContextHooks(
            on_message_added=lambda m: events.append(("added", m.content)),
            on_before_compact=lambda s: events.append(("before", s)),
            on_after_compact=lambda n: events.append(("after", n)),
            on_summarized=lambda s: events.append(("summarized", s.user_goal)),
        )
    )
    for i in range(7):
        manager.append(Message(role="user", content=f"m{i}"))
    manager.compact(CompactionStrategy.AGGRESSIVE)
    manager.summarize()

    assert events[:7] == [("added", f"m{i}") for i in range(7)]
    assert events[7:] == [
        ("before", CompactionStrategy.AGGRESSIVE),
        ("after", 2),
        ("summarized", "m2"),
    ]


def test_observer_failure_does_not_roll_back(manager: SimpleContextManager) -> None:
    def broken(message):
        raise ValueError("observer bug")

    manager.hooks.on_message_added(broken)
    stored = manager.append(Message(role="user", content="kept"))
    assert manager.message_count == 1
    assert stored.content == "kept"
    assert len(manager.last_observer_failures) == 1
    assert manager.last_observer_failures[0].event == "message_added"


def test_observer_failures_reset_per_operation(manager: SimpleContextManager) -> None:
    calls = {"n": 0}

    def fail_once(message):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("first only")

    manager.hooks.on_message_added(fail_once)
    manager.append(Message(role="user", content="a"))
    assert len(manager.last_observer_failures) == 1
    manager.append(Message(role="user", content="b"))
    assert manager.last_observer_failures == []


def test_compaction_runs_without_observers(manager: SimpleContextManager) -> None:
    for i in range(12):
        manager.append(Message(role="user", content=str(i)))
    assert manager.compact("aggressive") == 7


def test_hook_may_read_manager_reentrantly(manager: SimpleContextManager) -> None:
    counts = []
    manager.hooks.on_message_added(lambda m: counts.append(manager.get_context().token_count))
    manager.append(Message(role="user", content="a" * 8))
    assert counts == [2]


def test_observer_cannot_mutate_stored_summary(manager: SimpleContextManager) -> None:
    manager.hooks.on_summarized(lambda s: s.next_steps.append("tampered"))
    manager.append(Message(role="user", content="goal"))
    manager.summarize()
    assert manager.get_context().summary.next_steps == []


def test_recent_queries(manager: SimpleContextManager) -> None:
    for i in range(4):
        manager.append(
            Message(role="tool", content=str(i), tool_call=ToolCallRecord(id=f"c{i}", tool="t"))
        )
    assert [m.content for m in manager.recent_messages(2)] == ["2", "3"]
    assert [c.id for c in manager.recent_tool_calls()] == ["c2", "c3"]


def test_log_context(manager: SimpleContextManager) -> None:
    manager.append(Message(role="user", content="a" * 1000))
    assert manager.get_log_context() == {
        "session_id": "session-1",
        "message_count": 1,
        "token_count": 250,
        "threshold_status": {
            "compaction_triggered": True,
            "summarization_triggered": True,
            "rot_threshold_reached": False,
            "hard_limit_reached": False,
        },
    }
