import sys
from pathlib import Path

import pytest


_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from agentcontext.context.manager import SimpleContextManager  # noqa: E402
from agentcontext.models import ContextThresholds  # noqa: E402
from agentcontext.settings import reset_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Each test reads settings from its own environment."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def thresholds() -> ContextThresholds:
    """Small watermarks so a few short messages cross them."""
    return ContextThresholds(
        compaction_trigger=100,
        summarization_trigger=200,
        rot_threshold=300,
        hard_limit=400,
        preserve_recent_tool_calls=2,
    )


@pytest.fixture
def manager(thresholds: ContextThresholds) -> SimpleContextManager:
    return SimpleContextManager("session-1", thresholds)
