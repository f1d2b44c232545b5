import json
import logging
import re
from typing import Any, Dict, List

from openai import OpenAI, OpenAIError

from ..context.errors import SummarizationFailed
from ..context.summarization import HeuristicSummaryStrategy, SummaryStrategy
from ..models import ConversationContext, ConversationSummary, SummarySchema
from ..settings import Settings, get_settings

logger = logging.getLogger(__name__)

_LIST_FIELDS = ("modified_files", "key_decisions", "unresolved_issues", "next_steps")
_TEXT_FIELDS = ("user_goal", "last_stop_point")


def _make_summary_client(settings: Settings) -> OpenAI:
    """Construct an OpenAI client for summary calls (uses summary_* settings and timeout)."""
    return OpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.summary_request_timeout_seconds,
    )


def format_transcript(context: ConversationContext, max_chars: int = 2000) -> str:
    """Render messages and tool calls as plain text, one line per entry."""
    lines: List[str] = []
    for msg in context.messages:
        text = msg.content
        if len(text) > max_chars:
            text = text[:max_chars] + "... [truncated]"
        lines.append(f"{msg.role.upper()}: {text}")
        if msg.tool_call is not None:
            call = msg.tool_call
            output = call.output.get("compact") or call.output.get("full") or ""
            lines.append(f"  TOOL[{call.tool}]: {output[:500] or '[result]'}")
    return "\n".join(lines)


def _requested_fields(schema: SummarySchema) -> List[str]:
    flags = {
        "modified_files": schema.include_modified_files,
        "user_goal": schema.include_user_goal,
        "last_stop_point": schema.include_last_stop_point,
        "key_decisions": schema.include_key_decisions,
        "unresolved_issues": schema.include_unresolved_issues,
        "next_steps": schema.include_next_steps,
    }
    return [name for name, enabled in flags.items() if enabled]


def parse_summary(content: str) -> ConversationSummary:
    """Map the first JSON object in a model reply onto ConversationSummary."""
    json_match = re.search(r"\{.*\}", content, re.DOTALL)
    if not json_match:
        raise SummarizationFailed("summary response contained no JSON object")
    try:
        data: Dict[str, Any] = json.loads(json_match.group(0))
    except json.JSONDecodeError as e:
        raise SummarizationFailed(f"summary response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SummarizationFailed("summary response JSON is not an object")

    summary = ConversationSummary()
    for name in _TEXT_FIELDS:
        value = data.get(name) or ""
        setattr(summary, name, str(value))
    for name in _LIST_FIELDS:
        value = data.get(name) or []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise SummarizationFailed(f"summary field {name} must be a list")
        setattr(summary, name, [str(item) for item in value])
    return summary


class OpenAISummaryStrategy:
    """Asks a chat model for a JSON summary of the session.

    Uses temperature 0 so repeated calls on the same state stay as stable as
    the provider allows.
    """

    def __init__(
        self,
        client: OpenAI,
        model: str,
        system_prompt: str,
        transcript_chars: int = 2000,
    ) -> None:
        self._client = client
        self._model = model
        self._system_prompt = system_prompt
        self._transcript_chars = transcript_chars

    def generate(
        self, context: ConversationContext, schema: SummarySchema
    ) -> ConversationSummary:
        fields = _requested_fields(schema)
        if not fields:
            return ConversationSummary()

        transcript = format_transcript(context, self._transcript_chars)
        logger.debug(
            "Requesting summary for %s (%s messages, fields=%s)",
            context.session_id,
            len(context.messages),
            ",".join(fields),
        )
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": self._system_prompt},
                    {
                        "role": "user",
                        "content": (
                            f"Fill these keys: {', '.join(fields)}.\n\n"
                            f"--- Conversation ---\n{transcript}"
                        ),
                    },
                ],
                temperature=0.0,
            )
        except (OpenAIError, TimeoutError, ConnectionError) as e:
            logger.error("Summary request failed: %s", e)
            raise SummarizationFailed(f"summary request failed: {e}") from e

        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, KeyError, IndexError) as e:
            logger.error("Summary response parse failed: %s", e)
            raise SummarizationFailed(f"unexpected summary response: {e}") from e
        return parse_summary(content)


def build_summary_strategy(settings: Settings | None = None) -> SummaryStrategy:
    """Return the summary strategy selected by ``settings.summarizer``."""
    settings = settings or get_settings()
    if settings.summarizer == "openai":
        return OpenAISummaryStrategy(
            client=_make_summary_client(settings),
            model=settings.summary_model,
            system_prompt=settings.summarize_state_system_prompt,
            transcript_chars=settings.summary_transcript_chars,
        )
    return HeuristicSummaryStrategy(
        goal_preview_chars=settings.summary_goal_preview_chars,
        stop_point_preview_chars=settings.summary_stop_point_preview_chars,
    )
