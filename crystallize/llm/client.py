"""Async Claude API client for search-grounded answers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from crystallize.config import settings
from crystallize.conversation.models import Answer, Citation, Speaker
from crystallize.errors import ServiceFailure
from crystallize.llm.models import ModelManager, ModelRole
from crystallize.llm.prompt import build_system_prompt

if TYPE_CHECKING:
    from collections.abc import Sequence

    from crystallize.conversation.models import HistoryEntry

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def _web_search_tool() -> dict[str, Any]:
    return {
        "type": "web_search_20250305",
        "name": "web_search",
        "max_uses": settings.web_search_max_uses,
    }


def to_api_messages(history: Sequence[HistoryEntry], query: str) -> list[dict[str, str]]:
    """Format prior turns plus the new query for the Claude API.

    Empty turns are skipped and the list always starts with a user message
    (a leading greeting from the assistant is dropped).
    """
    messages: list[dict[str, str]] = []
    for entry in history:
        if not entry.text.strip():
            continue
        role = "user" if entry.speaker == Speaker.USER else "assistant"
        if not messages and role != "user":
            continue
        messages.append({"role": role, "content": entry.text})
    messages.append({"role": "user", "content": query})
    return messages


def collect_answer(content: list[Any]) -> Answer:
    """Turn response content blocks into answer text plus citations.

    Sources the text actually cites come first, followed by the remaining
    search results, de-duplicated by uri in first-seen order.
    """
    parts: list[str] = []
    cited: list[tuple[str, str | None]] = []
    searched: list[tuple[str, str | None]] = []

    for block in content:
        if block.type == "text":
            parts.append(block.text)
            for ref in getattr(block, "citations", None) or []:
                url = getattr(ref, "url", None)
                if url:
                    cited.append((url, getattr(ref, "title", None)))
        elif block.type == "web_search_tool_result":
            results = getattr(block, "content", None)
            # An error result carries an error_code instead of a list.
            if not isinstance(results, list):
                logger.warning(
                    "Web search failed: %s", getattr(results, "error_code", "unknown")
                )
                continue
            for result in results:
                url = getattr(result, "url", None)
                if url:
                    searched.append((url, getattr(result, "title", None)))

    seen: set[str] = set()
    citations: list[Citation] = []
    for url, title in cited + searched:
        if url in seen:
            continue
        seen.add(url)
        citations.append(Citation.from_source(url, title))

    return Answer(text="".join(parts).strip(), citations=citations)


async def answer_query(
    query: str,
    history: Sequence[HistoryEntry],
    user_label: str,
    *,
    model: str | None = None,
) -> Answer:
    """Answer *query* with web-search grounding.

    A long-running search can end a response with ``stop_reason ==
    "pause_turn"``. The paused content is sent back as the assistant turn so
    the model resumes it, up to ``settings.max_search_continuations`` times.
    The answer is built from the content of every round.

    Args:
        query: The new user question.
        history: Prior completed turns, oldest first.
        user_label: The user's nickname, used to personalise tone.
        model: Override the active chat model.

    Returns:
        The answer text and the sources it was grounded on.

    Raises:
        ServiceFailure: On any transport, auth or model error, or when the
            turn is still paused after the last continuation. No partial
            result is returned.
    """
    client = _get_client()
    model = model or ModelManager.get().model_for(ModelRole.CHAT)
    system = build_system_prompt(user_label)
    messages: list[dict[str, Any]] = list(to_api_messages(history, query))
    content: list[Any] = []

    for round_num in range(settings.max_search_continuations + 1):
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=settings.max_tokens,
                system=system,
                messages=messages,
                tools=[_web_search_tool()],
            )
        except anthropic.APIError as exc:
            logger.warning("Answer call failed: %s", exc)
            raise ServiceFailure("The research backend could not answer") from exc

        content.extend(response.content)
        if response.stop_reason != "pause_turn":
            break

        logger.info("Search paused the turn (round %d), continuing", round_num + 1)
        messages = [*messages, {"role": "assistant", "content": response.content}]
    else:
        logger.warning(
            "Turn still paused after %d continuations", settings.max_search_continuations
        )
        raise ServiceFailure("The research backend did not finish answering")

    answer = collect_answer(content)
    logger.info(
        "Answered %r with %d chars and %d citations",
        query[:80],
        len(answer.text),
        len(answer.citations),
    )
    return answer
