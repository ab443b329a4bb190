"""System prompt assembly for the research and extraction calls."""

import logging
import zoneinfo
from datetime import datetime
from pathlib import Path

from crystallize.config import settings

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"

DEFAULT_PERSONA = (
    "You are Crystallize AI, an intelligent research assistant. "
    "Provide comprehensive, fact-based answers grounded in web search."
)

DEFAULT_RULES = (
    "Crystallize the given text into a knowledge entry with a title, a 2-3 "
    "sentence summary, 5-7 keywords and a broad category. "
    "Record it with the record_crystal tool."
)


def _read_config(filename: str) -> str:
    """Read a config markdown file, returning empty string if missing."""
    path = CONFIG_DIR / filename
    if path.exists():
        return path.read_text(encoding="utf-8")
    return ""


def build_system_prompt(user_label: str) -> list[dict]:
    """Assemble the research system prompt.

    The persona block is addressed to ``user_label`` (tone only) and carries
    ``cache_control`` so repeated questions in a session reuse it. The
    current time is a separate, uncached block.

    Args:
        user_label: The active identity's nickname.

    Returns:
        List of content blocks for the Claude ``system`` parameter.
    """
    persona = _read_config("PERSONA.md") or DEFAULT_PERSONA
    address = (
        f'You are talking to "{user_label}". Be friendly, professional, '
        "and address them by name occasionally."
    )

    tz = zoneinfo.ZoneInfo(settings.timezone)
    now = datetime.now(tz)
    time_text = (
        f"Current time: {now.strftime('%A, %B %d, %Y %I:%M %p %Z')} "
        f"({settings.timezone})"
    )

    return [
        {
            "type": "text",
            "text": f"{persona.strip()}\n\n{address}",
            "cache_control": {"type": "ephemeral"},
        },
        {
            "type": "text",
            "text": time_text,
        },
    ]


def build_extraction_system() -> str:
    """Instructions for the extraction model."""
    return _read_config("CRYSTALLIZE_RULES.md") or DEFAULT_RULES


def build_extraction_prompt(source_text: str, context: str) -> str:
    """Build the user-message content sent to the extraction model."""
    return (
        f"<text>\n{source_text}\n</text>\n\n"
        f"<context>\n{context}\n</context>\n\n"
        f"Crystallize the text above into a structured knowledge entry."
    )
