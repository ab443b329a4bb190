"""Knowledge extraction — distill answer text into a validated payload.

The extraction model is forced to call a ``record_crystal`` tool whose input
schema is the payload schema. The tool input is still treated as untrusted:
it is validated strictly before anything is built from it.
"""

import json
import logging
from typing import Any

import anthropic
from pydantic import ValidationError

from crystallize.config import settings
from crystallize.errors import ExtractionFailure
from crystallize.knowledge.models import ExtractionPayload
from crystallize.llm.models import ModelManager, ModelRole
from crystallize.llm.prompt import build_extraction_prompt, build_extraction_system

logger = logging.getLogger(__name__)

_extraction_client: anthropic.AsyncAnthropic | None = None


def _get_extraction_client() -> anthropic.AsyncAnthropic:
    global _extraction_client  # noqa: PLW0603
    if _extraction_client is None:
        _extraction_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _extraction_client


RECORD_TOOL = "record_crystal"

RECORD_TOOL_SCHEMA: dict[str, Any] = {
    "name": RECORD_TOOL,
    "description": "Record a crystallized knowledge entry.",
    "input_schema": {
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "A concise title for this knowledge nugget",
            },
            "summary": {
                "type": "string",
                "description": "The crystallized insight (2-3 sentences)",
            },
            "keywords": {
                "type": "array",
                "items": {"type": "string"},
                "description": "5-7 important keywords/tags",
            },
            "category": {
                "type": "string",
                "description": "General domain (e.g., Technology, Health, History)",
            },
        },
        "required": ["title", "summary", "keywords", "category"],
    },
}


# -- Parsing -----------------------------------------------------------------


def _json_from_text(text: str) -> Any:
    """Parse a JSON object from model text, tolerating markdown fences."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                pass
    return None


def find_payload(content: list[Any]) -> Any:
    """Locate the raw payload in response content blocks.

    Prefers the ``record_crystal`` tool input; falls back to a JSON object
    in a text block. Returns None when neither is present.
    """
    for block in content:
        if block.type == "tool_use" and block.name == RECORD_TOOL:
            return block.input

    for block in content:
        if block.type == "text" and block.text.strip():
            data = _json_from_text(block.text)
            if data is not None:
                return data
    return None


def parse_payload(raw: Any) -> ExtractionPayload:
    """Validate a raw payload against the extraction schema.

    Raises:
        ExtractionFailure: If *raw* is missing, not an object, lacks a
            required field, or has a field of the wrong shape.
    """
    if raw is None:
        raise ExtractionFailure("No payload returned from crystallization")
    if not isinstance(raw, dict):
        raise ExtractionFailure(f"Payload is {type(raw).__name__}, expected an object")
    try:
        return ExtractionPayload.model_validate(raw)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ExtractionFailure(f"Payload failed validation: {fields}") from exc


# -- Main pipeline -----------------------------------------------------------


async def extract_knowledge(
    source_text: str,
    context: str,
    *,
    model: str | None = None,
) -> ExtractionPayload:
    """Distill *source_text* into a structured knowledge payload.

    Args:
        source_text: The answer text to crystallize.
        context: The question that produced it, or a default label.
        model: Override the active extraction model.

    Raises:
        ExtractionFailure: If the remote call errors, nothing usable comes
            back, or the payload fails validation.
    """
    client = _get_extraction_client()
    try:
        response = await client.messages.create(
            model=model or ModelManager.get().model_for(ModelRole.EXTRACTION),
            max_tokens=1024,
            system=build_extraction_system(),
            messages=[
                {"role": "user", "content": build_extraction_prompt(source_text, context)}
            ],
            tools=[RECORD_TOOL_SCHEMA],
            tool_choice={"type": "tool", "name": RECORD_TOOL},
        )
    except anthropic.APIError as exc:
        logger.warning("Extraction call failed: %s", exc)
        raise ExtractionFailure("The extraction backend could not be reached") from exc

    payload = parse_payload(find_payload(response.content))
    logger.info("Extracted crystal %r (%s)", payload.title[:80], payload.category)
    return payload
