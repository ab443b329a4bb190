"""Which Claude model serves each role, switchable at runtime from the console."""

import logging
from enum import StrEnum

from crystallize.config import settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-1-20250805",
}

# Full model string → friendly name
FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


class ModelRole(StrEnum):
    CHAT = "chat"
    EXTRACTION = "extraction"


# Used when the configured default is not a known model.
_FALLBACKS: dict[ModelRole, str] = {
    ModelRole.CHAT: "sonnet",
    ModelRole.EXTRACTION: "haiku",
}


def resolve_model(name_or_id: str) -> str | None:
    """Map a friendly name (case-insensitive) or full model ID to a full ID."""
    name = name_or_id.strip()
    if name.lower() in MODEL_MAP:
        return MODEL_MAP[name.lower()]
    if name in FRIENDLY_NAMES:
        return name
    return None


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)


class ModelManager:
    """Process-wide choice of model per :class:`ModelRole`.

    Answers use the chat model; crystallization uses the (cheaper) extraction
    model. Both start from ``settings`` and can be switched with ``/model``.
    """

    _instance: "ModelManager | None" = None

    def __init__(self) -> None:
        configured = {
            ModelRole.CHAT: settings.default_chat_model,
            ModelRole.EXTRACTION: settings.default_extraction_model,
        }
        self._active: dict[ModelRole, str] = {}
        for role, name in configured.items():
            model_id = resolve_model(name)
            if model_id is None:
                logger.warning("Unknown %s model %r, using %s", role, name, _FALLBACKS[role])
                model_id = MODEL_MAP[_FALLBACKS[role]]
            self._active[role] = model_id
        logger.info("Models: %s", self.describe())

    @classmethod
    def get(cls) -> "ModelManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    def model_for(self, role: ModelRole) -> str:
        return self._active[role]

    def switch(self, role: ModelRole, name: str) -> str | None:
        """Point *role* at the model *name*. Returns the full ID, or None if unknown."""
        model_id = resolve_model(name)
        if model_id is None:
            return None
        self._active[role] = model_id
        logger.info("%s model → %s", role.capitalize(), friendly(model_id))
        return model_id

    def describe(self) -> str:
        return ", ".join(f"{role}={friendly(model)}" for role, model in self._active.items())
