"""Conversation log — turn models, persistence, and the turn-taking state machine."""

from crystallize.conversation.models import Answer, Citation, HistoryEntry, Speaker, Turn
from crystallize.conversation.orchestrator import ConversationOrchestrator, ConversationState
from crystallize.conversation.store import ConversationStore

__all__ = [
    "Answer",
    "Citation",
    "ConversationOrchestrator",
    "ConversationState",
    "ConversationStore",
    "HistoryEntry",
    "Speaker",
    "Turn",
]
