"""Knowledge base — crystal models, persistence, extraction, and crystallization."""

from crystallize.knowledge.models import Crystal, ExtractionPayload
from crystallize.knowledge.orchestrator import CrystallizationOrchestrator, CrystallizeOutcome
from crystallize.knowledge.store import KnowledgeStore

__all__ = [
    "CrystallizationOrchestrator",
    "CrystallizeOutcome",
    "Crystal",
    "ExtractionPayload",
    "KnowledgeStore",
]
