"""Models package - re-exports for convenience."""

from gapguard.models.chat import ChatAnswer, ChatMessage, ChatQuery, ChatSession, ChunkMatch
from gapguard.models.documents import (
    Classification,
    DocChunk,
    DocumentStatus,
    IngestRequest,
    IngestResult,
    ProcessingLogEntry,
    UserDocument,
)
from gapguard.models.gaps import ChecklistRule, Gap, GapStatus, RuleStatus, RuleSuggestion

__all__ = [
    "ChatAnswer",
    "ChatMessage",
    "ChatQuery",
    "ChatSession",
    "ChecklistRule",
    "ChunkMatch",
    "Classification",
    "DocChunk",
    "DocumentStatus",
    "Gap",
    "GapStatus",
    "IngestRequest",
    "IngestResult",
    "ProcessingLogEntry",
    "RuleStatus",
    "RuleSuggestion",
    "UserDocument",
]
