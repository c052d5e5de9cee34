"""
Retrieval components for the hybrid retrieval engine.

This package contains:
- config: Search/orchestrator configuration and answer results
- intent: Question analysis (list queries, terms, full-document requests)
- search: Hierarchical title-first search and context assembly
- llm: Completion providers
- memory: History log and conversation memory
- orchestrator: Tiered answer path (caches, lexical, semantic)
"""

from .config import (
    AnswerResult,
    RetrievalConfig,
    Route,
    SearchConfig,
    DEFAULT_SYSTEM_PROMPT,
    MEMORY_SUMMARY_PROMPT,
)

from .intent import extract_question_terms, is_list_query, wants_full_information

from .search import HierarchicalSearcher, normalize_score

from .llm import CompletionProvider, GeminiCompletionProvider, UnconfiguredCompletionProvider

from .memory import ConversationMemory, HistoryLog

from .orchestrator import RetrievalOrchestrator, SemanticContext

__all__ = [
    # Configuration
    "AnswerResult",
    "RetrievalConfig",
    "Route",
    "SearchConfig",
    "DEFAULT_SYSTEM_PROMPT",
    "MEMORY_SUMMARY_PROMPT",
    # Question analysis
    "extract_question_terms",
    "is_list_query",
    "wants_full_information",
    # Search
    "HierarchicalSearcher",
    "normalize_score",
    # Providers
    "CompletionProvider",
    "GeminiCompletionProvider",
    "UnconfiguredCompletionProvider",
    # Memory
    "ConversationMemory",
    "HistoryLog",
    # Orchestration
    "RetrievalOrchestrator",
    "SemanticContext",
]
