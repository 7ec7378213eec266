"""Retrieval orchestration components."""

from .answer import AnswerStore, RAGAnswerService, build_prompt
from .llm import LiteLLMClient, LLMClient
from .vector_index import SearchResult, VectorStore

__all__ = [
    "AnswerStore",
    "RAGAnswerService",
    "build_prompt",
    "LiteLLMClient",
    "LLMClient",
    "SearchResult",
    "VectorStore",
]
