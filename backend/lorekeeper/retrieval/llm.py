"""Embedding and completion provider client."""

from __future__ import annotations

import logging
from typing import Protocol

import litellm

from lorekeeper.core.config import Settings
from lorekeeper.ingest.embeddings import HASHED_MODEL, EmbeddingModel
from lorekeeper.sync.context import SyncContext, background
from lorekeeper.sync.retry import RetryPolicy

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True


class LLMClient(Protocol):
    model: str

    def create_embedding(self, text: str, ctx: SyncContext | None = None) -> list[float]: ...

    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str: ...


class LiteLLMClient:
    """Provider calls through litellm, retried with :class:`RetryPolicy`.

    litellm's own retries are disabled so the one policy governs attempts.
    With ``embedding_model == "hashed"`` embeddings are computed locally.
    """

    def __init__(
        self,
        settings: Settings,
        retry: RetryPolicy | None = None,
        ctx: SyncContext | None = None,
    ) -> None:
        self.model = settings.completion_model
        self.embedding_model = settings.embedding_model
        self.retry = retry or RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )
        self.timeout = settings.http_timeout
        self._ctx = ctx or background()
        self._local = EmbeddingModel.get(HASHED_MODEL) if self.embedding_model == HASHED_MODEL else None

    def create_embedding(self, text: str, ctx: SyncContext | None = None) -> list[float]:
        if not text or not text.strip():
            raise ValueError("text cannot be empty")
        if self._local is not None:
            return self._local.create_embedding(text)

        def call() -> list[float]:
            response = litellm.embedding(
                model=self.embedding_model,
                input=[text],
                timeout=self.timeout,
                num_retries=0,
            )
            return list(response.data[0]["embedding"])

        return self.retry.run(ctx or self._ctx, call, label=f"embedding {self.embedding_model}")

    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        if not user_prompt or not user_prompt.strip():
            raise ValueError("prompt cannot be empty")
        if not 0.0 <= temperature <= 2.0:
            raise ValueError("temperature must be between 0 and 2")
        if max_tokens < 1:
            raise ValueError("max_tokens must be positive")
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        def call() -> str:
            response = litellm.completion(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.timeout,
                num_retries=0,
            )
            return response.choices[0].message.content or ""

        return self.retry.run(self._ctx, call, label=f"completion {self.model}")


__all__ = ["LLMClient", "LiteLLMClient"]
