"""Embedding utilities."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from array import array
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from lorekeeper.sync.context import SyncContext

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

HASHED_MODEL = "hashed"


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int
    backend: str


class EmbeddingModel:
    """Lightweight hashed embedding model with deterministic output.

    Needs no provider account, which makes it the default for local use and
    tests. Texts sharing words get vectors with positive cosine similarity.
    """

    _instances: dict[str, "EmbeddingModel"] = {}

    def __init__(
        self,
        model_name: str = HASHED_MODEL,
        dim: int = 384,
    ) -> None:
        self.model_name = model_name
        self._dim = dim

    @classmethod
    def get(cls, model_name: str) -> "EmbeddingModel":
        key = model_name or HASHED_MODEL
        if key not in cls._instances:
            cls._instances[key] = EmbeddingModel(model_name=key)
        return cls._instances[key]

    def encode(self, texts: Iterable[str]) -> EmbeddingBatch:
        vectors: list[list[float]] = []
        for text in texts:
            tokens = _tokenize(text)
            vector = [0.0] * self._dim
            for token in tokens:
                slot = _hash_token(token, self._dim)
                vector[slot] += 1.0
            normalize(vector)
            vectors.append(vector)
        return EmbeddingBatch(vectors=vectors, model=self.model_name, dim=self._dim, backend="hashed")

    def create_embedding(self, text: str, ctx: SyncContext | None = None) -> list[float]:
        """Hash ``text`` locally; ``ctx`` is unused since nothing here waits."""
        if not text or not text.strip():
            raise ValueError("text cannot be empty")
        return self.encode([text]).vectors[0]


def as_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def from_bytes(blob: bytes | None) -> list[float] | None:
    if blob is None:
        return None
    arr = array("f")
    arr.frombytes(blob)
    return arr.tolist()


def mean_vector(vectors: Sequence[Sequence[float]]) -> list[float] | None:
    """Normalised element-wise mean, or None for an empty input."""
    if not vectors:
        return None
    dim = len(vectors[0])
    total = [0.0] * dim
    for vector in vectors:
        for idx, value in enumerate(vector):
            total[idx] += value
    count = float(len(vectors))
    mean = [value / count for value in total]
    normalize(mean)
    return mean


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    if len(left) != len(right):
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return dot / (left_norm * right_norm)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingModel",
    "EmbeddingBatch",
    "HASHED_MODEL",
    "as_bytes",
    "from_bytes",
    "mean_vector",
    "cosine_similarity",
    "normalize",
]
