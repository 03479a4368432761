"""
Embedding functions for fix-cache signatures.

An embedding function maps a text string to a fixed-dimension vector. It is
deterministic for a fixed model version and has no side effects besides the
cost of loading the model on first use.
"""
import hashlib
import logging
import re
import threading
from abc import ABC, abstractmethod

import numpy as np
from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingFunction(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> np.ndarray:
        """Generate a float32 embedding vector for the given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class HashingEmbedding(EmbeddingFunction):
    """Deterministic feature-hashing embedding.

    Word tokens and token bigrams are hashed into ``dimension`` signed
    buckets and the result is L2-normalized, so texts sharing most tokens
    land close together. Needs no model download, which makes it suitable
    for tests and air-gapped deployments.
    """

    def __init__(self, dimension: int = 768):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def _features(self, text: str):
        tokens = _TOKEN_RE.findall((text or "").lower())
        yield from tokens
        for left, right in zip(tokens, tokens[1:]):
            yield f"{left} {right}"

    def embed_text(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float32)
        for feature in self._features(text):
            digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "little")
            bucket = value % self.dimension
            sign = 1.0 if (value >> 63) & 1 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    def get_dimension(self) -> int:
        return self.dimension


class SentenceTransformerEmbedding(EmbeddingFunction):
    """Sentence transformers embedding provider using pre-trained models.

    Defaults to all-distilroberta-v1 (768 dimensions). The model is loaded
    lazily on first use; embeddings are L2-normalized.
    """

    def __init__(self, model_name: str = "sentence-transformers/all-distilroberta-v1"):
        self.model_name = model_name
        self._model = None
        self._dimension = None
        self._lock = threading.Lock()

    @property
    def model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    logger.info("Loading embedding model %s (first use may take a minute)", self.model_name)
                    self._model = SentenceTransformer(self.model_name)
                    logger.info("Embedding model loaded")
        return self._model

    def embed_text(self, text: str) -> np.ndarray:
        embedding = self.model.encode(text, convert_to_numpy=True, normalize_embeddings=True)
        return np.asarray(embedding, dtype=np.float32)

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = int(self.model.get_sentence_embedding_dimension())
        return self._dimension


def get_embedding_function(provider: str, model_name: str, dimension: int) -> EmbeddingFunction:
    """Build the configured embedding function (``sentence_transformers`` or ``hash``)."""
    if provider == "hash":
        return HashingEmbedding(dimension)
    if provider == "sentence_transformers":
        return SentenceTransformerEmbedding(model_name)
    raise ValueError(f"Unknown embedding provider: {provider}")
