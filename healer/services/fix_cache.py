"""
Fix Cache
=========
Semantic memory of previously solved request errors.

Signature:
    "<endpoint> <status_code> <error_message>" — the semantic search key.
    Store and Query build it the same way, so an identical error yields an
    identical embedding (distance 0).

Store:
    - Validates that corrected_request is JSON-serializable (never stored corrupt)
    - Embeds the signature and appends (fresh_id, embedding, record) to the index
    - Fresh ids derive from insertion time and are strictly increasing per
      process; callers never parse them
    - Failures raise CacheUnavailableError: losing a fix silently would
      regress future sessions

Query:
    - k-nearest-neighbour search, then filter to distance <= max_distance
    - k bounds the candidate set before filtering
    - Results sorted ascending by distance
    - Backend failures degrade to "no matches" instead of aborting the session

Bootstrap:
    The backing index is created transparently on first use; creation is
    idempotent and safe to race.
"""
import json
import logging
import threading
import time
from typing import List, Optional

from healer.core.config import (
    CACHE_TOP_K, CACHE_MAX_DISTANCE,
    EMBED_PROVIDER, EMBED_MODEL_NAME, EMBED_DIMENSION,
    VECTOR_PROVIDER, FIX_CACHE_DB_PATH,
)
from healer.core.errors import CacheUnavailableError, ValidationError
from healer.models.fix_record import FixRecord, SimilarityMatch
from healer.vector.embeddings import EmbeddingFunction, get_embedding_function
from healer.vector.index import VectorIndex, get_vector_index
from healer.vector.types import VectorRecord

logger = logging.getLogger(__name__)

_ID_PREFIX = "fix:"


def build_signature(endpoint: str, status_code: Optional[int] = None, error_message: Optional[str] = None) -> str:
    """Combine endpoint, status code and error message into the search key."""
    parts = [endpoint or ""]
    if status_code is not None:
        parts.append(str(status_code))
    if error_message:
        parts.append(error_message)
    return " ".join(parts)


class FixCache:
    """
    Stores and retrieves FixRecords by semantic similarity of their signature.

    Usage:
        cache = FixCache(HashingEmbedding(), NumpyVectorIndex())
        fix_id = cache.store(record)
        matches = cache.query("https://api.example.com/users", "missing field", 400)
        cache.close()
    """

    def __init__(
        self,
        embedder: EmbeddingFunction,
        index: VectorIndex,
        default_k: int = CACHE_TOP_K,
        default_max_distance: float = CACHE_MAX_DISTANCE,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.default_k = default_k
        self.default_max_distance = default_max_distance
        self._ready = False
        self._ready_lock = threading.Lock()
        self._id_lock = threading.Lock()
        self._last_id_ns = 0

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _ensure_ready(self) -> None:
        if self._ready:
            return
        with self._ready_lock:
            if not self._ready:
                self.index.ensure_index(self.embedder.get_dimension())
                self._ready = True

    def _fresh_id(self) -> str:
        with self._id_lock:
            now = max(time.time_ns(), self._last_id_ns + 1)
            self._last_id_ns = now
        return f"{_ID_PREFIX}{now}"

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    def store(self, record: FixRecord) -> str:
        """
        Persist a fix and return its id.

        Raises
        ------
        ValidationError
            If corrected_request is not JSON-serializable.
        CacheUnavailableError
            If the embedding engine or the index fails.
        """
        try:
            json.dumps(record.corrected_request)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"corrected_request is not valid structured data: {e}") from e

        signature = build_signature(record.endpoint, record.status_code, record.error_message)
        logger.info("Storing fix pattern for %s %s (%d)", record.method, record.endpoint, record.status_code)

        try:
            self._ensure_ready()
            embedding = self.embedder.embed_text(signature)
            fix_id = self._fresh_id()
            self.index.add(VectorRecord(
                id=fix_id,
                vector=embedding,
                metadata=record.model_dump(mode="json"),
            ))
        except Exception as e:
            logger.error("Failed to store fix for %s: %s", record.endpoint, e)
            raise CacheUnavailableError(f"Fix cache unavailable: {e}") from e

        logger.info("Fix stored as %s", fix_id)
        return fix_id

    def query(
        self,
        endpoint: str,
        error_message: Optional[str] = None,
        status_code: Optional[int] = None,
        k: Optional[int] = None,
        max_distance: Optional[float] = None,
    ) -> List[SimilarityMatch]:
        """
        Find stored fixes whose signature is close to the given error.

        Returns an empty list when nothing qualifies or the backend is down.
        """
        k = self.default_k if k is None else k
        max_distance = self.default_max_distance if max_distance is None else max_distance
        if k <= 0:
            return []

        signature = build_signature(endpoint, status_code, error_message)
        logger.info("Searching fix cache: %s", signature)

        try:
            self._ensure_ready()
            embedding = self.embedder.embed_text(signature)
            hits = self.index.search(embedding, k)
        except Exception as e:
            logger.warning("Fix cache query degraded to no matches: %s", e)
            return []

        matches: List[SimilarityMatch] = []
        for hit in hits:
            if hit.distance > max_distance:
                continue
            try:
                record = FixRecord.model_validate(hit.metadata)
            except Exception as e:
                logger.warning("Skipping unreadable cache entry %s: %s", hit.id, e)
                continue
            matches.append(SimilarityMatch(id=hit.id, record=record, distance=hit.distance))
            logger.info("Match: %s (distance: %.4f)", record.endpoint, hit.distance)

        matches.sort(key=lambda m: m.distance)
        if not matches:
            logger.info("No similar fixes found within threshold %.3f", max_distance)
        return matches

    def count(self) -> int:
        """Number of stored fixes. Observability only; 0 when the backend is down."""
        try:
            self._ensure_ready()
            return self.index.count()
        except Exception as e:
            logger.warning("Could not count stored fixes: %s", e)
            return 0

    def close(self) -> None:
        """Release the index connection."""
        try:
            self.index.close()
        finally:
            self._ready = False


def build_fix_cache() -> FixCache:
    """Build a FixCache from configuration."""
    embedder = get_embedding_function(EMBED_PROVIDER, EMBED_MODEL_NAME, EMBED_DIMENSION)
    index = get_vector_index(VECTOR_PROVIDER, FIX_CACHE_DB_PATH)
    return FixCache(embedder, index)
