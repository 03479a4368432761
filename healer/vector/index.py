"""
Vector indices for the fix cache.

Both implementations answer k-nearest-neighbour queries under squared L2
distance and treat entries as append-only, independent keys: concurrent
``add`` calls are serialized by a lock, and no cross-entry transaction is
needed.

FaissVectorIndex:
    faiss.IndexFlatL2 in memory, every entry durably appended to SQLite.
    The SQLite table is the canonical store; the faiss index is rebuilt
    from it on bootstrap and tops itself up with rows written by other
    processes before each search.

NumpyVectorIndex:
    Process-local brute force with the same distance semantics.
"""
import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import faiss
import numpy as np

from .types import VectorRecord, QueryResult

logger = logging.getLogger(__name__)

_ZERO_SNAP = 1e-6


class VectorIndex(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def ensure_index(self, dimension: int) -> None:
        """Create the backing index if it does not exist yet. Idempotent."""
        pass

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Append a single vector record."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int) -> List[QueryResult]:
        """Return up to top_k nearest records, ascending by distance."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of records currently indexed."""
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass


def _as_query(vector: np.ndarray, dimension: int) -> np.ndarray:
    query = np.asarray(vector, dtype=np.float32).reshape(1, -1)
    if query.shape[1] != dimension:
        raise ValueError(f"Vector dimension {query.shape[1]} does not match index dimension {dimension}")
    return query


class NumpyVectorIndex(VectorIndex):
    """In-memory brute-force index (squared L2)."""

    def __init__(self):
        self.dimension: Optional[int] = None
        self._ids: List[str] = []
        self._vectors: List[np.ndarray] = []
        self._metadata: Dict[str, Dict[str, object]] = {}
        self._lock = threading.Lock()

    def ensure_index(self, dimension: int) -> None:
        with self._lock:
            if self.dimension is None:
                self.dimension = dimension
            elif self.dimension != dimension:
                raise ValueError(f"Index already exists with dimension {self.dimension}")

    def add(self, record: VectorRecord) -> None:
        if self.dimension is None:
            raise RuntimeError("Index not initialised; call ensure_index() first")
        vector = _as_query(record.vector, self.dimension)[0]
        with self._lock:
            if record.id in self._metadata:
                raise ValueError(f"Duplicate record id: {record.id}")
            self._ids.append(record.id)
            self._vectors.append(vector)
            self._metadata[record.id] = dict(record.metadata)

    def search(self, query_vector: np.ndarray, top_k: int) -> List[QueryResult]:
        if self.dimension is None or top_k <= 0:
            return []
        query = _as_query(query_vector, self.dimension)[0]
        with self._lock:
            if not self._vectors:
                return []
            matrix = np.vstack(self._vectors)
            ids = list(self._ids)
        distances = np.sum((matrix - query) ** 2, axis=1)
        order = np.argsort(distances, kind="stable")[:top_k]
        return [
            QueryResult(id=ids[i], distance=float(distances[i]), metadata=self._metadata[ids[i]])
            for i in order
        ]

    def count(self) -> int:
        return len(self._ids)


class FaissVectorIndex(VectorIndex):
    """FAISS-backed index persisted to SQLite."""

    _CREATE_ENTRIES = '''
        CREATE TABLE IF NOT EXISTS fix_entries (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            dimension INTEGER NOT NULL,
            embedding BLOB NOT NULL,
            payload TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    '''

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.dimension: Optional[int] = None
        self.index = None
        self._conn: Optional[sqlite3.Connection] = None
        self._positions: List[str] = []          # faiss position -> record id
        self._metadata: Dict[str, Dict[str, object]] = {}
        self._last_seq = 0
        self._lock = threading.Lock()

    # -------------------------------------------------------------------
    # Bootstrap
    # -------------------------------------------------------------------
    def ensure_index(self, dimension: int) -> None:
        with self._lock:
            if self.index is not None:
                if self.dimension != dimension:
                    raise ValueError(f"Index already exists with dimension {self.dimension}")
                return

            directory = os.path.dirname(os.path.abspath(self.db_path))
            os.makedirs(directory, exist_ok=True)

            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
            try:
                self._conn.execute(self._CREATE_ENTRIES)
                self._conn.commit()
            except sqlite3.OperationalError as e:
                # Another process created it between our check and create
                if "already exists" not in str(e):
                    self._conn.close()
                    self._conn = None
                    raise
                logger.debug("fix_entries table already exists")

            self.dimension = dimension
            self.index = faiss.IndexFlatL2(dimension)
            loaded = self._load_new_rows()
            logger.info("Fix index ready at %s (%d entries, dim=%d)", self.db_path, loaded, dimension)

    def _load_new_rows(self) -> int:
        """Append rows with seq > last seen to the faiss index. Caller holds the lock."""
        cursor = self._conn.execute(
            "SELECT seq, id, dimension, embedding, payload FROM fix_entries WHERE seq > ? ORDER BY seq",
            (self._last_seq,),
        )
        vectors = []
        for seq, record_id, dim, blob, payload in cursor.fetchall():
            self._last_seq = seq
            if dim != self.dimension or record_id in self._metadata:
                if dim != self.dimension:
                    logger.warning("Skipping entry %s: dimension %d != %d", record_id, dim, self.dimension)
                continue
            vectors.append(np.frombuffer(blob, dtype=np.float32))
            self._positions.append(record_id)
            self._metadata[record_id] = json.loads(payload)
        if vectors:
            self.index.add(np.vstack(vectors).astype(np.float32))
        return len(vectors)

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def add(self, record: VectorRecord) -> None:
        if self.index is None:
            raise RuntimeError("Index not initialised; call ensure_index() first")
        vector = _as_query(record.vector, self.dimension)
        payload = json.dumps(record.metadata)

        with self._lock:
            self._conn.execute(
                "INSERT INTO fix_entries (id, dimension, embedding, payload) VALUES (?, ?, ?, ?)",
                (record.id, self.dimension, vector.tobytes(), payload),
            )
            self._conn.commit()
            # Loads rows other processes appended before ours, then ours
            self._load_new_rows()

    def search(self, query_vector: np.ndarray, top_k: int) -> List[QueryResult]:
        if self.index is None or top_k <= 0:
            return []
        query = _as_query(query_vector, self.dimension)

        with self._lock:
            self._load_new_rows()
            if not self.index.ntotal:
                return []
            distances, positions = self.index.search(query, min(top_k, self.index.ntotal))

            results = []
            for distance, position in zip(distances[0], positions[0]):
                if position < 0:
                    continue
                record_id = self._positions[position]
                # Float error around identical vectors snaps to exact 0
                distance = float(distance)
                if distance < _ZERO_SNAP:
                    distance = 0.0
                results.append(QueryResult(
                    id=record_id,
                    distance=distance,
                    metadata=self._metadata[record_id],
                ))
        return results

    def count(self) -> int:
        if self._conn is None:
            return 0
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM fix_entries").fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            self.index = None
            self._positions.clear()
            self._metadata.clear()
            self._last_seq = 0


def get_vector_index(provider: str, db_path: str) -> VectorIndex:
    """Build the configured index (``faiss`` or ``memory``)."""
    if provider == "faiss":
        return FaissVectorIndex(db_path)
    if provider == "memory":
        return NumpyVectorIndex()
    raise ValueError(f"Unknown vector provider: {provider}")
