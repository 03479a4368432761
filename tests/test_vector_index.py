"""
Vector Index Tests
==================
Both index implementations: squared L2 ordering, bootstrap idempotency,
SQLite persistence and cross-instance visibility for the faiss index.
"""
import sqlite3
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from healer.vector.index import FaissVectorIndex, NumpyVectorIndex, get_vector_index
from healer.vector.types import VectorRecord


def _vec(*values):
    return np.asarray(values, dtype=np.float32)


@pytest.fixture(params=["memory", "faiss"])
def index(request, tmp_path):
    if request.param == "memory":
        idx = NumpyVectorIndex()
    else:
        idx = FaissVectorIndex(str(tmp_path / "fixes.db"))
    idx.ensure_index(3)
    yield idx
    idx.close()


def test_search_empty(index):
    assert index.search(_vec(1, 0, 0), 3) == []
    assert index.count() == 0


def test_search_sorted_squared_l2(index):
    index.add(VectorRecord(id="a", vector=_vec(1, 0, 0), metadata={"n": "a"}))
    index.add(VectorRecord(id="b", vector=_vec(0, 1, 0), metadata={"n": "b"}))
    index.add(VectorRecord(id="c", vector=_vec(0.9, 0.1, 0), metadata={"n": "c"}))

    hits = index.search(_vec(1, 0, 0), 3)
    assert [h.id for h in hits] == ["a", "c", "b"]
    assert hits[0].distance == 0.0
    assert hits[1].distance == pytest.approx(0.02, abs=1e-5)
    assert hits[2].distance == pytest.approx(2.0, abs=1e-5)
    assert hits[0].metadata == {"n": "a"}


def test_top_k_bounds_results(index):
    for i in range(5):
        index.add(VectorRecord(id=f"r{i}", vector=_vec(i, 0, 0), metadata={}))
    assert len(index.search(_vec(0, 0, 0), 2)) == 2
    assert index.search(_vec(0, 0, 0), 0) == []
    assert index.count() == 5


def test_dimension_mismatch_rejected(index):
    with pytest.raises(ValueError):
        index.add(VectorRecord(id="x", vector=_vec(1, 0), metadata={}))
    with pytest.raises(ValueError):
        index.ensure_index(4)


def test_ensure_index_idempotent(index):
    index.ensure_index(3)
    index.add(VectorRecord(id="a", vector=_vec(1, 0, 0), metadata={}))
    index.ensure_index(3)
    assert index.count() == 1


def test_faiss_persists_across_instances(tmp_path):
    path = str(tmp_path / "nested" / "fixes.db")
    first = FaissVectorIndex(path)
    first.ensure_index(3)
    first.add(VectorRecord(id="a", vector=_vec(1, 0, 0), metadata={"k": 1}))
    first.close()

    second = FaissVectorIndex(path)
    second.ensure_index(3)
    hits = second.search(_vec(1, 0, 0), 1)
    assert hits[0].id == "a"
    assert hits[0].metadata == {"k": 1}
    second.close()


def test_faiss_sees_writes_from_other_instance(tmp_path):
    path = str(tmp_path / "fixes.db")
    reader = FaissVectorIndex(path)
    writer = FaissVectorIndex(path)
    reader.ensure_index(3)
    writer.ensure_index(3)

    writer.add(VectorRecord(id="w", vector=_vec(0, 0, 1), metadata={}))
    hits = reader.search(_vec(0, 0, 1), 1)
    assert [h.id for h in hits] == ["w"]
    assert reader.count() == 1

    reader.close()
    writer.close()


def test_faiss_duplicate_id_rejected(tmp_path):
    idx = FaissVectorIndex(str(tmp_path / "fixes.db"))
    idx.ensure_index(3)
    idx.add(VectorRecord(id="a", vector=_vec(1, 0, 0), metadata={}))
    with pytest.raises(Exception):
        idx.add(VectorRecord(id="a", vector=_vec(0, 1, 0), metadata={}))
    assert idx.count() == 1
    idx.close()


def test_add_before_bootstrap_fails():
    with pytest.raises(RuntimeError):
        NumpyVectorIndex().add(VectorRecord(id="a", vector=_vec(1, 0, 0), metadata={}))


def test_get_vector_index(tmp_path):
    assert isinstance(get_vector_index("memory", ""), NumpyVectorIndex)
    assert isinstance(get_vector_index("faiss", str(tmp_path / "x.db")), FaissVectorIndex)
    with pytest.raises(ValueError):
        get_vector_index("redis", "")


def test_faiss_bootstrap_failure_closes_connection(tmp_path):
    conn = MagicMock()
    conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
    idx = FaissVectorIndex(str(tmp_path / "fixes.db"))
    with patch("healer.vector.index.sqlite3.connect", return_value=conn):
        with pytest.raises(sqlite3.OperationalError, match="disk I/O error"):
            idx.ensure_index(3)
    conn.close.assert_called_once()
    assert idx._conn is None
    assert idx.index is None
    assert idx.count() == 0
