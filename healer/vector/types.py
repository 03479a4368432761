"""
Vector record types shared by embedding functions, indices and the fix cache.
"""
from dataclasses import dataclass, field
from typing import Dict

import numpy as np


@dataclass
class VectorRecord:
    """A vector with its structured payload, keyed by an opaque id."""

    id: str
    vector: np.ndarray
    metadata: Dict[str, object] = field(default_factory=dict)


@dataclass
class QueryResult:
    """A nearest-neighbour hit."""

    id: str
    distance: float
    """Squared L2 distance to the query vector (0 = identical)"""

    metadata: Dict[str, object] = field(default_factory=dict)
