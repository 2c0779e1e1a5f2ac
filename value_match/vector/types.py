"""
Vector index records - advisory overlay over the SQLite profile table.
"""

from typing import Dict, Optional
import numpy as np
from dataclasses import dataclass


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Identity the vector belongs to"""

    vector: Optional[np.ndarray]
    """The profile vector"""

    metadata: Dict[str, object]
    """Additional metadata associated with the vector"""


@dataclass
class QueryResult:
    """Represents a search result from vector store."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match (-1 to 1)"""

    metadata: Dict[str, object]
    """Metadata associated with the matched record"""
