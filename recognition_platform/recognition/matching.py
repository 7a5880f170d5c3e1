"""
Embedding matching module.

Matches face embeddings against known identities using Euclidean distance.
"""

import numpy as np
from typing import Optional, Sequence, Tuple
from ..errors import EmbeddingDimensionError
from .types import KnownIdentity


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    """
    Compute Euclidean distance between two embeddings.

    Raises:
        EmbeddingDimensionError: If the vectors have different lengths
    """
    a = np.asarray(a, dtype=np.float32).ravel()
    b = np.asarray(b, dtype=np.float32).ravel()
    if a.shape != b.shape:
        raise EmbeddingDimensionError(
            f'Cannot compare embeddings of length {a.shape[0]} and {b.shape[0]}'
        )
    return float(np.linalg.norm(a - b))


def distance_to_confidence(distance: float) -> float:
    """
    Convert a distance to a confidence score.

    confidence = max(0, 1 - distance), so distance >= 0 gives [0, 1].
    """
    return max(0.0, 1.0 - distance)


def match_embedding(
    embedding: np.ndarray,
    known: Sequence[KnownIdentity],
    threshold: float
) -> Tuple[Optional[KnownIdentity], float]:
    """
    Match face embedding to known identities.

    The identity with the highest confidence wins if that confidence is
    strictly greater than the threshold. Equal confidences keep the first
    identity in snapshot order. Identities whose embedding length differs
    from the face are skipped.

    Args:
        embedding: Face embedding to match
        known: Known identity snapshot
        threshold: Minimum acceptance confidence (exclusive)

    Returns:
        Tuple of (identity, confidence) on a match, or (None, best_confidence)
        when nothing clears the threshold. best_confidence is 0.0 for an
        empty snapshot.

    Raises:
        EmbeddingDimensionError: If no identity has a comparable embedding
    """
    best_identity: Optional[KnownIdentity] = None
    best_confidence = 0.0
    query = np.asarray(embedding, dtype=np.float32).ravel()
    compared = 0

    for identity in known:
        if identity.embedding.size != query.size:
            continue
        compared += 1
        confidence = distance_to_confidence(
            euclidean_distance(query, identity.embedding)
        )
        if best_identity is None or confidence > best_confidence:
            best_identity = identity
            best_confidence = confidence

    if known and not compared:
        raise EmbeddingDimensionError(
            f'No known identity has an embedding of length {query.size}'
        )

    if best_identity is not None and best_confidence > threshold:
        return best_identity, best_confidence

    return None, best_confidence
