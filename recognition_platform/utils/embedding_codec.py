"""
Embedding text codec.

Embeddings are stored in a text column as

    fe1:<dim>:<base64 of little-endian float32 values>

The dimensionality is checked on every read, so a model change that alters
the embedding length is reported instead of silently mismatching. Rows
written as plain comma-separated numbers are still readable.
"""

import base64
import binascii
import numpy as np
from typing import Optional
from ..errors import EmbeddingFormatError

FORMAT_VERSION = 'fe1'
_DTYPE = np.dtype('<f4')


def encode_embedding(embedding, expected_dim: Optional[int] = None) -> str:
    """
    Encode an embedding for storage.

    Args:
        embedding: 1-D numeric vector
        expected_dim: Required length, if known

    Returns:
        Versioned text encoding

    Raises:
        EmbeddingFormatError: If the vector is empty, non-finite or the wrong length
    """
    vector = np.asarray(embedding, dtype=_DTYPE).ravel()
    _validate(vector, expected_dim)

    payload = base64.b64encode(vector.tobytes()).decode('ascii')
    return f'{FORMAT_VERSION}:{vector.shape[0]}:{payload}'


def decode_embedding(text: str, expected_dim: Optional[int] = None) -> np.ndarray:
    """
    Decode a stored embedding.

    Args:
        text: Versioned encoding or legacy comma-separated numbers
        expected_dim: Required length, if known

    Returns:
        float32 vector

    Raises:
        EmbeddingFormatError: If the text is malformed or fails validation
    """
    if not isinstance(text, str) or not text.strip():
        raise EmbeddingFormatError('Empty embedding')

    text = text.strip()
    if text.startswith(FORMAT_VERSION + ':'):
        vector = _decode_versioned(text)
    elif ':' in text.split(',', 1)[0]:
        version = text.split(':', 1)[0]
        raise EmbeddingFormatError(f'Unsupported embedding format {version!r}')
    else:
        vector = _decode_legacy(text)

    _validate(vector, expected_dim)
    return vector


def _decode_versioned(text: str) -> np.ndarray:
    try:
        _, dim_text, payload = text.split(':', 2)
        declared_dim = int(dim_text)
        raw = base64.b64decode(payload, validate=True)
    except (ValueError, binascii.Error) as e:
        raise EmbeddingFormatError(f'Malformed embedding: {e}') from e

    if len(raw) != declared_dim * _DTYPE.itemsize:
        raise EmbeddingFormatError(
            f'Embedding declares {declared_dim} values but carries {len(raw)} bytes'
        )

    return np.frombuffer(raw, dtype=_DTYPE).astype(np.float32)


def _decode_legacy(text: str) -> np.ndarray:
    try:
        return np.array([float(part) for part in text.split(',')], dtype=np.float32)
    except ValueError as e:
        raise EmbeddingFormatError(f'Malformed legacy embedding: {e}') from e


def _validate(vector: np.ndarray, expected_dim: Optional[int]) -> None:
    if vector.size == 0:
        raise EmbeddingFormatError('Empty embedding')
    if expected_dim is not None and vector.shape[0] != expected_dim:
        raise EmbeddingFormatError(
            f'Expected {expected_dim}-dimensional embedding, got {vector.shape[0]}'
        )
    if not np.all(np.isfinite(vector)):
        raise EmbeddingFormatError('Embedding contains non-finite values')
