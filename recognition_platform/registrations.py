"""
Face registration module.

Handles loading registered faces from the backend and writing new
registrations.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .backend import SupabaseBackend
from .config import Config
from .errors import EmbeddingFormatError
from .logging_config import get_logger
from .recognition.types import KnownIdentity
from .utils.embedding_codec import decode_embedding, encode_embedding

logger = get_logger(__name__)

REGISTRATIONS_TABLE = 'face_registrations'
MAX_NAME_LENGTH = 120


@dataclass(frozen=True)
class Registration:
    """A row of the face_registrations table."""

    id: Optional[str]
    name: str
    created_at: Optional[datetime]
    face_encoding: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Registration':
        row_id = row.get('id')
        return cls(
            id=str(row_id) if row_id is not None else None,
            name=str(row.get('name') or '').strip(),
            created_at=parse_timestamp(row.get('created_at')),
            face_encoding=row.get('face_encoding') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        """Public view without the embedding."""
        return {
            'id': self.id,
            'name': self.name,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp as returned by PostgREST.

    Returns:
        datetime or None if the value is missing or unparseable
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value

    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f'Unparseable timestamp: {value!r}')
        return None


def fetch_registrations(backend: SupabaseBackend) -> List[Registration]:
    """
    Fetch all registrations, most recent first.

    Args:
        backend: Backend client

    Returns:
        List of registrations ordered by created_at descending
    """
    rows = backend.select(REGISTRATIONS_TABLE, order='created_at.desc')
    return [Registration.from_row(row) for row in rows]


def load_known_identities(
    backend: SupabaseBackend,
    config: Config
) -> Tuple[KnownIdentity, ...]:
    """
    Load registered faces and decode their embeddings.

    Rows with a malformed or wrong-sized embedding are skipped.

    Args:
        backend: Backend client
        config: Service configuration

    Returns:
        Tuple of known identities, most recent registration first
    """
    logger.info('Loading registered faces from backend...')

    registrations = fetch_registrations(backend)
    identities: List[KnownIdentity] = []

    for registration in registrations:
        if not registration.name:
            logger.warning(f'Registration {registration.id} has no name, skipping')
            continue

        try:
            embedding = decode_embedding(registration.face_encoding, config.embedding_dim)
        except EmbeddingFormatError as e:
            logger.warning(f'Registration {registration.id} ({registration.name}) skipped: {e}')
            continue

        identities.append(KnownIdentity(name=registration.name, embedding=embedding))

    logger.info(f'✅ Loaded {len(identities)}/{len(registrations)} registered faces')
    return tuple(identities)


def validate_name(name: Any) -> str:
    """
    Normalize and validate a registration name.

    Raises:
        ValueError: If the name is empty or too long
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError('Name is required')

    name = ' '.join(name.split())
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f'Name must be at most {MAX_NAME_LENGTH} characters')
    return name


def register_face(
    backend: SupabaseBackend,
    name: str,
    embedding: np.ndarray,
    config: Config
) -> Registration:
    """
    Store a new face registration.

    Args:
        backend: Backend client
        name: Person name
        embedding: Face embedding
        config: Service configuration

    Returns:
        The stored registration

    Raises:
        ValueError: If the name is invalid
        EmbeddingFormatError: If the embedding has the wrong size
        StoreError: If the backend rejects the insert
    """
    name = validate_name(name)
    encoded = encode_embedding(embedding, config.embedding_dim)

    logger.info(f'📤 Registering face for {name}')
    row = backend.insert(REGISTRATIONS_TABLE, {
        'name': name,
        'face_encoding': encoded,
    })

    stored = Registration.from_row(row) if row else Registration(
        id=None, name=name, created_at=None, face_encoding=encoded
    )
    logger.info(f'✅ {name} registered')
    return stored
