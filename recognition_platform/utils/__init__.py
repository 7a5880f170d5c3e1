"""
Utility modules package.
"""

from .embedding_codec import decode_embedding, encode_embedding
from .timing import format_uptime, retry_with_backoff

__all__ = [
    'decode_embedding',
    'encode_embedding',
    'format_uptime',
    'retry_with_backoff',
]
