"""
Chat package.

Question answering over registered faces:
- Context summary for the LLM prompt
- Canned keyword responder
- Chat completions client
- Service that records each interaction
"""

from .context import build_context_string
from .canned import generate_response
from .llm import LLMClient
from .service import ChatService

__all__ = [
    'build_context_string',
    'generate_response',
    'LLMClient',
    'ChatService',
]
