"""
Chat service.

Answers questions about registered faces and records each interaction
in the chat_messages table.
"""

from typing import Optional
from ..backend import SupabaseBackend
from ..config import Config
from ..errors import ChatError, StoreError
from ..logging_config import get_logger
from ..registrations import fetch_registrations
from .canned import generate_response
from .context import build_context_string
from .llm import LLMClient

logger = get_logger(__name__)

CHAT_MESSAGES_TABLE = 'chat_messages'
MAX_QUERY_LENGTH = 2000


class ChatService:
    """Routes questions to the canned responder or the LLM."""

    def __init__(
        self,
        backend: SupabaseBackend,
        config: Config,
        llm_client: Optional[LLMClient] = None
    ):
        self.backend = backend
        self.mode = config.chat_mode
        self.llm_client = llm_client or LLMClient(config)

    def answer(self, query: str) -> str:
        """
        Answer a question.

        Args:
            query: User question

        Returns:
            Answer text

        Raises:
            ValueError: If the query is empty or too long
            ChatError: If the answer cannot be produced
        """
        query = (query or '').strip()
        if not query:
            raise ValueError('Query is required')
        if len(query) > MAX_QUERY_LENGTH:
            raise ValueError(f'Query must be at most {MAX_QUERY_LENGTH} characters')

        logger.info(f'Received query ({self.mode}): {query}')

        try:
            registrations = fetch_registrations(self.backend)
        except StoreError as e:
            raise ChatError(f'Could not load registered faces: {e}') from e

        if self.mode == 'canned':
            response = generate_response(query, registrations)
        else:
            context = build_context_string(registrations)
            logger.debug(f'Context prepared: {context}')
            response = self.llm_client.complete(query, context)

        self._record(query, response)
        return response

    def _record(self, query: str, response: str) -> None:
        try:
            self.backend.insert(CHAT_MESSAGES_TABLE, {'query': query, 'response': response})
        except StoreError as e:
            logger.error(f'Error storing chat message: {e}')
