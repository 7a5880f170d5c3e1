"""
LLM chat client.

Sends a question and the registered-faces context to an
OpenAI-compatible chat completions endpoint.
"""

import requests
from typing import Any, Dict, List
from ..config import Config
from ..errors import ChatError
from ..logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT_TEMPLATE = """You are an AI assistant for a Face Recognition Platform. You help users get information about registered faces and recognition statistics.

Current database context: {context}

Guidelines:
- Answer questions about registered people, registration times, counts, and related statistics
- Be helpful and provide specific information when available
- If no data exists, politely explain that no faces are registered yet
- Keep responses concise but informative
- You can answer questions like "Who was registered last?", "How many people are registered?", "When was [name] registered?", etc."""


def build_messages(query: str, context: str) -> List[Dict[str, str]]:
    return [
        {'role': 'system', 'content': SYSTEM_PROMPT_TEMPLATE.format(context=context)},
        {'role': 'user', 'content': query},
    ]


class LLMClient:
    """Minimal chat completions client."""

    def __init__(self, config: Config):
        self.api_key = config.openai_api_key
        self.url = f'{config.openai_base_url}/chat/completions'
        self.model = config.openai_model
        self.temperature = config.llm_temperature
        self.max_tokens = config.llm_max_tokens
        self.timeout = config.request_timeout

    def complete(self, query: str, context: str) -> str:
        """
        Ask the model a question with the database context.

        Args:
            query: User question
            context: Registered-faces summary

        Returns:
            Answer text

        Raises:
            ChatError: If the key is missing or the API call fails
        """
        if not self.api_key:
            raise ChatError('OpenAI API key not configured')

        payload: Dict[str, Any] = {
            'model': self.model,
            'messages': build_messages(query, context),
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
        }
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f'❌ LLM request failed: {e}')
            raise ChatError(f'LLM request failed: {e}') from e

        if not response.ok:
            logger.error(f'❌ LLM API error: {response.status_code} {response.text}')
            raise ChatError(f'OpenAI API error: {response.status_code}')

        try:
            answer = response.json()['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ChatError(f'Unexpected LLM response: {e}') from e

        if not isinstance(answer, str):
            raise ChatError('Unexpected LLM response: content is not text')

        return answer.strip()
