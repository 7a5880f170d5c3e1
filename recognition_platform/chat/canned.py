"""
Canned chat responder.

Answers common questions about registered faces with keyword rules,
without calling an LLM.
"""

from typing import Sequence
from ..registrations import Registration
from .context import format_date, format_time

NO_FACES_RESPONSE = (
    'Currently, there are no registered faces in the system. '
    'Please register some faces first using the Registration tab.'
)


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def generate_response(query: str, registrations: Sequence[Registration]) -> str:
    """
    Answer a question about registered faces.

    Rules are checked in order: count, latest registration, a specific
    registered name, list of people, registration times, then a default.

    Args:
        query: User question
        registrations: Registrations, most recent first

    Returns:
        Answer text
    """
    lower_query = query.lower()

    if not registrations:
        return NO_FACES_RESPONSE

    if _contains_any(lower_query, ('how many', 'count')):
        return f'There are currently {len(registrations)} people registered in the system.'

    if _contains_any(lower_query, ('last', 'recent', 'latest')):
        latest = registrations[0]
        return (
            f'The last person registered was {latest.name} on '
            f'{format_date(latest.created_at)} at {format_time(latest.created_at)}.'
        )

    for registration in registrations:
        if registration.name and registration.name.lower() in lower_query:
            return (
                f'{registration.name} was registered on '
                f'{format_date(registration.created_at)} at {format_time(registration.created_at)}.'
            )

    if _contains_any(lower_query, ('who', 'list', 'all')):
        names = ', '.join(r.name for r in registrations)
        return f'The registered people are: {names}.'

    if _contains_any(lower_query, ('when', 'time')):
        times = ', '.join(f'{r.name} ({format_date(r.created_at)})' for r in registrations)
        return f'Registration times: {times}.'

    return (
        f'I can help you with information about the {len(registrations)} registered faces. '
        'You can ask me about registration counts, when someone was registered, '
        "who's in the system, or specific details about any registered person."
    )
