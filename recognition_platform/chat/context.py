"""
Context building for chat answers.

Summarizes the registered faces as text for the LLM prompt and the
canned responder.
"""

from datetime import datetime
from typing import Optional, Sequence
from ..registrations import Registration

NO_REGISTRATIONS = 'No faces are currently registered in the database.'


def format_date(value: Optional[datetime]) -> str:
    """Format as M/D/YYYY, or 'unknown date'."""
    if value is None:
        return 'unknown date'
    return f'{value.month}/{value.day}/{value.year}'


def format_time(value: Optional[datetime]) -> str:
    """Format as H:MM:SS AM/PM, or 'unknown time'."""
    if value is None:
        return 'unknown time'
    hour = value.hour % 12 or 12
    suffix = 'AM' if value.hour < 12 else 'PM'
    return f'{hour}:{value.minute:02d}:{value.second:02d} {suffix}'


def describe_registration(registration: Registration) -> str:
    return (
        f'{registration.name} (registered on {format_date(registration.created_at)} '
        f'at {format_time(registration.created_at)})'
    )


def build_context_string(registrations: Sequence[Registration]) -> str:
    """
    Build the database summary passed to the LLM.

    Args:
        registrations: Registrations, most recent first

    Returns:
        One-sentence summary of the registered people
    """
    if not registrations:
        return NO_REGISTRATIONS

    people = ', '.join(describe_registration(r) for r in registrations)
    return f'Registered faces database contains {len(registrations)} people: {people}.'
