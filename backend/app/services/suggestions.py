"""Free-text suggestion matching for text-valued parameters."""

from typing import Sequence

from app.schemas.blood_values import ParameterValue


def candidate_pool(parameter: ParameterValue, global_pool: Sequence[str]) -> list[str]:
    """Return the parameter's own suggestion descriptions, or the shared pool."""
    if parameter.suggestions:
        return [s.description for s in parameter.suggestions]
    return list(global_pool)


def suggest(parameter: ParameterValue, query: str, global_pool: Sequence[str]) -> list[str]:
    """Case-insensitive substring match over the candidate pool.

    Args:
        parameter: The text parameter being edited.
        query: Already-lowercased search text; empty returns the whole pool.
        global_pool: Shared autocomplete values used when the parameter
            declares no suggestions of its own.

    Returns:
        Matches in source order.
    """
    pool = candidate_pool(parameter, global_pool)
    if not query:
        return pool
    return [text for text in pool if query in text.lower()]
