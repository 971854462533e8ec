"""LIKE patterns for the free-text search boxes."""

LIKE_ESCAPE = '\\'


def contains_pattern(term: str) -> str:
    """
    Pattern matching ``term`` anywhere in a column.

    ``%``, ``_`` and the escape character in the term match literally; use
    together with ``.like(pattern, escape=LIKE_ESCAPE)``.

    Examples:
        contains_pattern('berg') -> "%berg%"
        contains_pattern('50%_off') -> "%50\\%\\_off%"
    """
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace('%', LIKE_ESCAPE + '%')
        .replace('_', LIKE_ESCAPE + '_')
    )
    return f'%{escaped}%'
