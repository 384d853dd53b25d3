"""Error message formatting for CLI display.

Resolution errors already render their hint on a second line; other
exceptions with an empty ``str()`` (TimeoutError, CancelledError) get a
friendly fallback instead of a bare "Error: ".
"""

from __future__ import annotations

import asyncio

from rich.markup import escape as _escape_markup


FRIENDLY_MESSAGES: dict[type, str] = {
    TimeoutError: "Request timed out. The remote may be slow or unreachable.",
    asyncio.CancelledError: "Operation was cancelled.",
    ConnectionResetError: "Connection was reset by the server.",
    KeyboardInterrupt: "Operation interrupted by user.",
}


def format_error_message(e: BaseException, *, include_type: bool = True) -> str:
    """Format an exception into a useful display message.

    Args:
        e: The exception to format
        include_type: Whether to prefix the exception type name

    Returns:
        A non-empty, user-friendly error message

    Examples:
        >>> format_error_message(ConfigError("bad alias", hint="add '@'"))
        "ConfigError: bad alias\\nHint: add '@'"

        >>> format_error_message(TimeoutError())
        'TimeoutError: Request timed out. The remote may be slow or unreachable.'
    """
    error_type = type(e).__name__
    error_str = str(e)

    if error_str:
        if include_type and error_type not in error_str:
            return f"{error_type}: {error_str}"
        return error_str

    for exc_type, friendly_msg in FRIENDLY_MESSAGES.items():
        if isinstance(e, exc_type):
            return f"{error_type}: {friendly_msg}"

    return f"{error_type}: (no additional details)"


def escape_markup(value: object) -> str:
    """Escape a value for safe interpolation into Rich markup strings."""
    return _escape_markup(str(value))
