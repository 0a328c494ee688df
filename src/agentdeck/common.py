"""Common utility functions for the project."""

from enum import Enum
from typing import (
    Any,
    Dict,
    Optional,
)


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def truncate(text: str, limit: int, *, keep: str = "head") -> str:
    """Clip *text* to *limit* characters, keeping either the head or the tail."""
    if len(text) <= limit:
        return text
    if keep == "tail":
        return text[-limit:]
    return text[:limit]


def json_object(response: Any) -> Optional[Dict[str, Any]]:
    """Decode an HTTP response body that should be a JSON object; None when it is not."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
