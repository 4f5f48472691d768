"""Filesystem naming helpers shared by the downloader and subscriptions."""

import re

MAX_NAME_LENGTH = 100


def sanitize_filename(name: str, fallback: str = "episode", max_length: int = MAX_NAME_LENGTH) -> str:
    """Produce a filesystem-safe name derived from the given string.

    Args:
        name: Original name
        fallback: Value returned when nothing usable is left
        max_length: Maximum length of the result

    Returns:
        Sanitized name safe for filesystem
    """
    # Remove or replace invalid characters
    safe = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", name or "")
    # Replace multiple spaces/underscores with single
    safe = re.sub(r"[\s_]+", "_", safe)
    # Remove leading/trailing whitespace and dots
    safe = safe.strip(" ._")
    if len(safe) > max_length:
        safe = safe[:max_length].rstrip(" ._")
    return safe or fallback
