"""Utility modules for podsync."""

from .file_utils import sanitize_filename

__all__ = [
    'sanitize_filename',
]
