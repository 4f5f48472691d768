"""podsync - a personal podcast feed synchronizer."""

__version__ = "0.1.0"
