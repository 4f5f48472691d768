"""Command line interface for podsync."""
