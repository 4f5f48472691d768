"""
Pytest configuration and fixtures for podsync tests.

This module runs before any test imports. PODSYNC_* variables from the
developer's environment are removed so configuration defaults are
deterministic.
"""

import os

for _name in list(os.environ):
    if _name.startswith("PODSYNC_"):
        del os.environ[_name]
