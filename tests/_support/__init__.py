"""
Test support utilities for toolmaster tests.

Helpers here are plain classes; conftest.py exposes the commonly used ones
as fixtures.
"""
