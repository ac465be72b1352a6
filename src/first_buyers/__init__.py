"""
First Buyers Agent package initializer.

This package exposes the primary function ``analyze_first_buyers`` for
external usage.  Other internal modules (e.g. bot, API) should be imported
explicitly from their respective files.
"""

from .analyzer import analyze_first_buyers  # noqa: F401

__all__ = ["analyze_first_buyers"]
