"""
In-process storage for session trackers.
"""

from .registry import SessionRegistry

__all__ = ["SessionRegistry"]
