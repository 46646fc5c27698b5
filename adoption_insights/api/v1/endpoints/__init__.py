"""
API endpoints module
"""

from . import events, health

__all__ = [
    "events",
    "health"
]
