"""
Core package for Stillwatch.

Contains the headless SessionEngine, its scheduler and penalty policy, and
the asyncio runner that drives them. Zero UI dependencies.
"""

from core.engine import SessionEngine
from core.errors import InputUnavailable, InvalidConfig, SessionError

__all__ = ["SessionEngine", "InputUnavailable", "InvalidConfig", "SessionError"]
