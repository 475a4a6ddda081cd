"""
Session management for the RoomRelay library.

Components:
    - SessionStore: per-room conversation state and trimming
    - RetentionSweeper: periodic pruning of aged messages and empty rooms
"""

from .persona import DEFAULT_PERSONA
from .store import SessionStore, SweepReport
from .sweeper import RetentionSweeper

__all__ = [
    "DEFAULT_PERSONA",
    "RetentionSweeper",
    "SessionStore",
    "SweepReport",
]
