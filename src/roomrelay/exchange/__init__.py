"""
Exchange execution for the RoomRelay library.

Components:
    - DeadlineBudget / TimeoutController: idle and hard deadlines of one exchange
    - StreamingOrchestrator: context building, backend call, relay and bookkeeping
"""

from .deadline import DeadlineBudget, TimeoutController
from .orchestrator import StreamingOrchestrator

__all__ = ["DeadlineBudget", "StreamingOrchestrator", "TimeoutController"]
