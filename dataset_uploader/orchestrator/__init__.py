"""Orchestrator package - coordinates staged batch uploads."""
from .accumulator import FileAccumulator
from .aggregator import BatchResultAggregator, BatchVerdict
from .core import UploadOrchestrator
from .dispatcher import CancellationToken, UploadDispatcher
from .session import SessionPhase, SessionState, UploadSession, transition

__all__ = [
    "UploadOrchestrator",
    "FileAccumulator",
    "UploadDispatcher",
    "CancellationToken",
    "BatchResultAggregator",
    "BatchVerdict",
    "UploadSession",
    "SessionState",
    "SessionPhase",
    "transition",
]
