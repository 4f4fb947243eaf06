"""Correlation of posted prompts with human replies."""

from .engine import CorrelationEngine
from .store import (
    CorrelationMode,
    CorrelationStore,
    Outcome,
    PendingRequest,
    Resolution,
)

__all__ = [
    "CorrelationEngine",
    "CorrelationMode",
    "CorrelationStore",
    "Outcome",
    "PendingRequest",
    "Resolution",
]
