"""Model-backed agents of the claim pipeline."""

from .base import BaseClaimsAgent
from .retrieval_agent import (
    NoRetrievalNeeded,
    RetrievalDecisionAgent,
    RetrievalRequest,
    RetrievalRequested,
)
from .decision_engine import ClaimDecisionEngine

__all__ = [
    'BaseClaimsAgent',
    'NoRetrievalNeeded',
    'RetrievalDecisionAgent',
    'RetrievalRequest',
    'RetrievalRequested',
    'ClaimDecisionEngine'
]
