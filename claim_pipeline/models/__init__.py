"""Core data models for claim jobs, evidence and decisions."""

from .artifact import Artifact, ArtifactKind
from .claim import ClaimJob
from .decision import ClaimDecision, DecisionOutcome, EVALUATION_ERROR_FACTOR
from .evidence import DocumentRecord, PolicyChunk, VisionRecord

__all__ = [
    'Artifact',
    'ArtifactKind',
    'ClaimJob',
    'ClaimDecision',
    'DecisionOutcome',
    'EVALUATION_ERROR_FACTOR',
    'DocumentRecord',
    'PolicyChunk',
    'VisionRecord'
]
