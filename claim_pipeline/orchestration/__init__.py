"""Orchestration layer for the claim evaluation pipeline."""

from .pipeline import ClaimPipeline

__all__ = [
    "ClaimPipeline"
]
