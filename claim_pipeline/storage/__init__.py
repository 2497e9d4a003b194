"""Storage clients for claim artifacts and the policy vector index."""

from .artifact_store import ArtifactStore, S3ArtifactStore, LocalArtifactStore, classify_artifact
from .vector_store import PolicyVectorStore

__all__ = [
    'ArtifactStore',
    'S3ArtifactStore',
    'LocalArtifactStore',
    'classify_artifact',
    'PolicyVectorStore'
]
