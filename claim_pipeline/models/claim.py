"""Claim job data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .artifact import Artifact, ArtifactKind
from .decision import ClaimDecision
from .evidence import DocumentRecord, PolicyChunk, VisionRecord


@dataclass
class ClaimJob:
    """
    One end-to-end pipeline execution for a single user's claim.

    Lives only for the duration of one run; persistence is left to callers.

    Attributes:
        user_id: Tenant/user identifier; the job's identity
        artifacts: Every artifact listed for the user, unsupported ones included
        vision_records: One record per image artifact
        document_records: One record per document artifact
        policy_chunks: Policy text carried into the decision
        decision: Terminal decision, set once the run completes
        started_at: When the run started
    """
    user_id: str
    artifacts: List[Artifact] = field(default_factory=list)
    vision_records: List[VisionRecord] = field(default_factory=list)
    document_records: List[DocumentRecord] = field(default_factory=list)
    policy_chunks: List[PolicyChunk] = field(default_factory=list)
    decision: Optional[ClaimDecision] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def artifacts_of_kind(self, kind: ArtifactKind) -> List[Artifact]:
        return [a for a in self.artifacts if a.kind is kind]

    @property
    def images(self) -> List[Artifact]:
        return self.artifacts_of_kind(ArtifactKind.IMAGE)

    @property
    def documents(self) -> List[Artifact]:
        return self.artifacts_of_kind(ArtifactKind.DOCUMENT)

    @property
    def unsupported(self) -> List[Artifact]:
        return self.artifacts_of_kind(ArtifactKind.UNSUPPORTED)

    def summary(self) -> Dict[str, Any]:
        """Counts and outcome, suitable for a single log line."""
        return {
            "userId": self.user_id,
            "artifacts": len(self.artifacts),
            "images": len(self.images),
            "documents": len(self.documents),
            "unsupported": len(self.unsupported),
            "policyChunks": len(self.policy_chunks),
            "decision": self.decision.decision.value if self.decision else None,
            "confidence": self.decision.confidence if self.decision else None,
        }
