"""Claim decision data model."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

EVALUATION_ERROR_FACTOR = "Evaluation error occurred"


class DecisionOutcome(str, Enum):
    """Final outcome of a claim evaluation."""
    APPROVED = "Approved"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class ClaimDecision:
    """
    Terminal output of a claim job.

    Attributes:
        decision: Approved or Rejected
        confidence: Confidence level, always within [0, 100]
        reasoning: Explanation of the decision
        policy_references: Chunk ids or free-text policy citations, in order
        key_factors: Factors that influenced the decision, in order
    """
    decision: DecisionOutcome
    confidence: float
    reasoning: str
    policy_references: List[str] = field(default_factory=list)
    key_factors: List[str] = field(default_factory=list)

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "decision", DecisionOutcome(self.decision))
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    @classmethod
    def fail_closed(cls, cause: str) -> "ClaimDecision":
        """
        Safe default used when the model output cannot be trusted.

        Args:
            cause: Short description of what went wrong

        Returns:
            A Rejected decision with zero confidence
        """
        return cls(
            decision=DecisionOutcome.REJECTED,
            confidence=0,
            reasoning=f"Error during evaluation: {cause}",
            policy_references=[],
            key_factors=[EVALUATION_ERROR_FACTOR],
        )

    @property
    def approved(self) -> bool:
        return self.decision is DecisionOutcome.APPROVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "policyReferences": list(self.policy_references),
            "keyFactors": list(self.key_factors),
        }


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value into [0, 100]."""
    return max(0.0, min(100.0, float(value)))
