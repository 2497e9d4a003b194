"""Claim decision engine: evidence plus policy text in, one ClaimDecision out."""

import json
import logging
from typing import Any, Dict, Sequence

from .base import BaseClaimsAgent
from ..models.decision import ClaimDecision
from ..models.evidence import DocumentRecord, PolicyChunk, VisionRecord
from ..models.schemas import DecisionPayload
from ..utils.bedrock_client import BedrockClient
from ..utils.errors import AgentError, ClaimsProcessingError
from ..utils.response_formatter import ResponseFormatter

logger = logging.getLogger(__name__)

# Fixed: identical inputs must reproduce identical decisions
DECISION_TEMPERATURE = 0.0

DECISION_INSTRUCTIONS = """You are an expert insurance claim evaluator. Your task is to analyze all available information and make a deterministic decision on whether to approve or reject an insurance claim.

Rules for evaluation:
1. Carefully analyze all vehicle damage details from images
2. Review documents for claim information, policy details, and incident reports
3. Compare against policy documents retrieved from the knowledge base
4. Ensure the claim is within policy coverage
5. Verify all required information is present
6. Check for any inconsistencies or fraud indicators

You must provide:
- A clear decision: "Approved" or "Rejected"
- Confidence level (0-100) based on available information
- Detailed reasoning for your decision
- References to relevant policy sections
- Key factors that influenced your decision

Be thorough, accurate, and consistent. The same input should always produce the same output."""

DECISION_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "decision": {
            "type": "string",
            "enum": ["Approved", "Rejected"],
            "description": "The final decision on the claim"
        },
        "confidence": {
            "type": "number",
            "minimum": 0,
            "maximum": 100,
            "description": "Confidence level from 0 to 100"
        },
        "reasoning": {
            "type": "string",
            "description": "Detailed reasoning for the decision"
        },
        "policyReferences": {
            "type": "array",
            "items": {"type": "string"},
            "description": "References to relevant policy sections or document IDs"
        },
        "keyFactors": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Key factors that influenced the decision"
        }
    },
    "required": ["decision", "confidence", "reasoning", "policyReferences", "keyFactors"]
}

DECISION_PROMPT = """Evaluate the following insurance claim for user ID: {user_id}

VEHICLE DETAILS FROM IMAGES:
{vision}

DOCUMENT INFORMATION:
{documents}

POLICY DOCUMENTS:
{policies}

You must respond with a valid JSON object matching this exact schema:
{schema}

Respond ONLY with the JSON object, no additional text or markdown formatting."""

NO_VISION_TEXT = "No vehicle images were processed."
NO_DOCUMENTS_TEXT = "No documents were processed."
NO_POLICIES_TEXT = "No policy documents were retrieved from the knowledge base."


class ClaimDecisionEngine(BaseClaimsAgent):
    """
    Produces the terminal ClaimDecision for a claim job.

    The model is called once at temperature 0. Its answer is parsed and
    validated against DecisionPayload; confidence is clamped into [0, 100].
    Anything that cannot be trusted becomes the fail-closed Rejected decision.
    The engine holds no per-claim state, so re-evaluating a redelivered job
    is always safe.
    """

    def __init__(
        self,
        bedrock: BedrockClient,
        max_tokens: int = 3000,
        document_text_chars: int = 2000,
        policy_content_chars: int = 1500
    ):
        """
        Initialize decision engine.

        Args:
            bedrock: BedrockClient for the decision call
            max_tokens: Maximum tokens to generate
            document_text_chars: Raw text characters shown per document
            policy_content_chars: Content characters shown per policy chunk
        """
        super().__init__(
            name="claim-decision",
            instructions=DECISION_INSTRUCTIONS,
            bedrock=bedrock,
        )
        self.max_tokens = max_tokens
        self.document_text_chars = document_text_chars
        self.policy_content_chars = policy_content_chars

    async def evaluate(
        self,
        user_id: str,
        vision_records: Sequence[VisionRecord],
        document_records: Sequence[DocumentRecord],
        policy_chunks: Sequence[PolicyChunk]
    ) -> ClaimDecision:
        """
        Evaluate a claim.

        Args:
            user_id: Claimant's user id
            vision_records: Records from image extraction
            document_records: Records from document extraction
            policy_chunks: Policy text retrieved for this claim

        Returns:
            A well-formed ClaimDecision; never raises
        """
        logger.info("Starting claim evaluation")

        try:
            prompt = self.build_prompt(user_id, vision_records, document_records, policy_chunks)
            response = await self.converse(
                prompt,
                temperature=DECISION_TEMPERATURE,
                max_tokens=self.max_tokens
            )
            decision = self.parse_response(response.get("text", ""))

        except Exception as e:
            cause = e.context.message if isinstance(e, ClaimsProcessingError) else (str(e) or type(e).__name__)
            error = e if isinstance(e, AgentError) else AgentError.decision_parse_failed(e)
            logger.warning(f"Decision error, failing closed: {error}")
            return ClaimDecision.fail_closed(cause)

        logger.info(
            f"Claim evaluation completed: {decision.decision.value} "
            f"(confidence: {decision.confidence}%)"
        )
        return decision

    def parse_response(self, response_text: str) -> ClaimDecision:
        """
        Parse and validate the decision model's answer.

        Raises:
            ValueError: If no JSON object is present
            pydantic.ValidationError: If the object fails schema validation
        """
        payload = ResponseFormatter.extract_json_object(response_text)
        if payload is None:
            raise ValueError("No valid JSON found in model response")

        validated = DecisionPayload.model_validate(payload)

        # ClaimDecision clamps confidence into [0, 100]
        return ClaimDecision(
            decision=validated.decision,
            confidence=validated.confidence,
            reasoning=validated.reasoning,
            policy_references=list(validated.policy_references),
            key_factors=list(validated.key_factors),
        )

    def build_prompt(
        self,
        user_id: str,
        vision_records: Sequence[VisionRecord],
        document_records: Sequence[DocumentRecord],
        policy_chunks: Sequence[PolicyChunk]
    ) -> str:
        return DECISION_PROMPT.format(
            user_id=user_id,
            vision=self.format_vision(vision_records),
            documents=self.format_documents(document_records),
            policies=self.format_policies(policy_chunks),
            schema=json.dumps(DECISION_JSON_SCHEMA, indent=2)
        )

    @staticmethod
    def format_vision(vision_records: Sequence[VisionRecord]) -> str:
        if not vision_records:
            return NO_VISION_TEXT

        sections = []
        for index, record in enumerate(vision_records, start=1):
            sections.append(
                f"Image {index}:\n"
                f"- Vehicle Color: {record.vehicle_color or 'Not detected'}\n"
                f"- Vehicle Model: {record.vehicle_model or 'Not detected'}\n"
                f"- Plate Number: {record.plate_number or 'Not detected'}\n"
                f"- Damage Area: {record.damage_area or 'Not detected'}\n"
                f"- Description: {record.damage_description or 'No description available'}"
            )
        return "\n\n".join(sections)

    def format_documents(self, document_records: Sequence[DocumentRecord]) -> str:
        if not document_records:
            return NO_DOCUMENTS_TEXT

        sections = []
        for index, record in enumerate(document_records, start=1):
            fields = "\n".join(
                f"  - {key}: {_render_value(value)}"
                for key, value in record.extracted_fields.items()
            )
            text = _excerpt(record.raw_text, self.document_text_chars)
            sections.append(
                f"Document {index}:\n"
                f"Extracted Fields:\n"
                f"{fields or '  - No structured fields extracted'}\n\n"
                f"Text Content (first {self.document_text_chars} chars):\n"
                f"{text}"
            )
        return "\n\n".join(sections)

    def format_policies(self, policy_chunks: Sequence[PolicyChunk]) -> str:
        if not policy_chunks:
            return NO_POLICIES_TEXT

        sections = []
        for index, chunk in enumerate(policy_chunks, start=1):
            metadata = "\n".join(
                f"  - {key}: {_render_value(value)}"
                for key, value in chunk.metadata.items()
            )
            sections.append(
                f"Policy Document {index} (ID: {chunk.id}):\n"
                f"Metadata:\n"
                f"{metadata or '  - No metadata available'}\n\n"
                f"Content:\n"
                f"{_excerpt(chunk.content, self.policy_content_chars)}"
            )
        return "\n\n".join(sections)


def _excerpt(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, sort_keys=True)
