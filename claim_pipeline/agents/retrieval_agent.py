"""Retrieval-decision agent: decides once whether policy text is needed."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .base import BaseClaimsAgent
from ..models.evidence import DocumentRecord, PolicyChunk, VisionRecord
from ..plugins.policy_retriever import TOOL_NAME, PolicyRetrieverPlugin
from ..utils.bedrock_client import BedrockClient
from ..utils.errors import AgentError

logger = logging.getLogger(__name__)

RETRIEVAL_AGENT_INSTRUCTIONS = (
    "You are an insurance claim triage assistant. Decide whether company policy "
    "documents are needed to evaluate a claim, and request them with the "
    f"{TOOL_NAME} tool when they are."
)

RETRIEVAL_DECISION_PROMPT = """You are evaluating an insurance claim. You have access to:
- Vehicle details from images: {vision}
- Document data: {documents}

Do you need to retrieve company policies to evaluate this claim? If yes, use the {tool_name} tool. Otherwise, proceed with evaluation without policy documents."""

DOCUMENT_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class NoRetrievalNeeded:
    """The agent made no tool invocation."""


@dataclass(frozen=True)
class RetrievalRequest:
    """One ``retrieve_policies`` invocation requested by the agent."""
    query: str
    limit: Optional[int] = None


@dataclass(frozen=True)
class RetrievalRequested:
    """The agent requested one or more policy searches, in invocation order."""
    requests: List[RetrievalRequest] = field(default_factory=list)


RetrievalDecision = Union[NoRetrievalNeeded, RetrievalRequested]


class RetrievalDecisionAgent(BaseClaimsAgent):
    """
    Single-round tool-use agent over the policy retriever.

    The model sees the extracted evidence and the ``retrieve_policies``
    capability exactly once. Its tool calls are executed and the union of the
    returned chunks is handed on; the model is never shown the results.
    """

    def __init__(
        self,
        bedrock: BedrockClient,
        policy_retriever: PolicyRetrieverPlugin,
        max_tokens: int = 3000
    ):
        super().__init__(
            name="retrieval-decision",
            instructions=RETRIEVAL_AGENT_INSTRUCTIONS,
            bedrock=bedrock,
        )
        self.policy_retriever = policy_retriever
        self.max_tokens = max_tokens

    async def decide(
        self,
        vision_records: Sequence[VisionRecord],
        document_records: Sequence[DocumentRecord]
    ) -> RetrievalDecision:
        """
        Ask the model whether policy retrieval is needed.

        Args:
            vision_records: Records from image extraction
            document_records: Records from document extraction

        Returns:
            NoRetrievalNeeded, or RetrievalRequested with the requested searches.
            A failed model call resolves to NoRetrievalNeeded.
        """
        prompt = self.build_prompt(vision_records, document_records)
        tool_config = {
            "tools": [self.policy_retriever.tool_spec()],
            "toolChoice": {"auto": {}}
        }

        try:
            response = await self.converse(
                prompt,
                temperature=0.0,
                max_tokens=self.max_tokens,
                tool_config=tool_config
            )
        except Exception as e:
            error = AgentError.retrieval_decision_failed(e)
            logger.warning(f"Retrieval decision error: {error}")
            return NoRetrievalNeeded()

        return self.parse_tool_uses(response.get("tool_uses", []))

    def parse_tool_uses(self, tool_uses: List[Dict[str, Any]]) -> RetrievalDecision:
        """
        Turn Converse toolUse blocks into a retrieval decision.

        Invocations of other tools or without a usable query are ignored.
        """
        requests: List[RetrievalRequest] = []

        for tool_use in tool_uses:
            if tool_use.get("name") != TOOL_NAME:
                logger.warning(f"Ignoring call to unknown tool: {tool_use.get('name')}")
                continue

            args = tool_use.get("input") or {}
            query = args.get("query")
            if not isinstance(query, str) or not query.strip():
                logger.warning("Ignoring retrieve_policies call without a query")
                continue

            requests.append(RetrievalRequest(query=query, limit=self._coerce_limit(args.get("limit"))))

        if not requests:
            logger.info("Agent did not request policy retrieval")
            return NoRetrievalNeeded()

        logger.info(f"Agent requested {len(requests)} policy retrieval(s)")
        return RetrievalRequested(requests=requests)

    async def retrieve(self, decision: RetrievalDecision, user_id: Optional[str]) -> List[PolicyChunk]:
        """
        Execute the requested searches and union their chunks.

        Chunks are de-duplicated by id; the first occurrence wins and
        invocation order is preserved.
        """
        if not isinstance(decision, RetrievalRequested):
            return []

        chunks: List[PolicyChunk] = []
        seen_ids = set()

        # Invocations run one after another so the union order is stable
        for request in decision.requests:
            results = await self.policy_retriever.retrieve_policies(
                query=request.query,
                limit=request.limit,
                user_id=user_id
            )
            logger.info(f"[Tool] {TOOL_NAME}('{request.query[:50]}') returned {len(results)} chunks")

            for chunk in results:
                # Chunks without an id cannot be matched, so all of them are kept
                if chunk.id:
                    if chunk.id in seen_ids:
                        continue
                    seen_ids.add(chunk.id)
                chunks.append(chunk)

        return chunks

    async def run(
        self,
        user_id: Optional[str],
        vision_records: Sequence[VisionRecord],
        document_records: Sequence[DocumentRecord]
    ) -> List[PolicyChunk]:
        """Decide, then retrieve. Returns the policy chunks for the decision engine."""
        decision = await self.decide(vision_records, document_records)
        return await self.retrieve(decision, user_id)

    def build_prompt(
        self,
        vision_records: Sequence[VisionRecord],
        document_records: Sequence[DocumentRecord]
    ) -> str:
        vision = [record.to_dict() for record in vision_records]
        documents = [
            {
                "text": record.raw_text[:DOCUMENT_PREVIEW_CHARS],
                "extractedFields": record.extracted_fields
            }
            for record in document_records
        ]
        return RETRIEVAL_DECISION_PROMPT.format(
            vision=json.dumps(vision, default=str),
            documents=json.dumps(documents, default=str),
            tool_name=TOOL_NAME
        )

    @staticmethod
    def _coerce_limit(value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            limit = int(value)
        except (TypeError, ValueError):
            return None
        return limit if limit > 0 else None
