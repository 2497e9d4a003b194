"""Policy retrieval plugin for Semantic Kernel using FAISS vector store."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from semantic_kernel.functions import kernel_function

from ..models.evidence import PolicyChunk
from ..storage.vector_store import PolicyVectorStore
from ..utils.bedrock_client import BedrockClient
from ..utils.errors import VectorStoreError

logger = logging.getLogger(__name__)

TOOL_NAME = "retrieve_policies"
TOOL_DESCRIPTION = (
    "Retrieves company insurance policies from the knowledge base. Use this tool "
    "when you need to fetch policy documents for claim evaluation. The tool searches "
    "for policies matching the query and source filter."
)

# Metadata keys that become PolicyChunk fields rather than chunk metadata
_CHUNK_FIELDS = ("id", "chunk_id", "text", "content", "score")


class PolicyRetrieverPlugin:
    """
    Semantic Kernel plugin for retrieving policy text chunks.

    Every search is scoped by a metadata filter. The tenant-level search
    filters on the source tag only; when it finds nothing and a user id is
    known, one more search filters on source and user id together.
    Retrieval failures are logged and reported as no chunks.
    """

    def __init__(
        self,
        vector_store: PolicyVectorStore,
        bedrock_client: BedrockClient,
        source: str = "insurance_claim_policy",
        default_limit: int = 10
    ):
        """
        Initialize policy retriever plugin.

        Args:
            vector_store: Configured PolicyVectorStore instance
            bedrock_client: BedrockClient for generating query embeddings
            source: Source tag every search is scoped to
            default_limit: Result count used when the caller gives none
        """
        self.vector_store = vector_store
        self.bedrock = bedrock_client
        self.source = source
        self.default_limit = default_limit
        logger.info(f"Initialized PolicyRetrieverPlugin: source={source}")

    async def search(
        self,
        query: str,
        limit: int,
        scope_filter: Dict[str, Any]
    ) -> List[PolicyChunk]:
        """
        Run one filtered similarity search.

        Args:
            query: Natural language query
            limit: Maximum number of chunks to return
            scope_filter: Metadata key/value pairs that must all match

        Returns:
            Chunks ranked by score descending; [] on any failure
        """
        try:
            await self.vector_store.ensure_loaded()

            query_embedding = await self.bedrock.generate_embedding(query)

            results = await asyncio.to_thread(
                self.vector_store.search,
                query_embedding,
                limit,
                scope_filter
            )

        except Exception as e:
            error = VectorStoreError.search_failed(query, e)
            logger.warning(f"Policy search error: {error}")
            return []

        chunks = [self._to_chunk(result) for result in results]
        chunks.sort(key=lambda chunk: chunk.score, reverse=True)
        return chunks[:limit]

    @kernel_function(
        name=TOOL_NAME,
        description=TOOL_DESCRIPTION
    )
    async def retrieve_policies(
        self,
        query: str,
        limit: Optional[int] = None,
        user_id: Optional[str] = None
    ) -> List[PolicyChunk]:
        """
        Retrieve policy chunks for a query, widening scope only when empty.

        Args:
            query: Search query (e.g. "coverage terms", "claim requirements")
            limit: Maximum number of chunks per search (default: 10)
            user_id: Claimant's user id, enables the user-scoped fallback

        Returns:
            List of PolicyChunk, possibly empty
        """
        if limit is None or limit <= 0:
            limit = self.default_limit

        logger.info(f"Retrieving policies: query='{query[:50]}', limit={limit}")

        chunks = await self.search(query, limit, {"source": self.source})

        # Fallback runs only when the tenant-level search is empty, never to top up
        if not chunks and user_id:
            logger.info("No policies found with source filter, trying with userId filter")
            fallback_chunks = await self.search(
                query,
                limit,
                {"source": self.source, "userId": user_id}
            )
            chunks.extend(fallback_chunks)

        logger.info(f"Retrieved {len(chunks)} policy chunks")
        return chunks

    def tool_spec(self) -> Dict[str, Any]:
        """
        Describe ``retrieve_policies`` as a Bedrock Converse tool.

        Returns:
            Dict suitable for ``toolConfig["tools"]``
        """
        return {
            "toolSpec": {
                "name": TOOL_NAME,
                "description": TOOL_DESCRIPTION,
                "inputSchema": {
                    "json": {
                        "type": "object",
                        "properties": {
                            "query": {
                                "type": "string",
                                "description": (
                                    "The search query to find relevant policies "
                                    "(e.g., \"company policy\", \"coverage terms\", "
                                    "\"claim requirements\")"
                                )
                            },
                            "limit": {
                                "type": "integer",
                                "description": (
                                    f"Maximum number of policies to retrieve "
                                    f"(default: {self.default_limit})"
                                )
                            }
                        },
                        "required": ["query"]
                    }
                }
            }
        }

    @staticmethod
    def _to_chunk(result: Dict[str, Any]) -> PolicyChunk:
        chunk_id = result.get("id", result.get("chunk_id", ""))
        content = result.get("text", result.get("content", "")) or ""
        metadata = {k: v for k, v in result.items() if k not in _CHUNK_FIELDS}
        return PolicyChunk(
            id=str(chunk_id),
            content=content,
            metadata=metadata,
            score=float(result.get("score", 0.0))
        )
