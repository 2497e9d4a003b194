"""
Main entry point for claim evaluation.

Builds the pipeline from configuration and exposes ``evaluate_claim`` for the
queue handler and a small command-line runner for local evaluation.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .agents.decision_engine import ClaimDecisionEngine
from .agents.retrieval_agent import RetrievalDecisionAgent
from .orchestration.pipeline import ClaimPipeline
from .plugins.document_extractor import DocumentExtractorPlugin
from .plugins.pdf_extractor import PDFExtractorPlugin
from .plugins.policy_retriever import PolicyRetrieverPlugin
from .plugins.vision_extractor import VisionExtractorPlugin
from .storage.artifact_store import ArtifactStore, LocalArtifactStore, S3ArtifactStore
from .storage.vector_store import PolicyVectorStore
from .utils.bedrock_client import BedrockClient
from .utils.config import Config
from .utils.errors import ClaimsProcessingError, ErrorContext, ErrorType
from .utils.logging import setup_logging

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Built once per process and reused by every job it handles
_pipeline: Optional[ClaimPipeline] = None


def build_artifact_store(config: Config) -> ArtifactStore:
    """Create the artifact store selected by ``artifact_store.backend``."""
    store_config = config.artifact_store
    if store_config.backend == "local":
        return LocalArtifactStore(root_dir=store_config.local_root, prefix=store_config.prefix)
    return S3ArtifactStore(
        bucket_name=store_config.bucket_name,
        region=config.aws_region,
        prefix=store_config.prefix
    )


def build_pipeline(
    config: Config,
    bedrock_client: Optional[BedrockClient] = None,
    artifact_store: Optional[ArtifactStore] = None
) -> ClaimPipeline:
    """
    Wire every component of the pipeline from configuration.

    Args:
        config: Loaded configuration
        bedrock_client: Optional pre-built Bedrock client
        artifact_store: Optional pre-built artifact store

    Returns:
        Ready-to-run ClaimPipeline

    Raises:
        ClaimsProcessingError: If a component cannot be constructed
    """
    try:
        logger.info(
            f"Initializing claim pipeline: region={config.aws_region}, "
            f"model={config.bedrock.model_id}, store={config.artifact_store.backend}"
        )

        bedrock = bedrock_client or BedrockClient(
            region=config.aws_region,
            model_id=config.bedrock.model_id,
            embedding_model_id=config.bedrock.embedding_model_id,
            timeout=config.bedrock.timeout
        )

        store = artifact_store or build_artifact_store(config)

        # The index is loaded lazily on the first policy search
        vector_store = PolicyVectorStore(
            index_path=config.vector_store.index_path,
            metadata_path=config.vector_store.metadata_path,
            dimension=config.vector_store.dimension
        )

        retriever = PolicyRetrieverPlugin(
            vector_store=vector_store,
            bedrock_client=bedrock,
            source=config.retrieval.source,
            default_limit=config.retrieval.default_limit
        )

        extraction = config.extraction
        vision_extractor = VisionExtractorPlugin(
            bedrock_client=bedrock,
            temperature=extraction.temperature,
            max_tokens=extraction.max_tokens
        )
        document_extractor = DocumentExtractorPlugin(
            bedrock_client=bedrock,
            pdf_extractor=PDFExtractorPlugin(),
            char_budget=extraction.document_char_budget,
            temperature=extraction.temperature,
            max_tokens=extraction.max_tokens
        )

        retrieval_agent = RetrievalDecisionAgent(
            bedrock=bedrock,
            policy_retriever=retriever,
            max_tokens=config.decision.max_tokens
        )
        decision_engine = ClaimDecisionEngine(
            bedrock=bedrock,
            max_tokens=config.decision.max_tokens,
            document_text_chars=config.decision.document_text_chars,
            policy_content_chars=config.decision.policy_content_chars
        )

        return ClaimPipeline(
            artifact_store=store,
            vision_extractor=vision_extractor,
            document_extractor=document_extractor,
            retrieval_agent=retrieval_agent,
            decision_engine=decision_engine,
            max_concurrency=extraction.max_concurrency
        )

    except ClaimsProcessingError:
        raise

    except Exception as e:
        logger.error(f"Pipeline initialization failed: {str(e)}", exc_info=True)
        raise ClaimsProcessingError(
            ErrorContext(
                error_type=ErrorType.INITIALIZATION_FAILED,
                message=f"Failed to initialize claim pipeline: {str(e)}",
                recoverable=False,
                original_exception=e
            )
        ) from e


def get_pipeline(config_path: str = "config.yaml") -> ClaimPipeline:
    """Return the process-wide pipeline, building it on first use."""
    global _pipeline

    if _pipeline is None:
        config = Config.load(config_path)
        setup_logging(
            level=config.logging.level,
            log_format=config.logging.format,
            log_file=config.logging.file
        )
        _pipeline = build_pipeline(config)
        logger.info("Claim pipeline initialized")

    return _pipeline


async def evaluate_claim(user_id: str, pipeline: Optional[ClaimPipeline] = None) -> Dict[str, Any]:
    """
    Evaluate one user's claim.

    Args:
        user_id: Claimant's user id
        pipeline: Pipeline to use (defaults to the process-wide one)

    Returns:
        The ClaimDecision in its wire shape

    Raises:
        ClaimsProcessingError: On fatal job errors
    """
    pipeline = pipeline or get_pipeline()
    job = await pipeline.run(user_id)
    return job.decision.to_dict()


def main(argv: Optional[list] = None) -> int:
    """Evaluate a claim from the command line and print the decision as JSON."""
    parser = argparse.ArgumentParser(description="Evaluate an insurance claim for a user")
    parser.add_argument("user_id", help="User id whose uploads make up the claim")
    parser.add_argument("--config", default="config.yaml", help="Path to configuration file")
    parser.add_argument(
        "--local-root",
        help="Read uploads from this directory instead of S3"
    )
    args = parser.parse_args(argv)

    try:
        config = Config.load(args.config)
        if args.local_root:
            config.artifact_store.backend = "local"
            config.artifact_store.local_root = args.local_root

        setup_logging(
            level=config.logging.level,
            log_format=config.logging.format,
            log_file=config.logging.file
        )

        pipeline = build_pipeline(config)
        decision = asyncio.run(evaluate_claim(args.user_id, pipeline))

    except ClaimsProcessingError as e:
        logger.error(f"Claim evaluation failed: {e}")
        print(json.dumps({"error": e.to_dict()}, indent=2, default=str), file=sys.stderr)
        return 1

    print(json.dumps(decision, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
