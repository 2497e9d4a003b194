"""Claim pipeline orchestrator: user id in, ClaimDecision out."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple

from ..agents.decision_engine import ClaimDecisionEngine
from ..agents.retrieval_agent import RetrievalDecisionAgent
from ..models.artifact import Artifact
from ..models.claim import ClaimJob
from ..models.evidence import DocumentRecord, VisionRecord
from ..plugins.document_extractor import DocumentExtractorPlugin
from ..plugins.vision_extractor import VisionExtractorPlugin
from ..storage.artifact_store import ArtifactStore
from ..utils.errors import ClaimsProcessingError, NoArtifactsError
from ..utils.logging import log_context

logger = logging.getLogger(__name__)


class ClaimPipeline:
    """
    Sequences one claim job through every stage.

    Stages:
    1. List the user's artifacts (sequential; zero artifacts is fatal)
    2. Extract every image and every document concurrently
    3. Let the retrieval-decision agent fetch policy text if it wants it
    4. Produce the ClaimDecision

    Only fatal job errors leave ``run``: a missing user id, no artifacts,
    or a failed listing. Per-artifact, retrieval and decision failures are
    absorbed by the stage that hit them. The pipeline keeps no state between
    runs, so concurrent jobs may share one instance.
    """

    def __init__(
        self,
        artifact_store: ArtifactStore,
        vision_extractor: VisionExtractorPlugin,
        document_extractor: DocumentExtractorPlugin,
        retrieval_agent: RetrievalDecisionAgent,
        decision_engine: ClaimDecisionEngine,
        max_concurrency: Optional[int] = None
    ):
        """
        Initialize the pipeline.

        Args:
            artifact_store: Lists and downloads user uploads
            vision_extractor: Image extraction plugin
            document_extractor: Document extraction plugin
            retrieval_agent: Retrieval-decision agent
            decision_engine: Claim decision engine
            max_concurrency: Cap on simultaneous artifact extractions (None = unbounded)
        """
        self.artifact_store = artifact_store
        self.vision_extractor = vision_extractor
        self.document_extractor = document_extractor
        self.retrieval_agent = retrieval_agent
        self.decision_engine = decision_engine
        self.max_concurrency = max_concurrency

        logger.info(f"Initialized ClaimPipeline: max_concurrency={max_concurrency}")

    async def run(self, user_id: str) -> ClaimJob:
        """
        Run one claim job.

        Args:
            user_id: Claimant's user id

        Returns:
            The completed ClaimJob, with its decision set

        Raises:
            NoArtifactsError: If the user has no uploaded artifacts
            RetrievalError: If the artifact listing fails
        """
        with log_context(user_id=user_id):
            start_time = time.time()
            logger.info(f"Starting claim processing for userId: {user_id}")

            job = ClaimJob(user_id=user_id)

            job.artifacts = await self.artifact_store.list_artifacts(user_id)
            if not job.artifacts:
                raise NoArtifactsError.for_user(user_id)

            for artifact in job.unsupported:
                logger.info(f"Skipping unsupported artifact: {artifact.key}")

            job.vision_records, job.document_records = await self.extract_evidence(
                job.images, job.documents
            )

            job.policy_chunks = await self.retrieval_agent.run(
                user_id, job.vision_records, job.document_records
            )

            job.decision = await self.decision_engine.evaluate(
                user_id, job.vision_records, job.document_records, job.policy_chunks
            )

            logger.info(
                f"Completed claim processing in {time.time() - start_time:.2f}s: "
                f"{job.summary()}"
            )
            return job

    async def extract_evidence(
        self,
        images: List[Artifact],
        documents: List[Artifact]
    ) -> Tuple[List[VisionRecord], List[DocumentRecord]]:
        """
        Extract all images and all documents concurrently.

        Returns:
            (vision_records, document_records), one record per artifact
        """
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        logger.info(f"Processing {len(images)} image(s) and {len(documents)} document(s)")

        vision_group = asyncio.gather(
            *(self._extract_image(artifact, semaphore) for artifact in images)
        )
        document_group = asyncio.gather(
            *(self._extract_document(artifact, semaphore) for artifact in documents)
        )
        vision_records, document_records = await asyncio.gather(vision_group, document_group)

        return list(vision_records), list(document_records)

    async def _extract_image(
        self,
        artifact: Artifact,
        semaphore: Optional[asyncio.Semaphore]
    ) -> VisionRecord:
        async with _slot(semaphore):
            try:
                data = await self.artifact_store.download(artifact.key)
            except ClaimsProcessingError as e:
                logger.warning(f"Error processing image {artifact.key}: {e}")
                return VisionRecord.empty()

            record = await self.vision_extractor.extract(data, artifact.content_type)
            logger.info(f"Processed image: {artifact.key}")
            return record

    async def _extract_document(
        self,
        artifact: Artifact,
        semaphore: Optional[asyncio.Semaphore]
    ) -> DocumentRecord:
        async with _slot(semaphore):
            try:
                data = await self.artifact_store.download(artifact.key)
            except ClaimsProcessingError as e:
                logger.warning(f"Error processing document {artifact.key}: {e}")
                return DocumentRecord.empty()

            record = await self.document_extractor.extract(data, artifact.content_type)
            logger.info(f"Processed document: {artifact.key}")
            return record


@asynccontextmanager
async def _slot(semaphore: Optional[asyncio.Semaphore]) -> AsyncIterator[None]:
    if semaphore is None:
        yield
        return
    async with semaphore:
        yield
