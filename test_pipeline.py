"""End-to-end tests for the claim pipeline with in-process fakes."""

import asyncio
import json

import pytest
from botocore.exceptions import IncompleteReadError

from claim_pipeline.agents.decision_engine import ClaimDecisionEngine
from claim_pipeline.agents.retrieval_agent import RetrievalDecisionAgent
from claim_pipeline.models.decision import DecisionOutcome
from claim_pipeline.models.evidence import DocumentRecord, VisionRecord
from claim_pipeline.orchestration.pipeline import ClaimPipeline
from claim_pipeline.plugins.document_extractor import DocumentExtractorPlugin
from claim_pipeline.plugins.policy_retriever import PolicyRetrieverPlugin
from claim_pipeline.plugins.vision_extractor import VisionExtractorPlugin
from claim_pipeline.storage.artifact_store import S3ArtifactStore
from claim_pipeline.utils.errors import NoArtifactsError, RetrievalError
from conftest import (
    APPROVED_JSON,
    DOCUMENT_JSON,
    VISION_JSON,
    FakeBedrockClient,
    FakeS3Client,
    InMemoryArtifactStore,
    text_response,
    tool_use_response,
)

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16
REPORT = b"Police report: vehicle ABC-1234 rear-ended on 2024-03-15 at 5th Ave."


class EmptyVectorStore:
    async def ensure_loaded(self):
        return None

    def search(self, query_embedding, top_k=5, filters=None):
        return []


def route_by_prompt(call):
    """Answer each kind of model call by looking at what was sent."""
    content = call["messages"][-1]["content"]
    text = "\n".join(block.get("text", "") for block in content)
    if any("image" in block for block in content):
        return text_response(json.dumps(VISION_JSON))
    if call["tool_config"]:
        return text_response("No policy retrieval needed.")
    if "Extract structured information" in text:
        return text_response(json.dumps(DOCUMENT_JSON))
    return text_response(json.dumps(APPROVED_JSON))


def make_pipeline(store, bedrock, max_concurrency=None):
    retriever = PolicyRetrieverPlugin(EmptyVectorStore(), bedrock)
    return ClaimPipeline(
        artifact_store=store,
        vision_extractor=VisionExtractorPlugin(bedrock),
        document_extractor=DocumentExtractorPlugin(bedrock),
        retrieval_agent=RetrievalDecisionAgent(bedrock, retriever),
        decision_engine=ClaimDecisionEngine(bedrock),
        max_concurrency=max_concurrency,
    )


@pytest.mark.asyncio
async def test_full_run_produces_decision():
    store = InMemoryArtifactStore({
        "users/u1/front.jpg": JPEG,
        "users/u1/report.txt": REPORT,
        "users/u1/clip.mp4": b"video",
    })
    bedrock = FakeBedrockClient(default=route_by_prompt)

    job = await make_pipeline(store, bedrock).run("u1")

    assert job.decision.decision is DecisionOutcome.APPROVED
    assert job.decision.confidence == 87
    assert len(job.vision_records) == 1 and job.vision_records[0].plate_number == "ABC-1234"
    assert len(job.document_records) == 1
    assert job.document_records[0].raw_text == REPORT.decode()
    assert job.document_records[0].extracted_fields["policyholderName"] == "Jordan Lee"
    assert job.policy_chunks == []
    # Unsupported artifacts are listed but never downloaded
    assert [a.file_name for a in job.unsupported] == ["clip.mp4"]
    assert "users/u1/clip.mp4" not in store.downloads
    # vision + document + retrieval decision + final decision
    assert len(bedrock.calls) == 4


@pytest.mark.asyncio
async def test_zero_artifacts_is_fatal_before_any_model_call():
    store = InMemoryArtifactStore({"users/someone-else/front.jpg": JPEG})
    bedrock = FakeBedrockClient(default=route_by_prompt)

    with pytest.raises(NoArtifactsError):
        await make_pipeline(store, bedrock).run("u1")

    assert bedrock.calls == []
    assert bedrock.embedding_calls == []
    assert store.downloads == []


@pytest.mark.asyncio
async def test_listing_failure_propagates():
    class BrokenStore(InMemoryArtifactStore):
        async def list_artifacts(self, user_id):
            raise RetrievalError.listing_failed("users/u1/", RuntimeError("AccessDenied"))

    bedrock = FakeBedrockClient(default=route_by_prompt)
    with pytest.raises(RetrievalError):
        await make_pipeline(BrokenStore({}), bedrock).run("u1")
    assert bedrock.calls == []


@pytest.mark.asyncio
async def test_failed_vision_extraction_does_not_fail_the_job():
    store = InMemoryArtifactStore({"users/u1/front.jpg": JPEG, "users/u1/report.txt": REPORT})

    def vision_fails(call):
        if any("image" in block for block in call["messages"][-1]["content"]):
            raise RuntimeError("model endpoint unavailable")
        return route_by_prompt(call)

    bedrock = FakeBedrockClient(default=vision_fails)

    job = await make_pipeline(store, bedrock).run("u1")

    assert job.vision_records == [VisionRecord.empty()]
    assert job.document_records[0].extracted_fields["incidentDate"] == "2024-03-15"
    assert job.decision.decision is DecisionOutcome.APPROVED
    decision_prompt = bedrock.prompt_of(len(bedrock.calls) - 1)
    assert "- Vehicle Color: Not detected" in decision_prompt
    assert "policyholderName: Jordan Lee" in decision_prompt


@pytest.mark.asyncio
async def test_failed_download_yields_empty_record():
    store = InMemoryArtifactStore(
        {"users/u1/front.jpg": JPEG, "users/u1/report.txt": REPORT},
        failing=["users/u1/report.txt"],
    )
    bedrock = FakeBedrockClient(default=route_by_prompt)

    job = await make_pipeline(store, bedrock).run("u1")

    assert job.document_records == [DocumentRecord.empty()]
    assert job.vision_records[0].vehicle_color == "Blue"
    assert job.decision is not None


@pytest.mark.asyncio
async def test_interrupted_s3_transfer_yields_empty_record():
    client = FakeS3Client(
        {"users/u1/front.jpg": JPEG, "users/u1/report.txt": REPORT},
        read_errors={"users/u1/front.jpg": IncompleteReadError(actual_bytes=1, expected_bytes=len(JPEG))},
    )
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=client)
    bedrock = FakeBedrockClient(default=route_by_prompt)

    job = await make_pipeline(store, bedrock).run("u1")

    assert job.vision_records == [VisionRecord.empty()]
    assert job.document_records[0].extracted_fields["policyholderName"] == "Jordan Lee"
    assert job.decision.decision is DecisionOutcome.APPROVED
    # The image never reached the model
    assert not any(
        "image" in block for call in bedrock.calls for block in call["messages"][-1]["content"]
    )


@pytest.mark.asyncio
async def test_unparseable_decision_fails_closed_end_to_end():
    store = InMemoryArtifactStore({"users/u1/front.jpg": JPEG})

    def garbled_decision(call):
        if any("image" in block for block in call["messages"][-1]["content"]) or call["tool_config"]:
            return route_by_prompt(call)
        return text_response("Approved, definitely.")

    job = await make_pipeline(store, FakeBedrockClient(default=garbled_decision)).run("u1")

    assert job.decision.decision is DecisionOutcome.REJECTED
    assert job.decision.confidence == 0
    assert job.decision.key_factors == ["Evaluation error occurred"]


@pytest.mark.asyncio
async def test_retrieved_policies_reach_the_decision():
    store = InMemoryArtifactStore({"users/u1/report.txt": REPORT})

    class OneChunkStore(EmptyVectorStore):
        def search(self, query_embedding, top_k=5, filters=None):
            return [{"id": "policy-9", "text": "Collision is covered.", "source": "insurance_claim_policy", "score": 0.8}]

    def respond(call):
        if call["tool_config"]:
            return tool_use_response({"input": {"query": "collision coverage"}})
        return route_by_prompt(call)

    bedrock = FakeBedrockClient(default=respond)
    pipeline = make_pipeline(store, bedrock)
    pipeline.retrieval_agent.policy_retriever.vector_store = OneChunkStore()

    job = await pipeline.run("u1")

    assert [c.id for c in job.policy_chunks] == ["policy-9"]
    assert "Policy Document 1 (ID: policy-9):" in bedrock.prompt_of(len(bedrock.calls) - 1)


@pytest.mark.asyncio
async def test_extractions_run_concurrently_and_respect_cap():
    files = {f"users/u1/photo{i}.jpg": JPEG for i in range(4)}
    files.update({f"users/u1/report{i}.txt": REPORT for i in range(2)})
    store = InMemoryArtifactStore(files)

    active = 0
    peak = 0

    class SlowVision(VisionExtractorPlugin):
        async def extract(self, image_bytes, mime_hint=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return VisionRecord.empty()

    class SlowDocuments(DocumentExtractorPlugin):
        async def extract(self, document_bytes, mime_hint=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return DocumentRecord.empty()

    bedrock = FakeBedrockClient(default=route_by_prompt)

    for cap, expected_peak in [(None, 6), (2, 2)]:
        active, peak = 0, 0
        pipeline = make_pipeline(store, bedrock, max_concurrency=cap)
        pipeline.vision_extractor = SlowVision(bedrock)
        pipeline.document_extractor = SlowDocuments(bedrock)

        job = await pipeline.run("u1")

        assert len(job.vision_records) == 4
        assert len(job.document_records) == 2
        assert peak == expected_peak
