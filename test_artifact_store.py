"""Tests for artifact classification and the S3 / local artifact stores."""

import pytest
from botocore.exceptions import EndpointConnectionError, IncompleteReadError

from claim_pipeline.models.artifact import ArtifactKind
from claim_pipeline.storage.artifact_store import (
    LocalArtifactStore,
    S3ArtifactStore,
    classify_artifact,
)
from claim_pipeline.utils.errors import ErrorType, RetrievalError
from conftest import FakeS3Client, client_error


@pytest.mark.parametrize(
    "key,content_type,expected",
    [
        ("users/u1/front.JPG", None, ArtifactKind.IMAGE),
        ("users/u1/side.webp", None, ArtifactKind.IMAGE),
        ("users/u1/report.pdf", None, ArtifactKind.DOCUMENT),
        ("users/u1/notes.txt", None, ArtifactKind.DOCUMENT),
        ("users/u1/scan", "application/pdf", ArtifactKind.DOCUMENT),
        ("users/u1/photo", "image/png; charset=binary", ArtifactKind.IMAGE),
        ("users/u1/video.mp4", "video/mp4", ArtifactKind.UNSUPPORTED),
        ("users/u1/archive.zip", None, ArtifactKind.UNSUPPORTED),
        # Extension wins over a conflicting content type
        ("users/u1/report.pdf", "image/png", ArtifactKind.DOCUMENT),
    ],
)
def test_classify_artifact(key, content_type, expected):
    assert classify_artifact(key, content_type) is expected


@pytest.mark.asyncio
async def test_s3_listing_is_scoped_and_paginated():
    client = FakeS3Client(
        {
            "users/u1/": b"",
            "users/u1/front.jpg": b"\xff\xd8\xff" + b"0" * 10,
            "users/u1/report.pdf": b"%PDF-1.4",
            "users/u1/blob": b"??",
            "users/u2/other.jpg": b"\xff\xd8\xff",
        },
        content_types={"users/u1/blob": "image/png"},
        page_size=2,
    )
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=client)

    artifacts = await store.list_artifacts("u1")

    keys = {a.key: a for a in artifacts}
    assert set(keys) == {"users/u1/front.jpg", "users/u1/report.pdf", "users/u1/blob"}
    assert keys["users/u1/front.jpg"].kind is ArtifactKind.IMAGE
    assert keys["users/u1/report.pdf"].kind is ArtifactKind.DOCUMENT
    assert keys["users/u1/blob"].kind is ArtifactKind.IMAGE
    assert keys["users/u1/front.jpg"].size == 13
    # Content type is only looked up when the extension is not enough
    assert client.head_calls == ["users/u1/blob"]


@pytest.mark.asyncio
async def test_s3_listing_with_no_uploads_is_empty():
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=FakeS3Client({}))
    assert await store.list_artifacts("nobody") == []


@pytest.mark.asyncio
async def test_s3_listing_failure_is_fatal():
    client = FakeS3Client({}, list_error=client_error("AccessDenied", "ListObjectsV2"))
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=client)

    with pytest.raises(RetrievalError) as exc_info:
        await store.list_artifacts("u1")

    assert exc_info.value.context.error_type is ErrorType.ARTIFACT_LISTING_FAILED
    assert not exc_info.value.recoverable


@pytest.mark.asyncio
async def test_s3_download_returns_bytes():
    client = FakeS3Client({"users/u1/front.jpg": b"image-bytes"})
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=client)
    assert await store.download("users/u1/front.jpg") == b"image-bytes"


@pytest.mark.asyncio
async def test_s3_download_missing_object_raises():
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=FakeS3Client({}))
    with pytest.raises(RetrievalError) as exc_info:
        await store.download("users/u1/missing.jpg")
    assert exc_info.value.context.error_type is ErrorType.ARTIFACT_DOWNLOAD_FAILED


@pytest.mark.asyncio
async def test_s3_truncated_download_raises():
    client = FakeS3Client(
        {"users/u1/report.pdf": b"%PDF-short"},
        content_lengths={"users/u1/report.pdf": 4096},
    )
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=client)

    with pytest.raises(RetrievalError, match="truncated"):
        await store.download("users/u1/report.pdf")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        IncompleteReadError(actual_bytes=1, expected_bytes=9),
        EndpointConnectionError(endpoint_url="https://s3.us-east-1.amazonaws.com"),
    ],
)
async def test_s3_transfer_errors_become_retrieval_errors(error):
    client = FakeS3Client(
        {"users/u1/front.jpg": b"\xff\xd8\xff" + b"0" * 6},
        read_errors={"users/u1/front.jpg": error},
    )
    store = S3ArtifactStore("claims-bucket", "us-east-1", client=client)

    with pytest.raises(RetrievalError) as exc_info:
        await store.download("users/u1/front.jpg")

    assert exc_info.value.context.error_type is ErrorType.ARTIFACT_DOWNLOAD_FAILED
    assert exc_info.value.recoverable
    assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
async def test_local_store_uses_user_folder_layout(tmp_path):
    user_dir = tmp_path / "users" / "u1"
    user_dir.mkdir(parents=True)
    (user_dir / "front.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    (user_dir / "report.txt").write_text("Police report", encoding="utf-8")
    (user_dir / "clip.mov").write_bytes(b"mov")
    other = tmp_path / "users" / "u2"
    other.mkdir(parents=True)
    (other / "ignored.jpg").write_bytes(b"x")

    store = LocalArtifactStore(root_dir=str(tmp_path))
    artifacts = await store.list_artifacts("u1")

    kinds = {a.file_name: a.kind for a in artifacts}
    assert kinds == {
        "clip.mov": ArtifactKind.UNSUPPORTED,
        "front.png": ArtifactKind.IMAGE,
        "report.txt": ArtifactKind.DOCUMENT,
    }
    assert await store.download("users/u1/report.txt") == b"Police report"


@pytest.mark.asyncio
async def test_local_store_missing_user_and_file(tmp_path):
    store = LocalArtifactStore(root_dir=str(tmp_path))
    assert await store.list_artifacts("ghost") == []
    with pytest.raises(RetrievalError):
        await store.download("users/ghost/none.pdf")
