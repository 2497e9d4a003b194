"""Artifact store clients for a user's uploaded claim evidence."""

import asyncio
import logging
import mimetypes
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models.artifact import Artifact, ArtifactKind
from ..utils.errors import RetrievalError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
DOCUMENT_EXTENSIONS = {".pdf", ".txt"}

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
DOCUMENT_CONTENT_TYPES = {"application/pdf", "text/plain"}


def classify_artifact(key: str, content_type: Optional[str] = None) -> ArtifactKind:
    """
    Classify an artifact by extension first, content type second.

    Args:
        key: Artifact key or file name
        content_type: Optional content type reported by the store

    Returns:
        ArtifactKind for routing to an extractor
    """
    suffix = Path(key).suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return ArtifactKind.IMAGE
    if suffix in DOCUMENT_EXTENSIONS:
        return ArtifactKind.DOCUMENT

    if content_type:
        # Drop parameters such as "; charset=utf-8"
        base_type = content_type.split(";", 1)[0].strip().lower()
        if base_type in IMAGE_CONTENT_TYPES:
            return ArtifactKind.IMAGE
        if base_type in DOCUMENT_CONTENT_TYPES:
            return ArtifactKind.DOCUMENT

    return ArtifactKind.UNSUPPORTED


def needs_content_type(key: str) -> bool:
    """True when the extension alone cannot classify the key."""
    suffix = Path(key).suffix.lower()
    return suffix not in IMAGE_EXTENSIONS and suffix not in DOCUMENT_EXTENSIONS


class ArtifactStore(ABC):
    """
    Key-addressable blob store holding one folder per user.

    Keys are laid out as ``{prefix}/{userId}/{fileName}``.
    """

    def __init__(self, prefix: str = "users"):
        self.prefix = prefix.strip("/")

    def user_prefix(self, user_id: str) -> str:
        return f"{self.prefix}/{user_id}/"

    @abstractmethod
    async def list_artifacts(self, user_id: str) -> List[Artifact]:
        """
        List and classify everything uploaded by a user.

        Returns an empty list when the user has no uploads; whether that is
        fatal is the caller's decision.

        Raises:
            RetrievalError: If the store cannot be listed at all
        """

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """
        Download one artifact's bytes.

        Raises:
            RetrievalError: If the blob is missing or the transfer is truncated
        """


class S3ArtifactStore(ArtifactStore):
    """Artifact store backed by an S3 bucket."""

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        prefix: str = "users",
        client: Optional[Any] = None
    ):
        """
        Initialize S3ArtifactStore.

        Args:
            bucket_name: Bucket holding user uploads
            region: AWS region of the bucket
            prefix: Top-level folder for user uploads
            client: Optional pre-built S3 client
        """
        super().__init__(prefix)
        self.bucket_name = bucket_name
        self.s3 = client if client is not None else boto3.client("s3", region_name=region)

        logger.info(f"Initialized S3ArtifactStore: bucket={bucket_name}, prefix={self.prefix}")

    async def list_artifacts(self, user_id: str) -> List[Artifact]:
        prefix = self.user_prefix(user_id)
        try:
            objects = await asyncio.to_thread(self._list_objects, prefix)
        except ClientError as e:
            logger.error(f"Error listing artifacts under {prefix}: {str(e)}")
            raise RetrievalError.listing_failed(prefix, e) from e

        artifacts = []
        for obj in objects:
            key = obj.get("Key", "")
            if not key or key.endswith("/"):
                continue

            if needs_content_type(key):
                content_type = await asyncio.to_thread(self._head_content_type, key)
            else:
                content_type, _ = mimetypes.guess_type(key)

            artifacts.append(
                Artifact(
                    key=key,
                    size=int(obj.get("Size", 0)),
                    last_modified=obj.get("LastModified"),
                    content_type=content_type,
                    kind=classify_artifact(key, content_type),
                )
            )

        if not artifacts:
            logger.info(f"No files found for userId: {user_id}")
        else:
            logger.info(f"Found {len(artifacts)} files for userId: {user_id}")

        return artifacts

    async def download(self, key: str) -> bytes:
        try:
            response = await asyncio.to_thread(
                self.s3.get_object, Bucket=self.bucket_name, Key=key
            )
            body = response.get("Body")
            if body is None:
                raise RetrievalError.download_failed(key, reason="object has no body")

            data = await asyncio.to_thread(body.read)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error downloading file {key}: {str(e)}")
            raise RetrievalError.download_failed(key, error=e) from e

        expected = response.get("ContentLength")
        if expected is not None and len(data) != int(expected):
            raise RetrievalError.download_failed(
                key, reason=f"truncated transfer ({len(data)} of {expected} bytes)"
            )

        logger.debug(f"Downloaded {len(data)} bytes from {key}")
        return data

    def _list_objects(self, prefix: str) -> List[dict]:
        paginator = self.s3.get_paginator("list_objects_v2")
        objects: List[dict] = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            objects.extend(page.get("Contents", []) or [])
        return objects

    def _head_content_type(self, key: str) -> Optional[str]:
        try:
            response = self.s3.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            logger.warning(f"Could not read content type for {key}: {str(e)}")
            return None
        return response.get("ContentType")


class LocalArtifactStore(ArtifactStore):
    """
    Artifact store backed by a local directory with the same key layout.

    Used for local runs and tests.
    """

    def __init__(self, root_dir: str = "data/uploads", prefix: str = "users"):
        super().__init__(prefix)
        self.root_dir = Path(root_dir)
        logger.info(f"Initialized LocalArtifactStore: root_dir={self.root_dir}")

    async def list_artifacts(self, user_id: str) -> List[Artifact]:
        user_dir = self.root_dir / self.user_prefix(user_id)
        if not user_dir.is_dir():
            logger.info(f"No files found for userId: {user_id}")
            return []

        artifacts = []
        for path in sorted(p for p in user_dir.rglob("*") if p.is_file()):
            key = path.relative_to(self.root_dir).as_posix()
            content_type, _ = mimetypes.guess_type(path.name)
            stat = path.stat()
            artifacts.append(
                Artifact(
                    key=key,
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    content_type=content_type,
                    kind=classify_artifact(key, content_type),
                )
            )

        logger.info(f"Found {len(artifacts)} files for userId: {user_id}")
        return artifacts

    async def download(self, key: str) -> bytes:
        path = self.root_dir / key
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.error(f"Error downloading file {key}: {str(e)}")
            raise RetrievalError.download_failed(key, error=e) from e
