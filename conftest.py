"""Shared pytest fixtures and in-process fakes for the claim pipeline tests."""

import io
import json
import mimetypes
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import pytest
from botocore.exceptions import ClientError

from claim_pipeline.models.artifact import Artifact
from claim_pipeline.storage.artifact_store import ArtifactStore, classify_artifact
from claim_pipeline.utils.errors import RetrievalError


def text_response(text: str) -> Dict[str, Any]:
    """A parsed Converse response carrying only text."""
    return {
        "content": [{"text": text}],
        "role": "assistant",
        "text": text,
        "tool_uses": [],
        "stop_reason": "end_turn",
        "usage": {},
    }


def tool_use_response(*calls: Dict[str, Any]) -> Dict[str, Any]:
    """A parsed Converse response carrying toolUse blocks."""
    tool_uses = [
        {"toolUseId": f"tool-{i}", "name": call.get("name", "retrieve_policies"), "input": call.get("input", {})}
        for i, call in enumerate(calls)
    ]
    return {
        "content": [{"toolUse": t} for t in tool_uses],
        "role": "assistant",
        "text": "",
        "tool_uses": tool_uses,
        "stop_reason": "tool_use",
        "usage": {},
    }


Responder = Union[Dict[str, Any], Exception, Callable[[Dict[str, Any]], Dict[str, Any]]]


class FakeBedrockClient:
    """
    Stand-in for BedrockClient.

    ``responses`` are consumed in order; each may be a response dict, an
    exception to raise, or a callable receiving the call kwargs. Once the
    list is exhausted ``default`` is used.
    """

    def __init__(
        self,
        responses: Optional[List[Responder]] = None,
        default: Optional[Responder] = None,
        embedding: Optional[np.ndarray] = None
    ):
        self.responses = list(responses or [])
        self.default = default
        self.embedding = embedding if embedding is not None else np.ones(4, dtype=np.float32)
        self.calls: List[Dict[str, Any]] = []
        self.embedding_calls: List[str] = []

    async def converse(self, messages, tool_config=None, temperature=0.0, max_tokens=3000, system_prompts=None):
        call = {
            "messages": messages,
            "tool_config": tool_config,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "system_prompts": system_prompts,
        }
        self.calls.append(call)

        responder = self.responses.pop(0) if self.responses else self.default
        if responder is None:
            raise AssertionError("Unexpected converse call")
        if isinstance(responder, Exception):
            raise responder
        if callable(responder):
            return responder(call)
        return responder

    async def generate_embedding(self, text: str) -> np.ndarray:
        self.embedding_calls.append(text)
        return self.embedding

    def prompt_of(self, index: int) -> str:
        """Concatenated text blocks of the user message of call ``index``."""
        content = self.calls[index]["messages"][-1]["content"]
        return "\n".join(block["text"] for block in content if "text" in block)


class InMemoryArtifactStore(ArtifactStore):
    """Artifact store over a dict of key -> bytes; keys listed in ``failing`` cannot be downloaded."""

    def __init__(self, files: Dict[str, bytes], failing: Optional[List[str]] = None, prefix: str = "users"):
        super().__init__(prefix)
        self.files = dict(files)
        self.failing = set(failing or [])
        self.downloads: List[str] = []
        self.list_calls: List[str] = []

    async def list_artifacts(self, user_id: str) -> List[Artifact]:
        self.list_calls.append(user_id)
        prefix = self.user_prefix(user_id)
        return [
            Artifact(
                key=key,
                size=len(data),
                content_type=mimetypes.guess_type(key)[0],
                kind=classify_artifact(key),
            )
            for key, data in sorted(self.files.items())
            if key.startswith(prefix)
        ]

    async def download(self, key: str) -> bytes:
        self.downloads.append(key)
        if key in self.failing or key not in self.files:
            raise RetrievalError.download_failed(key, reason="simulated failure")
        return self.files[key]


class FakeS3Body:
    def __init__(self, data: bytes, read_error: Optional[Exception] = None):
        self._stream = io.BytesIO(data)
        self.read_error = read_error

    def read(self) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        return self._stream.read()


class FakeS3Client:
    """
    Minimal boto3 S3 client: paginated listing, get_object, head_object.

    ``read_errors`` maps keys to exceptions raised while reading the body.
    """

    def __init__(
        self,
        objects: Dict[str, bytes],
        content_types: Optional[Dict[str, str]] = None,
        page_size: int = 2,
        content_lengths: Optional[Dict[str, int]] = None,
        list_error: Optional[Exception] = None,
        read_errors: Optional[Dict[str, Exception]] = None
    ):
        self.objects = objects
        self.content_types = content_types or {}
        self.page_size = page_size
        self.content_lengths = content_lengths or {}
        self.list_error = list_error
        self.read_errors = read_errors or {}
        self.head_calls: List[str] = []

    def get_paginator(self, operation_name: str):
        assert operation_name == "list_objects_v2"
        if self.list_error is not None:
            raise self.list_error

        keys = sorted(self.objects)
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        contents = [{"Key": k, "Size": len(self.objects[k]), "LastModified": modified} for k in keys]
        pages = [
            {"Contents": contents[i:i + self.page_size]}
            for i in range(0, len(contents), self.page_size)
        ] or [{}]
        return FakePaginator(pages)

    def get_object(self, Bucket: str, Key: str):
        if Key not in self.objects:
            raise client_error("NoSuchKey", "get_object")
        data = self.objects[Key]
        return {
            "Body": FakeS3Body(data, self.read_errors.get(Key)),
            "ContentLength": self.content_lengths.get(Key, len(data)),
        }

    def head_object(self, Bucket: str, Key: str):
        self.head_calls.append(Key)
        return {"ContentType": self.content_types.get(Key, "binary/octet-stream")}


class FakePaginator:
    """Yields pre-built pages, keeping only keys under the requested prefix."""

    def __init__(self, pages: List[Dict[str, Any]]):
        self.pages = pages
        self.calls: List[Dict[str, Any]] = []

    def paginate(self, **kwargs):
        self.calls.append(kwargs)
        prefix = kwargs.get("Prefix", "")
        for page in self.pages:
            contents = [obj for obj in page.get("Contents", []) if obj["Key"].startswith(prefix)]
            yield {"Contents": contents} if contents else {}


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (simulated)"}}, operation)


VISION_JSON = {
    "vehicleColor": "Blue",
    "vehicleModel": "Toyota Camry",
    "plateNumber": "ABC-1234",
    "damageArea": "front bumper",
    "damageDescription": "Dented front bumper with cracked headlight",
}

DOCUMENT_JSON = {
    "incidentDate": "2024-03-15",
    "vehicleNumber": "ABC-1234",
    "vehicleColor": "Blue",
    "vehicleModel": "Toyota Camry",
    "vehicleYear": "2019",
    "policyholderName": "Jordan Lee",
    "policyholderLicenseNumber": "D1234567",
    "policyholderAddress": "12 Main St",
    "damageDescription": "Rear-ended at a traffic light",
    "accidentLocation": "5th Ave and Pine St",
    "additionalInfo": {"reportNumber": "PR-889"},
}

APPROVED_JSON = {
    "decision": "Approved",
    "confidence": 87,
    "reasoning": "Damage is consistent with the report and within collision coverage.",
    "policyReferences": ["policy-1"],
    "keyFactors": ["Consistent evidence", "Covered peril"],
}


@pytest.fixture
def vision_json() -> Dict[str, Any]:
    return dict(VISION_JSON)


@pytest.fixture
def document_json() -> Dict[str, Any]:
    return json.loads(json.dumps(DOCUMENT_JSON))


@pytest.fixture
def approved_json() -> Dict[str, Any]:
    return dict(APPROVED_JSON)
