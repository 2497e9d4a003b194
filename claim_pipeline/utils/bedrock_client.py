"""AWS Bedrock client wrapper for extraction, retrieval-decision and decision calls."""

import asyncio
import json
import logging
import os
from typing import Dict, List, Optional, Any

import numpy as np
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .errors import BedrockAPIError, ErrorType, ErrorContext

logger = logging.getLogger(__name__)


class BedrockClient:
    """
    Wrapper for the AWS Bedrock Runtime client.

    Provides methods for:
    - Invoking a chat model via the Converse API (text, images, tool use)
    - Generating embeddings with Titan

    Calls are made exactly once. Redelivery of a failed claim job is the
    message substrate's job, so botocore retries are disabled as well.
    Blocking boto3 calls run in a worker thread so concurrent extractions
    do not serialize on the event loop.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        model_id: str = "amazon.nova-pro-v1:0",
        embedding_model_id: str = "amazon.titan-embed-text-v2:0",
        timeout: int = 300,
        runtime: Optional[Any] = None
    ):
        """
        Initialize Bedrock client.

        Args:
            region: AWS region for Bedrock service
            model_id: Model ID used for Converse calls
            embedding_model_id: Model ID for Titan embeddings
            timeout: Request timeout in seconds
            runtime: Optional pre-built bedrock-runtime client
        """
        self.region = region
        self.model_id = model_id
        self.embedding_model_id = embedding_model_id

        if runtime is not None:
            self.runtime = runtime
        else:
            config_kwargs: Dict[str, Any] = {
                "region_name": region,
                "connect_timeout": timeout,
                "read_timeout": timeout,
                "retries": {"total_max_attempts": 1},
            }

            # Bedrock API keys are honoured by botocore through this variable
            if os.getenv("AWS_BEARER_TOKEN_BEDROCK"):
                config_kwargs["signature_version"] = "bearer"
                logger.info("BedrockClient configured to use Amazon Bedrock API key authentication")
            else:
                logger.info("BedrockClient configured to use AWS IAM credentials (SigV4)")

            self.runtime = boto3.client("bedrock-runtime", config=Config(**config_kwargs))

        logger.info(
            f"Initialized BedrockClient: region={region}, "
            f"model={model_id}, embedding_model={embedding_model_id}"
        )

    async def converse(
        self,
        messages: List[Dict[str, Any]],
        tool_config: Optional[Dict[str, Any]] = None,
        temperature: float = 0.0,
        max_tokens: int = 3000,
        system_prompts: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Invoke the chat model via the Converse API.

        Args:
            messages: List of message dicts with 'role' and 'content'
            tool_config: Optional tool configuration for function calling
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens to generate
            system_prompts: Optional system prompts

        Returns:
            Dict containing 'text', 'content', 'tool_uses', 'stop_reason', 'usage'

        Raises:
            BedrockAPIError: If the call fails
        """
        params: Dict[str, Any] = {
            "modelId": self.model_id,
            "messages": messages,
            "inferenceConfig": {
                "temperature": temperature,
                "maxTokens": max_tokens
            }
        }

        if tool_config:
            params["toolConfig"] = tool_config

        if system_prompts:
            params["system"] = system_prompts

        try:
            logger.debug(f"Invoking {self.model_id} via Converse API")

            response = await asyncio.to_thread(self.runtime.converse, **params)

            logger.info(
                f"Converse invocation successful: "
                f"stop_reason={response.get('stopReason')}, "
                f"usage={response.get('usage')}"
            )

            return self._parse_converse_response(response)

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"Bedrock Converse call failed: code={error_code}")
            raise BedrockAPIError.from_client_error(error=e, operation="converse") from e

        except Exception as e:
            logger.error(f"Unexpected error invoking {self.model_id}: {str(e)}")
            context = ErrorContext(
                error_type=ErrorType.BEDROCK_SERVICE_ERROR,
                message=f"Unexpected error invoking {self.model_id}: {str(e)}",
                recoverable=False,
                original_exception=e
            )
            raise BedrockAPIError(context) from e

    async def generate_embedding(self, text: str) -> np.ndarray:
        """
        Generate embedding vector using Titan embedding model.

        Args:
            text: Input text to embed

        Returns:
            NumPy array of embedding vector

        Raises:
            BedrockAPIError: If the call fails
        """
        body = json.dumps({"inputText": text})

        try:
            response = await asyncio.to_thread(
                self.runtime.invoke_model,
                modelId=self.embedding_model_id,
                body=body,
                contentType="application/json",
                accept="application/json"
            )

            result = json.loads(response["body"].read())
            embedding = np.array(result["embedding"], dtype=np.float32)

            logger.debug(f"Generated embedding: dimension={len(embedding)}")
            return embedding

        except ClientError as e:
            raise BedrockAPIError.from_client_error(error=e, operation="generate_embedding") from e

        except Exception as e:
            logger.error(f"Unexpected error generating embedding: {str(e)}")
            context = ErrorContext(
                error_type=ErrorType.EMBEDDING_GENERATION_FAILED,
                message=f"Unexpected error generating embedding: {str(e)}",
                recoverable=False,
                original_exception=e
            )
            raise BedrockAPIError(context) from e

    def _parse_converse_response(self, response: Dict[str, Any]) -> Dict[str, Any]:
        """
        Parse Converse API response into a simplified format.

        Args:
            response: Raw response from Converse API

        Returns:
            Parsed response dict with 'text', 'tool_uses', 'stop_reason', etc.
        """
        output = response.get("output", {})
        message = output.get("message", {})
        content = message.get("content", []) or []

        text_parts = [block["text"] for block in content if "text" in block]
        tool_uses = [block["toolUse"] for block in content if "toolUse" in block]

        return {
            "content": content,
            "role": message.get("role", "assistant"),
            "text": "\n".join(text_parts),
            "tool_uses": tool_uses,
            "stop_reason": response.get("stopReason", "unknown"),
            "usage": response.get("usage", {}),
        }
