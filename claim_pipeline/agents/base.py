"""Base agent class for claim pipeline agents (AWS Bedrock)."""

import logging
from typing import Any, Dict, List, Optional

from ..utils.bedrock_client import BedrockClient

logger = logging.getLogger(__name__)


class BaseClaimsAgent:
    """
    Base class for claim pipeline agents using AWS Bedrock.

    Attributes:
        name: Agent name/identifier
        instructions: System instructions for the agent
        bedrock: BedrockClient for model calls
    """

    def __init__(
        self,
        name: str,
        instructions: str,
        bedrock: BedrockClient,
    ):
        self.name = name
        self.instructions = instructions
        self.bedrock = bedrock

        logger.info(f"Initialized {self.__class__.__name__}: {name}")

    async def converse(
        self,
        user_message: str,
        temperature: float = 0.0,
        max_tokens: int = 3000,
        tool_config: Optional[Dict[str, Any]] = None,
        include_instructions: bool = True,
    ) -> Dict[str, Any]:
        """
        Send one user turn to Bedrock using the Converse API.

        Args:
            user_message: The prompt for the single user turn
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            tool_config: Optional Converse tool configuration
            include_instructions: Whether to send the agent instructions as system prompt

        Returns:
            Parsed Converse response ('text', 'tool_uses', ...)
        """
        messages: List[Dict[str, Any]] = [
            {"role": "user", "content": [{"text": user_message}]}
        ]
        system_prompts = [{"text": self.instructions}] if include_instructions and self.instructions else None

        result = await self.bedrock.converse(
            messages=messages,
            tool_config=tool_config,
            temperature=temperature,
            max_tokens=max_tokens,
            system_prompts=system_prompts,
        )

        logger.debug(f"{self.name} generated response: {result.get('text', '')[:100]}...")
        return result

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
