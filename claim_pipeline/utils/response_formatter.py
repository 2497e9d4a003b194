"""Response formatting utilities for pulling JSON objects out of model output."""

import json
import logging
import re
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ResponseFormatter:
    """
    Utility class for extracting JSON objects from free-form model responses.

    Model output is treated as untrusted text: code-fence markers are removed,
    then the first balanced ``{...}`` span that parses as JSON is returned.
    Validation against a schema is left to the caller.
    """

    _CODE_FENCE_PATTERN = re.compile(r'```(?:json|JSON)?[ \t]*\n?')

    @staticmethod
    def strip_code_fences(response_text: str) -> str:
        """
        Remove markdown code-fence markers (```json and ```) from text.

        Args:
            response_text: Raw response text

        Returns:
            Text with fence markers removed and surrounding whitespace trimmed
        """
        if not response_text:
            return ""
        return ResponseFormatter._CODE_FENCE_PATTERN.sub('', response_text).strip()

    @staticmethod
    def extract_json_object(response_text: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Extract the first JSON object embedded in a model response.

        Args:
            response_text: Raw response text that may contain JSON

        Returns:
            Parsed JSON dictionary, or None if no valid JSON object found
        """
        if not response_text or not response_text.strip():
            logger.warning("Empty response text provided")
            return None

        text = ResponseFormatter.strip_code_fences(response_text)

        json_data = ResponseFormatter._extract_embedded_json(text)
        if json_data is not None:
            logger.debug("Successfully extracted embedded JSON")
            return json_data

        logger.warning(f"Failed to extract JSON from response: {text[:200]}...")
        return None

    @staticmethod
    def _extract_embedded_json(text: str) -> Optional[Dict[str, Any]]:
        """
        Find and extract a JSON object embedded in text using brace counting.

        Braces inside string literals are ignored. When the first balanced span
        does not parse, scanning resumes after it.

        Args:
            text: Response text

        Returns:
            Parsed JSON dict or None
        """
        start_idx = text.find('{')
        while start_idx != -1:
            end_idx = ResponseFormatter._find_balanced_end(text, start_idx)
            if end_idx == -1:
                return None

            try:
                parsed = json.loads(text[start_idx:end_idx + 1])
            except json.JSONDecodeError as e:
                logger.debug(f"Balanced span is not valid JSON: {str(e)}")
                parsed = None

            if isinstance(parsed, dict):
                return parsed

            start_idx = text.find('{', end_idx + 1)

        return None

    @staticmethod
    def _find_balanced_end(text: str, start_idx: int) -> int:
        """Return the index of the brace closing the one at start_idx, or -1."""
        brace_count = 0
        in_string = False
        escape_next = False

        for i in range(start_idx, len(text)):
            char = text[i]

            if in_string:
                if escape_next:
                    escape_next = False
                elif char == '\\':
                    escape_next = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == '{':
                brace_count += 1
            elif char == '}':
                brace_count -= 1
                if brace_count == 0:
                    return i

        return -1
