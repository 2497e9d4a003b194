"""Claim document extraction plugin for Semantic Kernel using AWS Bedrock."""

import asyncio
import logging
from typing import Any, Dict, Optional

import pydantic
from semantic_kernel.functions import kernel_function

from ..models.evidence import DocumentRecord
from ..models.schemas import DocumentExtraction
from ..utils.bedrock_client import BedrockClient
from ..utils.errors import ExtractionError
from ..utils.response_formatter import ResponseFormatter
from .pdf_extractor import PDFExtractorPlugin

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n... (content truncated)"

DOCUMENT_SYSTEM_PROMPT = """You are an expert at extracting structured information from police reports, claim forms and other incident documents.
Your task is to analyze the provided text and extract relevant information in a structured JSON format.

Extract the following information if available:
- incidentDate: Date of the incident/accident, converted to YYYY-MM-DD format
- vehicleNumber: Vehicle registration/license plate number
- vehicleModel: Make and model of the vehicle
- vehicleColor: Color of the vehicle
- vehicleYear: Year of the vehicle
- policyholderName: Name of the policyholder
- policyholderLicenseNumber: Driver's license number
- policyholderAddress: Address of the policyholder
- damageDescription: Description of damage or incident
- accidentLocation: Location where accident occurred
- additionalInfo: Any other relevant key-value pairs found in the document

If a field is not found or cannot be determined, use null for that field.
Be thorough and extract all available information."""

DOCUMENT_USER_PROMPT = """Extract structured information from the following document content:

{text}

You must respond with a valid JSON object matching this schema:
{{
  "incidentDate": "string or null",
  "vehicleNumber": "string or null",
  "vehicleColor": "string or null",
  "vehicleModel": "string or null",
  "vehicleYear": "string or null",
  "policyholderName": "string or null",
  "policyholderLicenseNumber": "string or null",
  "policyholderAddress": "string or null",
  "damageDescription": "string or null",
  "accidentLocation": "string or null",
  "additionalInfo": {{}}
}}

Respond ONLY with the JSON object, no additional text or markdown formatting."""


def truncate_text(text: str, budget: int) -> str:
    """Cut text to the character budget, marking the cut when one happens."""
    if len(text) <= budget:
        return text
    return text[:budget] + TRUNCATION_MARKER


class DocumentExtractorPlugin:
    """
    Semantic Kernel plugin turning a claim document into a DocumentRecord.

    Text comes from the PDF text layer (or the file itself for plain text);
    structured fields come from one model call over the first
    ``char_budget`` characters. Failures never propagate.
    """

    def __init__(
        self,
        bedrock_client: BedrockClient,
        pdf_extractor: Optional[PDFExtractorPlugin] = None,
        char_budget: int = 15000,
        temperature: float = 0.0,
        max_tokens: int = 3000
    ):
        """
        Initialize document extractor plugin.

        Args:
            bedrock_client: Configured BedrockClient instance
            pdf_extractor: PDF text extractor (created when omitted)
            char_budget: Characters of document text sent to the model
            temperature: Sampling temperature for the extraction call
            max_tokens: Maximum tokens to generate
        """
        self.bedrock = bedrock_client
        self.pdf_extractor = pdf_extractor or PDFExtractorPlugin()
        self.char_budget = char_budget
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info(f"Initialized DocumentExtractorPlugin: char_budget={char_budget}")

    @kernel_function(
        name="extract_claim_document",
        description=(
            "Extract raw text and structured claim fields (incident date, vehicle, "
            "policyholder, damage, location) from a claim document."
        )
    )
    async def extract(self, document_bytes: bytes, mime_hint: Optional[str] = None) -> DocumentRecord:
        """
        Extract text and claim fields from a document.

        Args:
            document_bytes: Raw document bytes (PDF or plain text)
            mime_hint: Content type reported by the store, if any

        Returns:
            DocumentRecord; empty when no text could be extracted
        """
        try:
            text = await self._extract_text(document_bytes, mime_hint)
        except Exception as e:
            error = ExtractionError.pdf_text_extraction_failed(e)
            logger.warning(f"Document text error: {error}")
            return DocumentRecord.empty()

        if not text or not text.strip():
            logger.warning("No text extracted from document, returning empty record")
            return DocumentRecord.empty()

        try:
            extracted_fields = await self._extract_fields(text)
        except Exception as e:
            error = ExtractionError.document_extraction_failed(e)
            logger.warning(f"Document field extraction error: {error}")
            extracted_fields = {}

        logger.info(
            f"Document extraction complete: {len(text)} characters, "
            f"{len(extracted_fields)} fields"
        )
        return DocumentRecord(raw_text=text, extracted_fields=extracted_fields)

    async def _extract_text(self, document_bytes: bytes, mime_hint: Optional[str]) -> str:
        if self._is_plain_text(document_bytes, mime_hint):
            return document_bytes.decode("utf-8", errors="replace").strip()
        return await asyncio.to_thread(self.pdf_extractor.extract_text, document_bytes)

    @staticmethod
    def _is_plain_text(document_bytes: bytes, mime_hint: Optional[str]) -> bool:
        if document_bytes.startswith(b"%PDF"):
            return False
        if mime_hint:
            return mime_hint.split(";", 1)[0].strip().lower() == "text/plain"

        # No hint: anything that decodes cleanly is treated as a text report
        try:
            document_bytes.decode("utf-8")
        except UnicodeDecodeError:
            return False
        return True

    async def _extract_fields(self, text: str) -> Dict[str, Any]:
        prompt = DOCUMENT_USER_PROMPT.format(text=truncate_text(text, self.char_budget))

        response = await self.bedrock.converse(
            messages=[{"role": "user", "content": [{"text": prompt}]}],
            system_prompts=[{"text": DOCUMENT_SYSTEM_PROMPT}],
            temperature=self.temperature,
            max_tokens=self.max_tokens
        )

        return self.parse_response(response.get("text", ""))

    def parse_response(self, response_text: str) -> Dict[str, Any]:
        """
        Turn raw model text into extracted fields.

        Args:
            response_text: Raw response text, possibly fenced or wrapped in prose

        Returns:
            Validated fields, the raw parsed object when validation fails,
            or {} when no JSON object is present
        """
        payload = ResponseFormatter.extract_json_object(response_text)
        if payload is None:
            logger.warning("No valid JSON found in document response, using empty fields")
            return {}

        try:
            return DocumentExtraction.model_validate(payload).to_fields()
        except pydantic.ValidationError as e:
            logger.warning(f"Document schema validation failed, using parsed result: {e.error_count()} errors")
            return payload
