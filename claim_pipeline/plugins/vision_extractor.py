"""Vehicle image extraction plugin for Semantic Kernel using AWS Bedrock vision."""

import logging
import time
from typing import Any, Dict, Optional

import pydantic
from semantic_kernel.functions import kernel_function

from ..models.evidence import VisionRecord
from ..models.schemas import VisionExtraction
from ..utils.bedrock_client import BedrockClient
from ..utils.errors import ExtractionError
from ..utils.response_formatter import ResponseFormatter

logger = logging.getLogger(__name__)

VISION_EXTRACTION_PROMPT = """Analyze this vehicle image and extract the following information. Respond in JSON format with the exact keys shown below. If any information is not visible or cannot be determined, use null for that field.

Please extract:
1. vehicleColor: The color of the vehicle
2. vehicleModel: The make and model of the vehicle (e.g., "Toyota Camry", "Honda Civic")
3. plateNumber: The license plate number or registration number
4. damageArea: The area(s) of the vehicle that show damage (e.g., "front bumper", "driver side door", "rear windshield")
5. damageDescription: A detailed description of the damage and overall condition of the vehicle

Respond ONLY with valid JSON in this format:
{
  "vehicleColor": "string or null",
  "vehicleModel": "string or null",
  "plateNumber": "string or null",
  "damageArea": "string or null",
  "damageDescription": "string or null"
}

Analyze the image carefully and provide accurate information."""

_MIME_TO_FORMAT = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class VisionExtractorPlugin:
    """
    Semantic Kernel plugin turning a vehicle photo into a VisionRecord.

    One model call per image. Any failure yields an all-None record so a
    single bad photo never fails the claim job.
    """

    def __init__(
        self,
        bedrock_client: BedrockClient,
        temperature: float = 0.0,
        max_tokens: int = 3000
    ):
        """
        Initialize vision extractor plugin.

        Args:
            bedrock_client: Configured BedrockClient instance
            temperature: Sampling temperature for the extraction call
            max_tokens: Maximum tokens to generate
        """
        self.bedrock = bedrock_client
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info("Initialized VisionExtractorPlugin")

    @kernel_function(
        name="extract_vehicle_details",
        description=(
            "Extract vehicle color, model, plate number, damaged area and a damage "
            "description from a vehicle photo."
        )
    )
    async def extract(self, image_bytes: bytes, mime_hint: Optional[str] = None) -> VisionRecord:
        """
        Extract vehicle details from an image.

        Args:
            image_bytes: Raw image bytes (JPEG, PNG, GIF, WEBP)
            mime_hint: Content type reported by the store, if any

        Returns:
            VisionRecord; all fields None when extraction fails
        """
        try:
            start_time = time.time()
            image_format = self._detect_image_format(image_bytes, mime_hint)
            logger.debug(f"Image size: {len(image_bytes)} bytes, format: {image_format}")

            # boto3's converse API takes raw bytes, not base64
            messages = [
                {
                    "role": "user",
                    "content": [
                        {"text": VISION_EXTRACTION_PROMPT},
                        {
                            "image": {
                                "format": image_format,
                                "source": {"bytes": image_bytes}
                            }
                        }
                    ]
                }
            ]

            response = await self.bedrock.converse(
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )

            record = self.parse_response(response.get("text", ""))

            logger.info(
                f"Image extraction complete in {time.time() - start_time:.3f}s: "
                f"{record.to_dict()}"
            )
            return record

        except Exception as e:
            error = ExtractionError.image_extraction_failed(e)
            logger.warning(f"Image extraction error: {error}")
            return VisionRecord.empty()

    def parse_response(self, response_text: str) -> VisionRecord:
        """
        Turn raw model text into a VisionRecord.

        Args:
            response_text: Raw response text, possibly fenced or wrapped in prose

        Returns:
            Validated record, a best-effort record when validation fails,
            or an empty record when no JSON object is present
        """
        payload = ResponseFormatter.extract_json_object(response_text)
        if payload is None:
            logger.warning("No JSON found in vision response, returning empty record")
            return VisionRecord.empty()

        try:
            validated = VisionExtraction.model_validate(payload)
        except pydantic.ValidationError as e:
            logger.warning(f"Vision schema validation failed, using parsed result: {e.error_count()} errors")
            return self._best_effort_record(payload)

        return VisionRecord(**validated.model_dump())

    @staticmethod
    def _best_effort_record(payload: Dict[str, Any]) -> VisionRecord:
        values = {}
        for name, field_info in VisionExtraction.model_fields.items():
            value = payload.get(field_info.alias)
            if value is None or value == "":
                values[name] = None
            else:
                values[name] = value if isinstance(value, str) else str(value)
        return VisionRecord(**values)

    def _detect_image_format(self, image_bytes: bytes, mime_hint: Optional[str] = None) -> str:
        """
        Detect image format from bytes, falling back to the MIME hint.

        Args:
            image_bytes: Raw image bytes
            mime_hint: Optional content type

        Returns:
            Format string ("jpeg", "png", "gif", "webp")
        """
        if image_bytes.startswith(b'\xff\xd8\xff'):
            return "jpeg"
        elif image_bytes.startswith(b'\x89PNG\r\n\x1a\n'):
            return "png"
        elif image_bytes.startswith(b'GIF87a') or image_bytes.startswith(b'GIF89a'):
            return "gif"
        elif image_bytes.startswith(b'RIFF') and b'WEBP' in image_bytes[:12]:
            return "webp"

        if mime_hint:
            hinted = _MIME_TO_FORMAT.get(mime_hint.split(";", 1)[0].strip().lower())
            if hinted:
                return hinted

        logger.warning("Unknown image format, defaulting to JPEG")
        return "jpeg"
