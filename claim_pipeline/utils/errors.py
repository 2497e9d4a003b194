"""Error handling utilities for the claim evaluation pipeline."""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the claim evaluation pipeline."""

    # Bedrock API Errors
    BEDROCK_RATE_LIMIT = "BEDROCK_RATE_LIMIT"
    BEDROCK_TIMEOUT = "BEDROCK_TIMEOUT"
    BEDROCK_AUTH_ERROR = "BEDROCK_AUTH_ERROR"
    BEDROCK_MODEL_ERROR = "BEDROCK_MODEL_ERROR"
    BEDROCK_INVALID_REQUEST = "BEDROCK_INVALID_REQUEST"
    BEDROCK_SERVICE_ERROR = "BEDROCK_SERVICE_ERROR"

    # Job Errors (fatal for the claim job)
    MISSING_USER_ID = "MISSING_USER_ID"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    NO_ARTIFACTS = "NO_ARTIFACTS"

    # Artifact Store Errors
    ARTIFACT_LISTING_FAILED = "ARTIFACT_LISTING_FAILED"
    ARTIFACT_DOWNLOAD_FAILED = "ARTIFACT_DOWNLOAD_FAILED"

    # Extraction Errors
    IMAGE_EXTRACTION_FAILED = "IMAGE_EXTRACTION_FAILED"
    DOCUMENT_EXTRACTION_FAILED = "DOCUMENT_EXTRACTION_FAILED"
    PDF_TEXT_EXTRACTION_FAILED = "PDF_TEXT_EXTRACTION_FAILED"

    # Vector Store Errors
    VECTOR_INDEX_NOT_FOUND = "VECTOR_INDEX_NOT_FOUND"
    VECTOR_SEARCH_FAILED = "VECTOR_SEARCH_FAILED"
    EMBEDDING_GENERATION_FAILED = "EMBEDDING_GENERATION_FAILED"

    # Agent Errors
    RETRIEVAL_DECISION_FAILED = "RETRIEVAL_DECISION_FAILED"
    DECISION_PARSE_FAILED = "DECISION_PARSE_FAILED"

    # Configuration Errors
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"

    # System Errors
    INITIALIZATION_FAILED = "INITIALIZATION_FAILED"


@dataclass
class ErrorContext:
    """
    Context information for errors in the claim evaluation pipeline.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether the pipeline continues after this error
        fallback_action: Optional description of fallback action taken
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    fallback_action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class ClaimsProcessingError(Exception):
    """
    Base exception for all claim evaluation errors.

    Wraps errors with additional context so callers can decide between
    degrading (recoverable) and failing the job (not recoverable).

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        self.context = context
        super().__init__(context.message)

    def __str__(self) -> str:
        """String representation of the error."""
        base = f"{self.context.error_type.value}: {self.context.message}"
        if self.context.fallback_action:
            base += f" (Fallback: {self.context.fallback_action})"
        return base

    @property
    def recoverable(self) -> bool:
        return self.context.recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return self.context.to_dict()


class BedrockAPIError(ClaimsProcessingError):
    """Exception for AWS Bedrock API errors."""

    @classmethod
    def from_client_error(
        cls,
        error: Exception,
        operation: str,
        recoverable: bool = False,
        fallback_action: Optional[str] = None
    ) -> "BedrockAPIError":
        """
        Create BedrockAPIError from boto3 ClientError.

        Args:
            error: Original boto3 ClientError
            operation: Description of operation that failed
            recoverable: Whether error is recoverable
            fallback_action: Optional fallback action description

        Returns:
            BedrockAPIError instance
        """
        error_code = "Unknown"
        error_message = str(error)

        if hasattr(error, 'response'):
            error_info = error.response.get("Error", {})
            error_code = error_info.get("Code", "Unknown")
            error_message = error_info.get("Message", str(error))

        error_type_map = {
            "ThrottlingException": ErrorType.BEDROCK_RATE_LIMIT,
            "TooManyRequestsException": ErrorType.BEDROCK_RATE_LIMIT,
            "RequestTimeout": ErrorType.BEDROCK_TIMEOUT,
            "RequestTimeoutException": ErrorType.BEDROCK_TIMEOUT,
            "UnauthorizedException": ErrorType.BEDROCK_AUTH_ERROR,
            "AccessDeniedException": ErrorType.BEDROCK_AUTH_ERROR,
            "ValidationException": ErrorType.BEDROCK_INVALID_REQUEST,
            "ModelNotReadyException": ErrorType.BEDROCK_MODEL_ERROR,
            "ModelTimeoutException": ErrorType.BEDROCK_TIMEOUT,
            "ServiceUnavailableException": ErrorType.BEDROCK_SERVICE_ERROR,
            "InternalServerException": ErrorType.BEDROCK_SERVICE_ERROR,
        }

        error_type = error_type_map.get(error_code, ErrorType.BEDROCK_SERVICE_ERROR)

        context = ErrorContext(
            error_type=error_type,
            message=f"Bedrock API error during {operation}: {error_message}",
            recoverable=recoverable,
            fallback_action=fallback_action,
            details={
                "error_code": error_code,
                "operation": operation
            },
            original_exception=error
        )

        return cls(context)


class ValidationError(ClaimsProcessingError):
    """Fatal error for an inbound job message that cannot be processed."""

    @classmethod
    def missing_user_id(cls, message_id: Optional[str] = None) -> "ValidationError":
        context = ErrorContext(
            error_type=ErrorType.MISSING_USER_ID,
            message="userId is required in the message",
            recoverable=False,
            details={"message_id": message_id} if message_id else None
        )
        return cls(context)

    @classmethod
    def invalid_message(
        cls,
        error: Exception,
        message_id: Optional[str] = None
    ) -> "ValidationError":
        context = ErrorContext(
            error_type=ErrorType.INVALID_MESSAGE,
            message=f"Message body is not valid JSON: {str(error)}",
            recoverable=False,
            details={"message_id": message_id} if message_id else None,
            original_exception=error
        )
        return cls(context)


class NoArtifactsError(ClaimsProcessingError):
    """Fatal error raised when a claim job has nothing to evaluate."""

    @classmethod
    def for_user(cls, user_id: str) -> "NoArtifactsError":
        context = ErrorContext(
            error_type=ErrorType.NO_ARTIFACTS,
            message=f"No files found in artifact store for userId '{user_id}'",
            recoverable=False,
            details={"user_id": user_id}
        )
        return cls(context)


class RetrievalError(ClaimsProcessingError):
    """Exception for artifact store listing and download failures."""

    @classmethod
    def download_failed(
        cls,
        key: str,
        error: Optional[Exception] = None,
        reason: Optional[str] = None
    ) -> "RetrievalError":
        """
        Create error for a missing or truncated artifact.

        Args:
            key: Artifact key that could not be downloaded
            error: Optional original exception
            reason: Optional explanation when there is no original exception

        Returns:
            RetrievalError instance
        """
        cause = reason or (str(error) if error else "unknown cause")
        context = ErrorContext(
            error_type=ErrorType.ARTIFACT_DOWNLOAD_FAILED,
            message=f"Failed to download artifact '{key}': {cause}",
            recoverable=True,
            fallback_action="Continue with an empty record for this artifact",
            details={"key": key},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def listing_failed(cls, prefix: str, error: Exception) -> "RetrievalError":
        context = ErrorContext(
            error_type=ErrorType.ARTIFACT_LISTING_FAILED,
            message=f"Failed to list artifacts under '{prefix}': {str(error)}",
            recoverable=False,
            details={"prefix": prefix},
            original_exception=error
        )
        return cls(context)


class ExtractionError(ClaimsProcessingError):
    """Exception for vision and document extraction failures."""

    @classmethod
    def image_extraction_failed(
        cls,
        error: Exception,
        fallback_action: Optional[str] = None
    ) -> "ExtractionError":
        """
        Create error for image extraction failure.

        Args:
            error: Original exception
            fallback_action: Optional fallback action

        Returns:
            ExtractionError instance
        """
        context = ErrorContext(
            error_type=ErrorType.IMAGE_EXTRACTION_FAILED,
            message=f"Failed to extract vehicle details from image: {str(error)}",
            recoverable=True,
            fallback_action=fallback_action or "Continue with an empty vision record",
            original_exception=error
        )
        return cls(context)

    @classmethod
    def document_extraction_failed(
        cls,
        error: Exception,
        fallback_action: Optional[str] = None
    ) -> "ExtractionError":
        """
        Create error for document field extraction failure.

        Args:
            error: Original exception
            fallback_action: Optional fallback action

        Returns:
            ExtractionError instance
        """
        context = ErrorContext(
            error_type=ErrorType.DOCUMENT_EXTRACTION_FAILED,
            message=f"Failed to extract fields from document: {str(error)}",
            recoverable=True,
            fallback_action=fallback_action or "Continue with available evidence",
            original_exception=error
        )
        return cls(context)

    @classmethod
    def pdf_text_extraction_failed(cls, error: Exception) -> "ExtractionError":
        context = ErrorContext(
            error_type=ErrorType.PDF_TEXT_EXTRACTION_FAILED,
            message=f"Failed to extract text from PDF: {str(error)}",
            recoverable=True,
            fallback_action="Continue with an empty document record",
            original_exception=error
        )
        return cls(context)


class VectorStoreError(ClaimsProcessingError):
    """Exception for policy vector index errors."""

    @classmethod
    def index_not_found(
        cls,
        index_path: str,
        fallback_action: Optional[str] = None
    ) -> "VectorStoreError":
        """
        Create error for a missing FAISS index.

        Args:
            index_path: Path to missing index file
            fallback_action: Optional fallback action

        Returns:
            VectorStoreError instance
        """
        context = ErrorContext(
            error_type=ErrorType.VECTOR_INDEX_NOT_FOUND,
            message=f"FAISS index not found at '{index_path}'",
            recoverable=True,
            fallback_action=fallback_action or "Evaluate without policy documents",
            details={"index_path": index_path}
        )
        return cls(context)

    @classmethod
    def search_failed(
        cls,
        query: str,
        error: Exception,
        fallback_action: Optional[str] = None
    ) -> "VectorStoreError":
        """
        Create error for policy search failure.

        Args:
            query: Search query that failed
            error: Original exception
            fallback_action: Optional fallback action

        Returns:
            VectorStoreError instance
        """
        context = ErrorContext(
            error_type=ErrorType.VECTOR_SEARCH_FAILED,
            message=f"Policy search failed for query '{query[:50]}...': {str(error)}",
            recoverable=True,
            fallback_action=fallback_action or "Return empty results",
            details={"query": query},
            original_exception=error
        )
        return cls(context)


class AgentError(ClaimsProcessingError):
    """Exception for retrieval-decision and decision-engine failures."""

    @classmethod
    def retrieval_decision_failed(cls, error: Exception) -> "AgentError":
        context = ErrorContext(
            error_type=ErrorType.RETRIEVAL_DECISION_FAILED,
            message=f"Retrieval decision failed: {str(error)}",
            recoverable=True,
            fallback_action="Evaluate without policy documents",
            original_exception=error
        )
        return cls(context)

    @classmethod
    def decision_parse_failed(cls, error: Exception) -> "AgentError":
        context = ErrorContext(
            error_type=ErrorType.DECISION_PARSE_FAILED,
            message=f"Error during evaluation: {str(error)}",
            recoverable=True,
            fallback_action="Return fail-closed Rejected decision",
            original_exception=error
        )
        return cls(context)


class ConfigurationError(ClaimsProcessingError):
    """Exception for missing or invalid configuration."""

    @classmethod
    def missing(cls, what: str) -> "ConfigurationError":
        context = ErrorContext(
            error_type=ErrorType.CONFIG_MISSING,
            message=f"Configuration missing: {what}",
            recoverable=False
        )
        return cls(context)

    @classmethod
    def invalid(cls, what: str) -> "ConfigurationError":
        context = ErrorContext(
            error_type=ErrorType.CONFIG_INVALID,
            message=f"Configuration invalid: {what}",
            recoverable=False
        )
        return cls(context)
