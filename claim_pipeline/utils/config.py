"""Configuration management for the claim evaluation pipeline."""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError


@dataclass
class BedrockConfig:
    """AWS Bedrock configuration."""
    model_id: str
    embedding_model_id: str
    timeout: int


@dataclass
class ArtifactStoreConfig:
    """Where uploaded claim evidence lives."""
    backend: str  # "s3" | "local"
    bucket_name: str
    local_root: str
    prefix: str


@dataclass
class VectorStoreConfig:
    """FAISS policy index configuration."""
    index_path: str
    metadata_path: str
    dimension: int


@dataclass
class RetrievalConfig:
    """Policy retrieval configuration."""
    source: str
    default_limit: int


@dataclass
class ExtractionConfig:
    """Vision and document extraction configuration."""
    temperature: float
    max_tokens: int
    document_char_budget: int
    max_concurrency: Optional[int] = None


@dataclass
class DecisionConfig:
    """Claim decision engine configuration."""
    max_tokens: int
    document_text_chars: int
    policy_content_chars: int


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    format: str
    file: Optional[str]


@dataclass
class Config:
    """Main configuration class."""
    aws_region: str
    bedrock: BedrockConfig
    artifact_store: ArtifactStoreConfig
    vector_store: VectorStoreConfig
    retrieval: RetrievalConfig
    extraction: ExtractionConfig
    decision: DecisionConfig
    logging: LoggingConfig

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        Environment variables override config file values:
        - AWS_REGION
        - BEDROCK_MODEL_ID
        - ARTIFACT_STORE_BACKEND
        - S3_BUCKET_NAME
        - FAISS_INDEX_PATH
        - POLICY_SOURCE
        - LOG_LEVEL

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            ConfigurationError: If the file is missing or a value is invalid
        """
        load_dotenv()

        if not os.path.exists(config_path):
            raise ConfigurationError.missing(f"config file '{config_path}' not found")

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> "Config":
        """
        Build configuration from an already-parsed mapping.

        Args:
            config_data: Mapping with the same layout as config.yaml

        Returns:
            Config instance with loaded settings
        """
        try:
            aws = config_data["aws"]
            aws_region = os.getenv("AWS_REGION", aws["region"])

            bedrock_config = BedrockConfig(
                model_id=os.getenv("BEDROCK_MODEL_ID", aws["bedrock"]["model_id"]),
                embedding_model_id=aws["bedrock"]["embedding_model_id"],
                timeout=int(aws["bedrock"].get("timeout", 300))
            )

            store = config_data["artifact_store"]
            artifact_store_config = ArtifactStoreConfig(
                backend=os.getenv("ARTIFACT_STORE_BACKEND", store.get("backend", "s3")).lower(),
                bucket_name=os.getenv("S3_BUCKET_NAME", store.get("bucket_name") or ""),
                local_root=store.get("local_root", "data/uploads"),
                prefix=store.get("prefix", "users")
            )

            vector_store_config = VectorStoreConfig(
                index_path=os.getenv("FAISS_INDEX_PATH", config_data["vector_store"]["index_path"]),
                metadata_path=config_data["vector_store"]["metadata_path"],
                dimension=int(config_data["vector_store"].get("dimension", 1024))
            )

            retrieval = config_data.get("retrieval", {}) or {}
            retrieval_config = RetrievalConfig(
                source=os.getenv("POLICY_SOURCE", retrieval.get("source", "insurance_claim_policy")),
                default_limit=int(retrieval.get("default_limit", 10))
            )

            extraction = config_data.get("extraction", {}) or {}
            max_concurrency = extraction.get("max_concurrency")
            extraction_config = ExtractionConfig(
                temperature=float(extraction.get("temperature", 0.0)),
                max_tokens=int(extraction.get("max_tokens", 3000)),
                document_char_budget=int(extraction.get("document_char_budget", 15000)),
                max_concurrency=int(max_concurrency) if max_concurrency is not None else None
            )

            decision = config_data.get("decision", {}) or {}
            decision_config = DecisionConfig(
                max_tokens=int(decision.get("max_tokens", 3000)),
                document_text_chars=int(decision.get("document_text_chars", 2000)),
                policy_content_chars=int(decision.get("policy_content_chars", 1500))
            )

            log = config_data.get("logging", {}) or {}
            logging_config = LoggingConfig(
                level=os.getenv("LOG_LEVEL", log.get("level", "INFO")),
                format=log.get(
                    "format",
                    "%(asctime)s - %(name)s - %(levelname)s - [%(user_id)s] %(message)s"
                ),
                file=log.get("file")
            )
        except KeyError as e:
            raise ConfigurationError.missing(f"required key {e}") from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError.invalid(str(e)) from e

        config = cls(
            aws_region=aws_region,
            bedrock=bedrock_config,
            artifact_store=artifact_store_config,
            vector_store=vector_store_config,
            retrieval=retrieval_config,
            extraction=extraction_config,
            decision=decision_config,
            logging=logging_config,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Check cross-field constraints that YAML alone cannot express."""
        if self.artifact_store.backend not in ("s3", "local"):
            raise ConfigurationError.invalid(
                f"artifact_store.backend must be 's3' or 'local', got '{self.artifact_store.backend}'"
            )
        if self.artifact_store.backend == "s3" and not self.artifact_store.bucket_name:
            raise ConfigurationError.missing("artifact_store.bucket_name (or S3_BUCKET_NAME)")
        if not self.retrieval.source:
            raise ConfigurationError.missing("retrieval.source")
        if self.retrieval.default_limit < 1:
            raise ConfigurationError.invalid("retrieval.default_limit must be at least 1")
        if self.extraction.document_char_budget < 1:
            raise ConfigurationError.invalid("extraction.document_char_budget must be positive")
        if self.extraction.max_concurrency is not None and self.extraction.max_concurrency < 1:
            raise ConfigurationError.invalid("extraction.max_concurrency must be at least 1")
