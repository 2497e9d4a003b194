"""Insurance claim evaluation pipeline on AWS Bedrock."""

__version__ = "0.1.0"
