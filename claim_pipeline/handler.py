"""
SQS entry point for claim evaluation jobs.

Each record carries ``{"userId": ...}`` either directly or inside an SNS
notification envelope. Records are processed one at a time; failed records
are reported back individually so only they are redelivered.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from .evaluator import get_pipeline
from .orchestration.pipeline import ClaimPipeline
from .utils.errors import ValidationError

logger = logging.getLogger(__name__)


def parse_record_body(body: str, message_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse an SQS record body, unwrapping an SNS notification if present.

    Raises:
        ValidationError: If the body (or the SNS message) is not a JSON object
    """
    try:
        message = json.loads(body)
        if isinstance(message, dict) and message.get("Type") == "Notification":
            logger.info(
                f"SNS message received: subject={message.get('Subject')}, "
                f"topicArn={message.get('TopicArn')}, messageId={message.get('MessageId')}"
            )
            message = json.loads(message.get("Message") or "")
    except (TypeError, ValueError) as e:
        raise ValidationError.invalid_message(e, message_id) from e

    if not isinstance(message, dict):
        raise ValidationError.invalid_message(
            ValueError(f"expected a JSON object, got {type(message).__name__}"),
            message_id
        )

    return message


def extract_user_id(message: Dict[str, Any], message_id: Optional[str] = None) -> str:
    """
    Read the user id from ``userId``, falling back to ``user_id``.

    Raises:
        ValidationError: If neither key holds a value
    """
    user_id = message.get("userId") or message.get("user_id")
    if not user_id:
        raise ValidationError.missing_user_id(message_id)
    return str(user_id)


async def process_record(record: Dict[str, Any], pipeline: ClaimPipeline) -> Dict[str, Any]:
    """
    Run one claim job for an SQS record.

    Returns:
        The ClaimDecision in its wire shape

    Raises:
        ClaimsProcessingError: On invalid messages and fatal job errors
    """
    message_id = record.get("messageId")
    logger.info(f"Processing SQS record: messageId={message_id}")

    message = parse_record_body(record.get("body", ""), message_id)
    user_id = extract_user_id(message, message_id)

    job = await pipeline.run(user_id)
    decision = job.decision.to_dict()

    # Publication of the decision is delegated; it is logged for downstream pickup
    logger.info(f"Claim decision for userId {user_id}: {json.dumps(decision)}")
    return decision


async def process_batch(event: Dict[str, Any], pipeline: ClaimPipeline) -> Dict[str, List[Dict[str, str]]]:
    """
    Process an SQS batch sequentially.

    Returns:
        ``{"batchItemFailures": [{"itemIdentifier": messageId}, ...]}``
    """
    records = event.get("Records", []) or []
    batch_item_failures: List[Dict[str, str]] = []

    for record in records:
        try:
            await process_record(record, pipeline)
        except Exception as e:
            # Every failure is reported so the substrate redelivers only this record
            logger.error(f"Failed to process record {record.get('messageId')}: {e}", exc_info=True)
            batch_item_failures.append({"itemIdentifier": record.get("messageId", "")})

    if batch_item_failures:
        logger.warning(f"Failed to process {len(batch_item_failures)} out of {len(records)} records")
    else:
        logger.info(f"Successfully processed all {len(records)} records")

    return {"batchItemFailures": batch_item_failures}


def lambda_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, List[Dict[str, str]]]:
    """AWS Lambda handler for SQS-triggered claim evaluation."""
    logger.info(f"SQS event received: {len(event.get('Records', []) or [])} record(s)")
    pipeline = get_pipeline()
    return asyncio.run(process_batch(event, pipeline))
