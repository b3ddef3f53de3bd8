"""
SQS Order Queue Client

Thin wrapper around the boto3 SQS client exposing the two operations the
consumer needs: long-poll receive and delete-by-receipt-handle.

SQS DELIVERY MODEL:
- At-least-once: a message can be delivered more than once
- A received message is hidden for the queue's visibility timeout
- If it is not deleted before the timeout elapses it becomes visible again
  and is redelivered (this is how failed orders are retried)
- Deleting requires the receipt handle of the *latest* receive; handles go
  stale after the visibility timeout or after deletion

ERROR TRANSLATION:
- Any botocore failure on receive becomes QueueAccessError, which drives
  the consumer's circuit breaker
- A stale receipt handle on delete is logged and reported as False; it must
  never crash the poll loop
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# SQS never returns more than 10 messages per ReceiveMessage call
SQS_MAX_MESSAGES_PER_RECEIVE = 10

STALE_RECEIPT_CODES = {
    "ReceiptHandleIsInvalid",
    "InvalidParameterValue",
    "AWS.SimpleQueueService.NonExistentQueue",
}


class QueueAccessError(Exception):
    """The queue could not be reached or refused the request."""


@dataclass
class QueueMessage:
    """
    One message received from the queue.

    Attributes:
        message_id: SQS message id
        receipt_handle: Opaque handle required to delete this delivery
        body: Raw message body (JSON order)
        attributes: String message attributes (traceparent, tracestate, ...)
        receive_count: ApproximateReceiveCount (1 on first delivery)
    """

    message_id: str
    receipt_handle: str
    body: str
    attributes: Dict[str, str] = field(default_factory=dict)
    receive_count: int = 1

    @classmethod
    def from_sqs(cls, raw: Dict[str, Any]) -> "QueueMessage":
        attributes = {
            name: value["StringValue"]
            for name, value in (raw.get("MessageAttributes") or {}).items()
            if "StringValue" in value
        }
        system_attributes = raw.get("Attributes") or {}
        return cls(
            message_id=raw.get("MessageId", ""),
            receipt_handle=raw["ReceiptHandle"],
            body=raw.get("Body", ""),
            attributes=attributes,
            receive_count=int(system_attributes.get("ApproximateReceiveCount", 1)),
        )


class SQSQueue:
    """
    Order queue backed by Amazon SQS.

    Attributes:
        client: boto3 SQS client
        queue_url: URL of the order queue
    """

    def __init__(self, client: Any, queue_url: str):
        self.client = client
        self.queue_url = queue_url

    def receive(self, max_messages: int, wait_time_seconds: int = 20) -> List[QueueMessage]:
        """
        Long-poll for up to max_messages messages.

        Args:
            max_messages: 1..10 (SQS per-call maximum)
            wait_time_seconds: Server-side blocking wait

        Returns:
            Received messages (possibly empty)

        Raises:
            QueueAccessError: On any SQS or network failure
        """
        try:
            response = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_time_seconds,
                MessageAttributeNames=["All"],
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, BotoCoreError) as e:
            raise QueueAccessError(f"ReceiveMessage failed: {e}") from e

        return [QueueMessage.from_sqs(raw) for raw in response.get("Messages", [])]

    def delete(self, receipt_handle: str, correlation_id: Optional[str] = None) -> bool:
        """
        Delete (acknowledge) a message.

        Returns:
            True if deleted, False if the handle was stale or the call failed.
            The message then simply reappears after its visibility timeout.
        """
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in STALE_RECEIPT_CODES:
                logger.warning(
                    "Receipt handle no longer valid, message not deleted",
                    extra={"correlation_id": correlation_id, "error_code": code},
                )
            else:
                logger.error(
                    "Failed to delete message",
                    exc_info=True,
                    extra={"correlation_id": correlation_id, "error_code": code},
                )
            return False
        except BotoCoreError:
            logger.error(
                "Failed to delete message",
                exc_info=True,
                extra={"correlation_id": correlation_id},
            )
            return False
