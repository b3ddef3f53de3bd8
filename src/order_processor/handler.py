"""
Order Ingestion Handler

Turns one queue message into one order row.

PROCESSING FLOW:
1. Parse JSON body (numbers with a fraction become Decimal, never float)
2. Validate required fields and ranges (fail fast, before any DB call)
3. INSERT the order (single statement, atomic on its own)
4. Acknowledge (delete) the message, only after the insert committed

FAILURE POLICY:
- process() never raises
- Malformed JSON, validation errors and database errors are all treated the
  same way: log with the correlation id, leave the message on the queue
- The queue redelivers it after the visibility timeout
- A permanently invalid message is therefore redelivered indefinitely unless
  the queue has a redrive (dead-letter) policy
"""

import json
import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from src.order_processor.database import DatabaseManager
from src.order_processor.models import Order, OrderLimits, validate_order_message
from src.order_processor.sqs_queue import QueueMessage
from src.order_processor.telemetry import NoopTracer, Tracer
from src.shared.logger import CorrelationAdapter

Acknowledge = Callable[[str], Any]


class OrderHandler:
    """
    Validates and stores orders received from the queue.

    Attributes:
        db_manager: Connection pool used for the insert
        limits: Quantity/price limits
        tracer: Tracing capability (annotates the current message span)
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        limits: Optional[OrderLimits] = None,
        tracer: Optional[Tracer] = None,
    ):
        self.db_manager = db_manager
        self.limits = limits or OrderLimits()
        self.tracer = tracer or NoopTracer()
        self.logger = logging.getLogger(__name__)

    def process(self, message: QueueMessage, acknowledge: Acknowledge) -> bool:
        """
        Store the order carried by a message and acknowledge it.

        Args:
            message: Received queue message
            acknowledge: Called with the receipt handle after a successful insert

        Returns:
            True if the order was stored and acknowledged, False otherwise
        """
        start_time = time.time()
        correlation_id: Optional[str] = None
        order_logger = CorrelationAdapter(self.logger, {"correlation_id": message.message_id})

        try:
            data = self._deserialize(message)
            if isinstance(data, dict) and data.get("correlationId"):
                correlation_id = str(data["correlationId"])
                order_logger = CorrelationAdapter(self.logger, {"correlation_id": correlation_id})
            self.tracer.annotate(correlation_id=correlation_id)

            order_logger.debug(
                "Processing message",
                extra={
                    "message_id": message.message_id,
                    "receive_count": message.receive_count,
                },
            )

            validate_order_message(data, self.limits)

            order_id = self.db_manager.insert_order(Order.from_message(data))
            self.tracer.annotate(order_id=order_id)

            acknowledge(message.receipt_handle)

            order_logger.info(
                "Order stored",
                extra={
                    "order_id": order_id,
                    "user_id": data["userId"],
                    "quantity": data["quantity"],
                    "total_price": data["totalPrice"],
                    "processing_time_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            return True

        except Exception as e:
            self.tracer.record_error(e)
            order_logger.error(
                "Order processing failed, message left for redelivery",
                exc_info=True,
                extra={
                    "message_id": message.message_id,
                    "receive_count": message.receive_count,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return False

    @staticmethod
    def _deserialize(message: QueueMessage) -> Dict[str, Any]:
        """
        Parse the message body.

        Raises:
            json.JSONDecodeError: If the body is not valid JSON
        """
        return json.loads(message.body, parse_float=Decimal)
