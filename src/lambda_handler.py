"""AWS Lambda handler for both API Gateway and DynamoDB Streams events.

This module provides a single Lambda entry point that handles:
1. API Gateway requests (via Mangum ASGI adapter for FastAPI)
2. DynamoDB Streams records from the ordering tables (published on the change feed)

The container is built once per cold start by importing main and reused
across warm invocations.
"""

import logging
import os
from typing import Any

from mangum import Mangum

import main
from table_ordering_service.handlers.event_handler import ChangeEventHandler

logger = logging.getLogger(__name__)

if os.getenv("ENVIRONMENT") != "test":
    mangum_handler = Mangum(main.app, lifespan="off")
else:
    mangum_handler = None  # type: ignore


def get_event_handler() -> ChangeEventHandler:
    """Return the stream handler built at cold start.

    Raises:
        RuntimeError: If the service container was not built
    """
    if main.container is None:
        raise RuntimeError("Service container is not initialized")
    return main.container.event_handler


def is_dynamodb_stream_event(event: dict[str, Any]) -> bool:
    """Determine if the event is a DynamoDB Streams batch.

    Args:
        event: The Lambda event payload

    Returns:
        True if every record comes from DynamoDB, False otherwise
    """
    records = event.get("Records")
    if not isinstance(records, list) or not records:
        return False
    return all(r.get("eventSource") == "aws:dynamodb" for r in records)


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Multi-purpose Lambda handler for API Gateway and DynamoDB Streams events.

    Routes incoming events to the appropriate handler:
    - DynamoDB Streams records -> ChangeEventHandler
    - API Gateway requests -> FastAPI via Mangum

    Args:
        event: The Lambda event payload
        context: The Lambda context object

    Returns:
        Response dict with statusCode and body
    """
    logger.info(f"Received Lambda invocation, request_id: {getattr(context, 'aws_request_id', None)}")

    try:
        if is_dynamodb_stream_event(event):
            logger.info(f"Processing {len(event['Records'])} DynamoDB stream record(s)")
            return get_event_handler().handle_stream_event(event, context)

        logger.info("Processing API Gateway request via Mangum")
        result: dict[str, Any] = mangum_handler(event, context)
        return result

    except Exception as e:
        logger.exception(f"Unhandled error in Lambda handler: {e}")
        return {
            "statusCode": 500,
            "body": f"Internal server error: {str(e)}",
        }
