"""Main application entry point for the table ordering service.

This module provides the FastAPI application factory and configuration
for running the service locally or in production.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

import boto3
from fastapi import FastAPI

from table_ordering_service.auth.staff_auth_client import StaffAuthClient
from table_ordering_service.handlers.api_handler import create_app
from table_ordering_service.handlers.event_handler import ChangeEventHandler
from table_ordering_service.models.order_models import Order
from table_ordering_service.observability import configure_logging, setup_observability
from table_ordering_service.repositories.change_feed import (
    MENU_ITEMS_TABLE,
    ORDERS_TABLE,
    RESTAURANT_TABLES_TABLE,
    ChangeFeed,
)
from table_ordering_service.repositories.ordering_repositories import (
    MenuItemRepository,
    OrderRepository,
    TableRepository,
)
from table_ordering_service.services.assistant_client import DEFAULT_ASSISTANT_URL, AssistantClient
from table_ordering_service.services.chat_service import ChatService
from table_ordering_service.services.live_collection import LiveCollection
from table_ordering_service.services.menu_service import MenuService
from table_ordering_service.services.order_admin_service import OrderAdminService
from table_ordering_service.services.order_service import OrderService
from table_ordering_service.services.qr_code_client import DEFAULT_QR_SERVICE_URL, QRCodeClient
from table_ordering_service.services.session_store import SessionStore
from table_ordering_service.services.staff_notifier import StaffNotifier
from table_ordering_service.services.table_service import TableService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything built at startup, shared by the API and the stream handler."""

    app: FastAPI
    change_feed: ChangeFeed
    session_store: SessionStore
    live_orders: LiveCollection[Order]
    event_handler: ChangeEventHandler

    def close(self) -> None:
        """Drop subscriptions and open sessions."""
        self.live_orders.close()
        self.change_feed.close()
        self.session_store.close()


def get_dynamodb_resource() -> Any:
    """Create DynamoDB resource with appropriate configuration.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        access_key = os.getenv("AWS_ACCESS_KEY_ID")
        secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        # Production - boto3 will use default credential chain (IAM role, env vars, etc.)
        return boto3.resource("dynamodb", region_name=region)


def get_table_names() -> dict[str, str]:
    """Logical table name -> configured DynamoDB table name."""
    return {
        ORDERS_TABLE: os.getenv("DYNAMODB_ORDERS_TABLE", "orders"),
        MENU_ITEMS_TABLE: os.getenv("DYNAMODB_MENU_ITEMS_TABLE", "menu_items"),
        RESTAURANT_TABLES_TABLE: os.getenv("DYNAMODB_TABLES_TABLE", "restaurant_tables"),
    }


def create_auth_client() -> StaffAuthClient | None:
    """Create the staff sign-in client if the auth service is configured."""
    base_url = os.getenv("AUTH_BASE_URL")
    api_key = os.getenv("AUTH_API_KEY")

    if not base_url or not api_key:
        logger.warning("AUTH_BASE_URL/AUTH_API_KEY not set - staff sign-in disabled")
        return None

    logger.info(f"Staff auth configured - URL: {base_url}")
    return StaffAuthClient(base_url=base_url, api_key=api_key)


def create_assistant_client() -> AssistantClient:
    api_key = os.getenv("ASSISTANT_API_KEY")
    if not api_key:
        logger.info("ASSISTANT_API_KEY not set - assistant replies disabled")
    return AssistantClient(
        api_key=api_key, api_url=os.getenv("ASSISTANT_API_URL", DEFAULT_ASSISTANT_URL)
    )


def get_api_keys(auth_configured: bool) -> list[str]:
    api_keys_str = os.getenv("ADMIN_API_KEY", "")
    api_keys = [key.strip() for key in api_keys_str.split(",") if key.strip()]

    if not api_keys and not auth_configured:
        logger.warning("No ADMIN_API_KEY or staff auth configured - using development key")
        api_keys = ["dummy-key-for-development"]

    return api_keys


def build_container() -> ServiceContainer:
    """Create every collaborator and the FastAPI application.

    This factory:
    1. Configures logging
    2. Creates the DynamoDB resource and change feed
    3. Initializes repositories
    4. Creates HTTP clients and services
    5. Creates FastAPI app with customer and admin endpoints
    6. Sets up observability

    Returns:
        ServiceContainer holding the app and the stream event handler
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Initializing table ordering service...")

    dynamodb_resource = get_dynamodb_resource()
    table_names = get_table_names()
    change_feed = ChangeFeed()

    order_repository = OrderRepository(
        dynamodb_resource=dynamodb_resource,
        table_name=table_names[ORDERS_TABLE],
        change_feed=change_feed,
    )
    menu_repository = MenuItemRepository(
        dynamodb_resource=dynamodb_resource,
        table_name=table_names[MENU_ITEMS_TABLE],
        change_feed=change_feed,
    )
    table_repository = TableRepository(
        dynamodb_resource=dynamodb_resource,
        table_name=table_names[RESTAURANT_TABLES_TABLE],
        change_feed=change_feed,
    )

    logger.info(f"Repositories configured - tables: {', '.join(table_names.values())}")

    notifier = StaffNotifier(webhook_url=os.getenv("STAFF_WEBHOOK_URL"))
    if not notifier.enabled:
        logger.info("STAFF_WEBHOOK_URL not set - staff notifications disabled")

    qr_client = QRCodeClient(
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000"),
        qr_service_url=os.getenv("QR_SERVICE_URL", DEFAULT_QR_SERVICE_URL),
    )
    auth_client = create_auth_client()

    session_store = SessionStore(
        idle_ttl_seconds=float(os.getenv("SESSION_IDLE_TTL_SECONDS", "7200")),
        completed_ttl_seconds=float(os.getenv("SESSION_COMPLETED_TTL_SECONDS", "900")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "5000")),
    )
    menu_service = MenuService(menu_repository=menu_repository)
    order_service = OrderService(order_repository=order_repository, notifier=notifier)
    chat_service = ChatService(
        session_store=session_store,
        menu_service=menu_service,
        order_service=order_service,
        assistant=create_assistant_client(),
    )
    admin_service = OrderAdminService(
        order_repository=order_repository, table_repository=table_repository
    )
    table_service = TableService(table_repository=table_repository, qr_client=qr_client)

    live_orders = LiveCollection(
        change_feed,
        ORDERS_TABLE,
        order_repository.list_orders,
        max_age_seconds=float(os.getenv("LIVE_ORDERS_MAX_AGE_SECONDS", "5")),
    )

    logger.info("Services initialized")

    app = create_app(
        chat_service=chat_service,
        order_service=order_service,
        admin_service=admin_service,
        table_service=table_service,
        menu_service=menu_service,
        api_keys=get_api_keys(auth_client is not None),
        auth_client=auth_client,
        live_orders=live_orders,
    )

    if os.getenv("OTEL_ENABLED", "true").lower() == "true":
        setup_observability(app)

    event_handler = ChangeEventHandler(
        change_feed=change_feed,
        table_names={physical: logical for logical, physical in table_names.items()},
    )

    logger.info("Table ordering service initialized successfully")

    return ServiceContainer(
        app=app,
        change_feed=change_feed,
        session_store=session_store,
        live_orders=live_orders,
        event_handler=event_handler,
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    Returns:
        Configured FastAPI application instance
    """
    return build_container().app


# Create the container only outside tests so that test collection does not
# touch DynamoDB.
container: ServiceContainer | None
if os.getenv("ENVIRONMENT") != "test":
    container = build_container()
    app = container.app
else:
    container = None
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
