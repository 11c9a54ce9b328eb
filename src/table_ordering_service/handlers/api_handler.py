"""FastAPI application for the customer ordering and admin endpoints."""

import logging
from decimal import Decimal

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from table_ordering_service.auth.staff_access import StaffAccessValidator, authorize_staff
from table_ordering_service.auth.staff_auth_client import StaffAuthClient
from table_ordering_service.models.menu_models import MenuItem, RestaurantTable, TableStatusEnum
from table_ordering_service.models.order_models import (
    Order,
    OrderItem,
    OrderStatusEnum,
    PaymentMethodEnum,
)
from table_ordering_service.services.calculations import apply_tax
from table_ordering_service.services.chat_service import ChatService
from table_ordering_service.services.conversation import (
    Affordance,
    ChatMessage,
    ConversationAction,
    ConversationFlow,
    PaymentChoice,
)
from table_ordering_service.services.errors import (
    EmptyCartError,
    IllegalTransitionError,
    InvalidAmountError,
    NotFoundError,
    OrderingError,
    PersistenceError,
    ValidationError,
)
from table_ordering_service.services.live_collection import LiveCollection
from table_ordering_service.services.menu_service import MenuService, group_by_category
from table_ordering_service.services.order_admin_service import DashboardStats, OrderAdminService
from table_ordering_service.services.order_service import OrderService
from table_ordering_service.services.receipt_pdf import build_receipt_pdf
from table_ordering_service.services.table_service import TableService

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[OrderingError], int] = {
    ValidationError: 400,
    InvalidAmountError: 400,
    EmptyCartError: 400,
    IllegalTransitionError: 409,
    NotFoundError: 404,
    PersistenceError: 502,
}


def status_code_for(error: OrderingError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 400


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class BillResponse(BaseModel):
    """Amounts due for a cart or placed order, tax included."""

    subtotal: Decimal
    tip_amount: Decimal
    tax_amount: Decimal
    total: Decimal


class SessionResponse(BaseModel):
    """State of a customer conversation."""

    session_id: str
    table_number: int
    step: str
    affordances: list[Affordance]
    allowed_actions: list[ConversationAction]
    cart: list[OrderItem]
    item_count: int
    bill: BillResponse
    messages: list[ChatMessage]
    order: Order | None = None


class CreateSessionRequest(BaseModel):
    table_number: int = Field(..., gt=0)


class ActionRequest(BaseModel):
    action: ConversationAction


class AddItemRequest(BaseModel):
    menu_item_id: int


class QuantityRequest(BaseModel):
    delta: int


class TipRequest(BaseModel):
    """Tip by percentage or amount; neither skips the tip."""

    percentage: Decimal | None = None
    amount: Decimal | None = None
    confirm: bool = True


class CheckoutRequest(BaseModel):
    payment_choice: PaymentChoice


class MessageRequest(BaseModel):
    text: str


class FeedbackRequest(BaseModel):
    rating: int
    customer_note: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    email: str
    expires_in: int | None = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatusEnum


class PaymentRequest(BaseModel):
    payment_method: PaymentMethodEnum | None = None
    transaction_id: str | None = None


class TableCreateRequest(BaseModel):
    seats: int | None = None


class TableStatusRequest(BaseModel):
    status: TableStatusEnum


class TableLinkResponse(BaseModel):
    table_number: int
    url: str


class MenuItemCreateRequest(BaseModel):
    name: str | None = None
    price: Decimal | None = None
    category: str | None = None
    available: bool = True


class MenuItemUpdateRequest(BaseModel):
    name: str | None = None
    price: Decimal | None = None
    category: str | None = None
    available: bool | None = None


class AvailabilityRequest(BaseModel):
    available: bool


def session_view(session_id: str, flow: ConversationFlow) -> SessionResponse:
    """Render a flow for the client, billing the placed order once there is one."""
    if flow.order is not None:
        breakdown = apply_tax(flow.order.subtotal, flow.order.tip_amount)
        cart = flow.order.items
    else:
        breakdown = apply_tax(flow.subtotal, flow.tip_amount)
        cart = flow.cart.lines

    return SessionResponse(
        session_id=session_id,
        table_number=flow.table_number,
        step=flow.step.value,
        affordances=sorted(flow.affordances),
        allowed_actions=flow.allowed_actions(),
        cart=cart,
        item_count=sum(line.quantity for line in cart),
        bill=BillResponse(
            subtotal=breakdown.subtotal,
            tip_amount=breakdown.tip_amount,
            tax_amount=breakdown.tax_amount,
            total=breakdown.total,
        ),
        messages=flow.messages,
        order=flow.order,
    )


def create_app(
    chat_service: ChatService,
    order_service: OrderService,
    admin_service: OrderAdminService,
    table_service: TableService,
    menu_service: MenuService,
    api_keys: list[str],
    auth_client: StaffAuthClient | None = None,
    live_orders: LiveCollection[Order] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        chat_service: Service for customer sessions
        order_service: Service for placed orders and feedback
        admin_service: Service for staff order management
        table_service: Service for table inventory
        menu_service: Service for the menu
        api_keys: List of valid API keys for authentication
        auth_client: Staff sign-in client for bearer tokens
        live_orders: Order snapshot kept current by the change feed

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Table Ordering Service API",
        description="Conversational table ordering for customers and the staff dashboard",
        version="1.0.0",
    )

    app.state.chat_service = chat_service
    app.state.order_service = order_service
    app.state.admin_service = admin_service
    app.state.table_service = table_service
    app.state.menu_service = menu_service
    app.state.auth_client = auth_client
    app.state.live_orders = live_orders
    app.state.staff_validator = StaffAccessValidator(api_keys=api_keys, auth_client=auth_client)

    @app.exception_handler(OrderingError)
    async def handle_ordering_error(_request: Request, exc: OrderingError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"Request failed: {exc}")  # pragma: no cover
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    async def require_staff(
        x_api_key: str | None = Header(None),
        authorization: str | None = Header(None),
    ) -> str:
        """Dependency to validate staff credentials."""
        return await authorize_staff(app.state.staff_validator, x_api_key, authorization)

    # Customer endpoints

    @app.get("/menu", response_model=list[MenuItem], tags=["Menu"])
    async def get_menu(category: str | None = None) -> list[MenuItem]:
        """Available menu items, ordered by category.

        Args:
            category: Only items whose category matches exactly
        """
        items: list[MenuItem] = await app.state.menu_service.list_items(available_only=True)
        if category is not None:
            return group_by_category(items).get(category, [])
        return items

    @app.get("/menu/categories", response_model=dict[str, list[MenuItem]], tags=["Menu"])
    async def get_menu_by_category() -> dict[str, list[MenuItem]]:
        items = await app.state.menu_service.list_items(available_only=True)
        return group_by_category(items)

    @app.post("/sessions", response_model=SessionResponse, status_code=201, tags=["Sessions"])
    async def create_session(request: CreateSessionRequest) -> SessionResponse:
        """Start a conversation for the table encoded in the QR link."""
        session_id, flow = app.state.chat_service.start_session(request.table_number)
        return session_view(session_id, flow)

    @app.get("/sessions/{session_id}", response_model=SessionResponse, tags=["Sessions"])
    async def get_session(session_id: str) -> SessionResponse:
        return session_view(session_id, app.state.chat_service.get_session(session_id))

    @app.delete("/sessions/{session_id}", status_code=204, tags=["Sessions"])
    async def end_session(session_id: str) -> Response:
        if not app.state.chat_service.end_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return Response(status_code=204)

    @app.post("/sessions/{session_id}/actions", response_model=SessionResponse, tags=["Sessions"])
    async def perform_action(session_id: str, request: ActionRequest) -> SessionResponse:
        """Apply a navigation action such as menu, cart, checkout or restart."""
        app.state.chat_service.perform(session_id, request.action)
        return session_view(session_id, app.state.chat_service.get_session(session_id))

    @app.post("/sessions/{session_id}/messages", response_model=SessionResponse, tags=["Sessions"])
    async def send_message(session_id: str, request: MessageRequest) -> SessionResponse:
        await app.state.chat_service.send_message(session_id, request.text)
        return session_view(session_id, app.state.chat_service.get_session(session_id))

    @app.post("/sessions/{session_id}/cart", response_model=SessionResponse, tags=["Cart"])
    async def add_to_cart(session_id: str, request: AddItemRequest) -> SessionResponse:
        flow = await app.state.chat_service.add_item(session_id, request.menu_item_id)
        return session_view(session_id, flow)

    @app.patch(
        "/sessions/{session_id}/cart/{menu_item_id}", response_model=SessionResponse, tags=["Cart"]
    )
    async def change_quantity(
        session_id: str, menu_item_id: int, request: QuantityRequest
    ) -> SessionResponse:
        """Adjust a line by a signed delta; reaching zero removes it."""
        flow = app.state.chat_service.update_quantity(session_id, menu_item_id, request.delta)
        return session_view(session_id, flow)

    @app.delete(
        "/sessions/{session_id}/cart/{menu_item_id}", response_model=SessionResponse, tags=["Cart"]
    )
    async def remove_from_cart(session_id: str, menu_item_id: int) -> SessionResponse:
        flow = app.state.chat_service.remove_item(session_id, menu_item_id)
        return session_view(session_id, flow)

    @app.post("/sessions/{session_id}/tip", response_model=SessionResponse, tags=["Checkout"])
    async def select_tip(session_id: str, request: TipRequest) -> SessionResponse:
        flow = app.state.chat_service.select_tip(
            session_id,
            percentage=request.percentage,
            amount=request.amount,
            confirm=request.confirm,
        )
        return session_view(session_id, flow)

    @app.post("/sessions/{session_id}/checkout", response_model=SessionResponse, tags=["Checkout"])
    async def checkout(
        session_id: str, request: CheckoutRequest, background_tasks: BackgroundTasks
    ) -> SessionResponse:
        """Place the order. A storage failure leaves the session at the payment step.

        Staff are notified after the response is sent.
        """
        order = await app.state.chat_service.checkout(session_id, request.payment_choice)
        background_tasks.add_task(app.state.order_service.notify_staff, order)
        return session_view(session_id, app.state.chat_service.get_session(session_id))

    @app.get("/sessions/{session_id}/receipt.pdf", tags=["Checkout"])
    async def download_receipt(session_id: str) -> Response:
        """The placed order's bill as a PDF download.

        Raises:
            HTTPException: 404 until the session has placed an order
        """
        flow = app.state.chat_service.get_session(session_id)
        if flow.order is None:
            raise HTTPException(status_code=404, detail="No order has been placed yet")
        return Response(
            content=build_receipt_pdf(flow.order),
            media_type="application/pdf",
            headers={
                "Content-Disposition": f'attachment; filename="{flow.order.receipt_id}.pdf"'
            },
        )

    @app.post("/orders/{receipt_id}/feedback", response_model=Order, tags=["Orders"])
    async def submit_feedback(receipt_id: str, request: FeedbackRequest) -> Order:
        order: Order = await app.state.order_service.submit_feedback(
            receipt_id, request.rating, request.customer_note
        )
        return order

    # Admin endpoints

    @app.post("/admin/login", response_model=LoginResponse, tags=["Admin"])
    async def login(request: LoginRequest) -> LoginResponse:
        """Exchange staff email and password for a bearer token.

        Raises:
            HTTPException: 503 without an auth service, 401 on bad credentials
        """
        if app.state.auth_client is None:
            raise HTTPException(status_code=503, detail="Staff sign-in is not configured")

        session = await app.state.auth_client.sign_in(request.email, request.password)
        if session is None:
            raise HTTPException(status_code=401, detail="Invalid email or password")

        return LoginResponse(
            access_token=session.access_token, email=session.email, expires_in=session.expires_in
        )

    @app.get("/admin/orders", response_model=list[Order], tags=["Orders"])
    async def list_orders(
        status: OrderStatusEnum | None = None,
        _staff: str = Depends(require_staff),
    ) -> list[Order]:
        """All orders, newest first.

        Args:
            status: Only orders with this status
        """
        if app.state.live_orders is not None:
            orders: list[Order] = list(app.state.live_orders.current())
        else:
            orders = await app.state.admin_service.list_orders()
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return orders

    @app.get("/admin/orders/{receipt_id}", response_model=Order, tags=["Orders"])
    async def find_order(receipt_id: str, _staff: str = Depends(require_staff)) -> Order:
        """Verify a receipt code, ignoring case."""
        order: Order = await app.state.admin_service.find_by_receipt(receipt_id)
        return order

    @app.post("/admin/orders/{receipt_id}/confirm", response_model=Order, tags=["Orders"])
    async def confirm_order(receipt_id: str, _staff: str = Depends(require_staff)) -> Order:
        order: Order = await app.state.admin_service.confirm_order(receipt_id)
        return order

    @app.post("/admin/orders/{receipt_id}/payment", response_model=Order, tags=["Orders"])
    async def record_payment(
        receipt_id: str,
        request: PaymentRequest | None = None,
        _staff: str = Depends(require_staff),
    ) -> Order:
        payment = request or PaymentRequest()
        order: Order = await app.state.admin_service.record_payment(
            receipt_id,
            payment_method=payment.payment_method,
            transaction_id=payment.transaction_id,
        )
        return order

    @app.post("/admin/orders/{receipt_id}/cancel", response_model=Order, tags=["Orders"])
    async def cancel_order(receipt_id: str, _staff: str = Depends(require_staff)) -> Order:
        order: Order = await app.state.admin_service.cancel_order(receipt_id)
        return order

    @app.put("/admin/orders/{receipt_id}/status", response_model=Order, tags=["Orders"])
    async def update_order_status(
        receipt_id: str,
        request: StatusUpdateRequest,
        _staff: str = Depends(require_staff),
    ) -> Order:
        order: Order = await app.state.admin_service.update_status(receipt_id, request.status)
        return order

    @app.get("/admin/stats", response_model=DashboardStats, tags=["Orders"])
    async def dashboard_stats(_staff: str = Depends(require_staff)) -> DashboardStats:
        stats: DashboardStats = await app.state.admin_service.dashboard_stats()
        return stats

    @app.get("/admin/tables", response_model=list[RestaurantTable], tags=["Tables"])
    async def list_tables(_staff: str = Depends(require_staff)) -> list[RestaurantTable]:
        tables: list[RestaurantTable] = await app.state.table_service.list_tables()
        return tables

    @app.post("/admin/tables", response_model=RestaurantTable, status_code=201, tags=["Tables"])
    async def add_table(
        request: TableCreateRequest | None = None,
        _staff: str = Depends(require_staff),
    ) -> RestaurantTable:
        """Add a table numbered one above the current highest."""
        seats = request.seats if request else None
        table: RestaurantTable = await app.state.table_service.add_table(seats=seats)
        return table

    @app.delete("/admin/tables/{table_number}", status_code=204, tags=["Tables"])
    async def remove_table(table_number: int, _staff: str = Depends(require_staff)) -> Response:
        await app.state.table_service.remove_table(table_number)
        return Response(status_code=204)

    @app.post(
        "/admin/tables/{table_number}/release", response_model=RestaurantTable, tags=["Tables"]
    )
    async def release_table(
        table_number: int, _staff: str = Depends(require_staff)
    ) -> RestaurantTable:
        table: RestaurantTable = await app.state.table_service.release_table(table_number)
        return table

    @app.put("/admin/tables/{table_number}/status", response_model=RestaurantTable, tags=["Tables"])
    async def set_table_status(
        table_number: int,
        request: TableStatusRequest,
        _staff: str = Depends(require_staff),
    ) -> RestaurantTable:
        table: RestaurantTable = await app.state.table_service.set_status(
            table_number, request.status
        )
        return table

    @app.get(
        "/admin/tables/{table_number}/link", response_model=TableLinkResponse, tags=["Tables"]
    )
    async def table_link(table_number: int, _staff: str = Depends(require_staff)) -> TableLinkResponse:
        return TableLinkResponse(
            table_number=table_number, url=app.state.table_service.table_link(table_number)
        )

    @app.get("/admin/tables/{table_number}/qr", tags=["Tables"])
    async def table_qr(table_number: int, _staff: str = Depends(require_staff)) -> Response:
        """Printable QR code image for a table."""
        image = await app.state.table_service.get_qr_image(table_number)
        return Response(content=image, media_type="image/png")

    @app.get("/admin/menu", response_model=list[MenuItem], tags=["Menu"])
    async def list_menu_items(_staff: str = Depends(require_staff)) -> list[MenuItem]:
        """Every menu item, including unavailable ones."""
        items: list[MenuItem] = await app.state.menu_service.list_items()
        return items

    @app.post("/admin/menu", response_model=MenuItem, status_code=201, tags=["Menu"])
    async def create_menu_item(
        request: MenuItemCreateRequest, _staff: str = Depends(require_staff)
    ) -> MenuItem:
        item: MenuItem = await app.state.menu_service.create_item(
            name=request.name,
            price=request.price,
            category=request.category,
            available=request.available,
        )
        return item

    @app.put("/admin/menu/{item_id}", response_model=MenuItem, tags=["Menu"])
    async def update_menu_item(
        item_id: int,
        request: MenuItemUpdateRequest,
        _staff: str = Depends(require_staff),
    ) -> MenuItem:
        item: MenuItem = await app.state.menu_service.update_item(
            item_id, request.model_dump(exclude_none=True)
        )
        return item

    @app.put("/admin/menu/{item_id}/availability", response_model=MenuItem, tags=["Menu"])
    async def set_menu_item_availability(
        item_id: int,
        request: AvailabilityRequest,
        _staff: str = Depends(require_staff),
    ) -> MenuItem:
        item: MenuItem = await app.state.menu_service.set_availability(item_id, request.available)
        return item

    @app.delete("/admin/menu/{item_id}", status_code=204, tags=["Menu"])
    async def delete_menu_item(item_id: int, _staff: str = Depends(require_staff)) -> Response:
        await app.state.menu_service.delete_item(item_id)
        return Response(status_code=204)

    return app
