"""Customer chat: ties sessions to the menu, orders and the assistant."""

import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal

from table_ordering_service.models.menu_models import MenuItem
from table_ordering_service.models.order_models import Order
from table_ordering_service.services.assistant_client import AssistantClient, should_use_assistant
from table_ordering_service.services.calculations import format_currency
from table_ordering_service.services.conversation import (
    MENU_OPTION,
    ChatMessage,
    ConversationAction,
    ConversationFlow,
    ConversationStep,
    PaymentChoice,
)
from table_ordering_service.services.errors import EmptyCartError, ValidationError
from table_ordering_service.services.menu_service import MenuService
from table_ordering_service.services.message_understanding import (
    PREFERENCE_INTROS,
    Intent,
    MessageUnderstanding,
    cheapest_items,
    format_item_list,
    format_menu_listing,
    items_for_category,
    suggest_items,
    understand_message,
)
from table_ordering_service.services.order_service import OrderService
from table_ordering_service.services.session_store import SessionStore

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I can help you order! Try one of these options:"

IntentHandler = Callable[
    [ConversationFlow, MessageUnderstanding, str, list[MenuItem]], Awaitable[None]
]


class ChatService:
    """Entry point for every customer-side action on a session."""

    def __init__(
        self,
        session_store: SessionStore,
        menu_service: MenuService,
        order_service: OrderService,
        assistant: AssistantClient | None = None,
    ) -> None:
        """Initialize the ChatService.

        Args:
            session_store: Store holding the conversation flows
            menu_service: Source of orderable menu items
            order_service: Service that places orders
            assistant: Optional AI assistant for free-text replies
        """
        self.session_store = session_store
        self.menu_service = menu_service
        self.order_service = order_service
        self.assistant = assistant

    def start_session(self, table_number: int) -> tuple[str, ConversationFlow]:
        return self.session_store.create(table_number)

    def get_session(self, session_id: str) -> ConversationFlow:
        return self.session_store.get(session_id)

    def end_session(self, session_id: str) -> bool:
        return self.session_store.discard(session_id)

    def perform(self, session_id: str, action: ConversationAction) -> ChatMessage:
        """Apply a navigation action (menu, cart, help, checkout, ...)."""
        return self.session_store.get(session_id).handle(action)

    async def add_item(self, session_id: str, menu_item_id: int) -> ConversationFlow:
        """Add one unit of an available menu item to the session's cart.

        Raises:
            NotFoundError: If the session or an orderable item does not exist
            IllegalTransitionError: If the cart cannot be edited now
        """
        flow = self.session_store.get(session_id)
        item = await self.menu_service.get_orderable_item(menu_item_id)
        flow.add_item(item)
        return flow

    def remove_item(self, session_id: str, menu_item_id: int) -> ConversationFlow:
        flow = self.session_store.get(session_id)
        flow.remove_item(menu_item_id)
        return flow

    def update_quantity(self, session_id: str, menu_item_id: int, delta: int) -> ConversationFlow:
        flow = self.session_store.get(session_id)
        flow.update_quantity(menu_item_id, delta)
        return flow

    def select_tip(
        self,
        session_id: str,
        percentage: Decimal | None = None,
        amount: Decimal | None = None,
        confirm: bool = True,
    ) -> ConversationFlow:
        """Choose a tip by percentage or absolute amount, or skip it.

        With neither value given the tip is skipped. When confirm is set the
        flow moves on to the payment choice.

        Raises:
            ValidationError: If both a percentage and an amount are given
        """
        if percentage is not None and amount is not None:
            raise ValidationError("Choose either a tip percentage or an amount, not both")

        flow = self.session_store.get(session_id)
        if percentage is None and amount is None:
            flow.handle(ConversationAction.SKIP_TIP)
            return flow

        if percentage is not None:
            flow.select_tip_percentage(percentage)
        else:
            flow.select_tip_amount(amount)  # type: ignore[arg-type]

        if confirm:
            flow.handle(ConversationAction.CONFIRM_TIP)
        return flow

    async def checkout(self, session_id: str, payment_choice: PaymentChoice) -> Order:
        """Place the session's order with the chosen payment path.

        Staff are not notified here; callers hand the returned order to
        OrderService.notify_staff once the customer has their receipt.
        """
        flow = self.session_store.get(session_id)
        return await self.order_service.submit_order(flow, payment_choice)

    async def send_message(self, session_id: str, text: str) -> list[ChatMessage]:
        """Handle a typed customer message.

        The message is classified into an intent with its entities and
        applied to the flow: items are added or changed, tips chosen, menus
        and prices listed. Open questions go to the assistant when it is
        enabled; anything else gets the options valid at the current step.

        Returns:
            list[ChatMessage]: Messages appended by this call
        """
        flow = self.session_store.get(session_id)
        start = len(flow.messages)
        content = text.strip()
        if not content:
            raise ValidationError("Message cannot be empty")

        flow.add_user_message(content)
        menu = await self.menu_service.list_items()
        understanding = understand_message(content, menu)
        logger.debug(f"Table {flow.table_number}: '{content}' -> {understanding.intent.value}")

        handler = self._handlers.get(understanding.intent, self._reply_unknown)
        await handler(flow, understanding, content, [item for item in menu if item.available])
        return flow.messages[start:]

    @property
    def _handlers(self) -> dict[Intent, IntentHandler]:
        return {
            Intent.GREETING: self._reply_greeting,
            Intent.VIEW_MENU: self._reply_view_menu,
            Intent.VIEW_CATEGORY: self._reply_view_category,
            Intent.ORDER_ITEM: self._reply_order_item,
            Intent.MODIFY_QUANTITY: self._reply_modify_quantity,
            Intent.REMOVE_ITEM: self._reply_remove_item,
            Intent.CLEAR_CART: self._reply_clear_cart,
            Intent.VIEW_CART: self._reply_view_cart,
            Intent.ADD_TIP: self._reply_add_tip,
            Intent.CHECK_PRICE: self._reply_check_price,
            Intent.RECOMMEND: self._reply_recommend,
            Intent.PLACE_ORDER: self._reply_place_order,
            Intent.THANK_YOU: self._reply_thank_you,
            Intent.PARTY: self._reply_party,
            Intent.HELP: self._reply_help,
            Intent.UNKNOWN: self._reply_unknown,
        }

    async def _reply_greeting(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        flow.add_bot_message("Hey there! What can I get you tonight?", flow.quick_options())

    async def _reply_thank_you(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        flow.add_bot_message("You're welcome! Anything else I can get you?", flow.quick_options())

    async def _reply_party(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        flow.add_bot_message(
            "Sounds like a celebration! Tell me what everyone's having, like 'four IPAs'.",
            flow.quick_options(),
        )

    async def _reply_view_menu(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        self._navigate(flow, ConversationAction.VIEW_MENU)

    async def _reply_view_cart(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        self._navigate(flow, ConversationAction.VIEW_CART)

    async def _reply_help(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        self._navigate(flow, ConversationAction.HELP)

    async def _reply_place_order(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        self._navigate(flow, ConversationAction.CHECKOUT)

    async def _reply_view_category(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        if flow.can(ConversationAction.VIEW_MENU):
            flow.advance(ConversationAction.VIEW_MENU)
        items = items_for_category(understanding.category, menu)
        if items:
            text = f"Here's our {understanding.category} selection:\n{format_item_list(items)}"
        else:
            text = (
                f"We don't have any {understanding.category} right now. "
                f"Here's the full menu:\n{format_menu_listing(menu)}"
            )
        flow.add_bot_message(text, flow.quick_options())

    async def _reply_order_item(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        item = understanding.item
        if item is None:
            if understanding.category is not None:
                await self._reply_view_category(flow, understanding, content, menu)
                return
            if flow.can(ConversationAction.VIEW_MENU):
                flow.advance(ConversationAction.VIEW_MENU)
            flow.add_bot_message(
                f"I couldn't find that on our menu. Here's what we have:\n{format_menu_listing(menu)}",
                flow.quick_options(),
            )
            return

        if not item.available:
            picks = suggest_items(understanding.preference, menu)
            flow.add_bot_message(
                f"Sorry, {item.name} isn't available right now. How about:\n{format_item_list(picks)}",
                flow.quick_options(),
            )
            return

        if not self._ready_to_edit(flow):
            return
        quantity = understanding.quantity or 1
        for _ in range(quantity):
            flow.add_item(item)
        flow.add_bot_message(
            f"Got it! Added {quantity}x {item.name} to your cart. Anything else?",
            flow.quick_options(),
        )

    async def _reply_modify_quantity(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        line = None
        if understanding.item is not None:
            line = flow.cart.get(understanding.item.id)
            if line is None:
                await self._reply_order_item(flow, understanding, content, menu)
                return
        elif not flow.cart.is_empty:
            line = flow.cart.lines[-1]

        if line is None:
            flow.add_bot_message("Which item would you like to change?", flow.quick_options())
            return
        if not self._ready_to_edit(flow):
            return

        if understanding.sets_quantity and understanding.quantity:
            delta = understanding.quantity - line.quantity
        else:
            delta = understanding.quantity or 1
        name = line.name
        updated = flow.update_quantity(line.id, delta) if delta else line
        quantity = updated.quantity if updated is not None else 0
        flow.add_bot_message(f"Updated! {quantity}x {name} in your cart.", flow.quick_options())

    async def _reply_remove_item(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        if understanding.item is None:
            if flow.cart.is_empty:
                flow.add_bot_message("Your cart is already empty!", flow.quick_options())
            else:
                flow.add_bot_message(
                    f"Which item should I remove?\n{flow.format_cart()}", flow.quick_options()
                )
            return

        line = flow.cart.get(understanding.item.id)
        if line is None:
            flow.add_bot_message(
                f"{understanding.item.name} isn't in your cart.", flow.quick_options()
            )
            return
        if not self._ready_to_edit(flow):
            return

        name, remaining = line.name, line.quantity - (understanding.quantity or line.quantity)
        if remaining > 0:
            flow.update_quantity(line.id, -understanding.quantity)
            flow.add_bot_message(f"Done! {remaining}x {name} left in your cart.", flow.quick_options())
        else:
            flow.remove_item(line.id)
            flow.add_bot_message(f"Removed {name} from your cart.", flow.quick_options())

    async def _reply_clear_cart(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        if flow.cart.is_empty:
            flow.add_bot_message("Your cart is already empty!", flow.quick_options())
            return
        if not self._ready_to_edit(flow):
            return
        for line in flow.cart.snapshot():
            flow.remove_item(line.id)
        flow.add_bot_message("All cleared! What would you like instead?", flow.quick_options())

    async def _reply_add_tip(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        if not flow.can(ConversationAction.SELECT_TIP):
            flow.add_bot_message("You can add a tip when you check out.", flow.quick_options())
            return
        if understanding.tip_percentage is not None:
            flow.select_tip_percentage(understanding.tip_percentage)
        elif understanding.tip_amount is not None:
            flow.select_tip_amount(understanding.tip_amount)
        else:
            flow.add_bot_message(
                "How much would you like to tip? Try '15%' or '$5'.", flow.quick_options()
            )
            return
        flow.handle(ConversationAction.CONFIRM_TIP, echo=False)

    async def _reply_check_price(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        item = understanding.item
        if item is not None:
            status = "Want me to add it?" if item.available else "It's not available right now."
            text = f"{item.name} is {format_currency(item.price)}. {status}"
        elif understanding.wants_value:
            text = f"Here are our best value picks:\n{format_item_list(cheapest_items(menu))}"
        else:
            text = f"Here's our menu with prices:\n\n{format_menu_listing(menu)}"
        flow.add_bot_message(text, flow.quick_options())

    async def _reply_recommend(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        if await self._ask_assistant(flow, content, menu):
            return
        picks = suggest_items(understanding.preference, menu)
        if not picks:
            self._fallback(flow)
            return
        intro = PREFERENCE_INTROS.get(understanding.preference, "Here's what's popular tonight:")
        flow.add_bot_message(f"{intro}\n{format_item_list(picks)}", flow.quick_options())

    async def _reply_unknown(
        self,
        flow: ConversationFlow,
        understanding: MessageUnderstanding,
        content: str,
        menu: list[MenuItem],
    ) -> None:
        if understanding.preference is not None:
            await self._reply_recommend(flow, understanding, content, menu)
            return
        if await self._ask_assistant(flow, content, menu):
            return
        self._fallback(flow)

    async def _ask_assistant(
        self, flow: ConversationFlow, content: str, menu: list[MenuItem]
    ) -> bool:
        if self.assistant is None or not self.assistant.enabled or not should_use_assistant(content):
            return False
        reply = await self.assistant.reply(
            content,
            context=f"Customer is at table {flow.table_number}, step {flow.step.value}",
            menu_item_names=[item.name for item in menu],
        )
        if not reply:
            return False
        flow.add_bot_message(reply, flow.quick_options())
        return True

    def _navigate(self, flow: ConversationFlow, action: ConversationAction) -> None:
        if not flow.can(action):
            self._fallback(flow)
            return
        try:
            flow.handle(action, echo=False)
        except EmptyCartError as e:
            flow.add_bot_message(str(e), [MENU_OPTION])

    def _ready_to_edit(self, flow: ConversationFlow) -> bool:
        """Open the menu from the welcome step; refuse once checkout has begun."""
        if not flow.can(ConversationAction.ADD_ITEM) and flow.can(ConversationAction.VIEW_MENU):
            flow.advance(ConversationAction.VIEW_MENU)
        if flow.can(ConversationAction.ADD_ITEM):
            return True
        if flow.step == ConversationStep.DONE:
            text = "Your order has already been placed. Start a new order to add more."
        else:
            text = "You're checking out. Tap Order More to change your order."
        flow.add_bot_message(text, flow.quick_options())
        return False

    def _fallback(self, flow: ConversationFlow) -> None:
        flow.add_bot_message(FALLBACK_REPLY, flow.quick_options())
