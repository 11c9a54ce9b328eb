"""Scripted conversational ordering flow.

The flow is a finite-state machine over ConversationStep. Every user action is
looked up in an explicit (step, action) -> step table; actions missing from the
table raise IllegalTransitionError. Each step decides which UI affordances a
client may render alongside the chat transcript.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from table_ordering_service.models.menu_models import MenuItem
from table_ordering_service.models.order_models import Order, OrderItem
from table_ordering_service.services.calculations import (
    apply_tax,
    calculate_tip_amount,
    format_currency,
    parse_amount,
    to_money,
)
from table_ordering_service.services.cart import Cart
from table_ordering_service.services.errors import EmptyCartError, IllegalTransitionError

logger = logging.getLogger(__name__)

TIP_PRESETS: tuple[int, ...] = (15, 18, 20, 25)


class ConversationStep(str, Enum):
    """Steps of the ordering conversation."""

    WELCOME = "welcome"
    MENU = "menu"
    CART_REVIEW = "cart_review"
    TIP = "tip"
    PAYMENT_CHOICE = "payment_choice"
    DONE = "done"


class ConversationAction(str, Enum):
    """User actions that drive the conversation."""

    VIEW_MENU = "menu"
    VIEW_CART = "cart"
    HELP = "help"
    ADD_ITEM = "add_item"
    REMOVE_ITEM = "remove_item"
    UPDATE_QUANTITY = "update_quantity"
    CHECKOUT = "checkout"
    SELECT_TIP = "select_tip"
    SKIP_TIP = "skip_tip"
    CONFIRM_TIP = "confirm_tip"
    ORDER_MORE = "more"
    CHOOSE_PAYMENT = "choose_payment"
    RESTART = "restart"


class Affordance(str, Enum):
    """UI elements a client may show for a step."""

    QUICK_OPTIONS = "quick_options"
    MENU_GRID = "menu_grid"
    CART_EDITOR = "cart_editor"
    TIP_BUTTONS = "tip_buttons"
    PAYMENT_CHOICES = "payment_choices"
    RECEIPT = "receipt"


class PaymentChoice(str, Enum):
    """Customer-facing payment timing."""

    PAY_LATER = "pay_later"
    PAY_NOW = "pay_now"


Step = ConversationStep
Action = ConversationAction

TRANSITIONS: dict[tuple[ConversationStep, ConversationAction], ConversationStep] = {
    (Step.WELCOME, Action.VIEW_MENU): Step.MENU,
    (Step.WELCOME, Action.VIEW_CART): Step.CART_REVIEW,
    (Step.WELCOME, Action.HELP): Step.WELCOME,
    (Step.MENU, Action.VIEW_MENU): Step.MENU,
    (Step.MENU, Action.VIEW_CART): Step.CART_REVIEW,
    (Step.MENU, Action.HELP): Step.MENU,
    (Step.MENU, Action.ADD_ITEM): Step.MENU,
    (Step.MENU, Action.REMOVE_ITEM): Step.MENU,
    (Step.MENU, Action.UPDATE_QUANTITY): Step.MENU,
    (Step.MENU, Action.CHECKOUT): Step.TIP,
    (Step.CART_REVIEW, Action.VIEW_MENU): Step.MENU,
    (Step.CART_REVIEW, Action.VIEW_CART): Step.CART_REVIEW,
    (Step.CART_REVIEW, Action.HELP): Step.CART_REVIEW,
    (Step.CART_REVIEW, Action.ADD_ITEM): Step.CART_REVIEW,
    (Step.CART_REVIEW, Action.REMOVE_ITEM): Step.CART_REVIEW,
    (Step.CART_REVIEW, Action.UPDATE_QUANTITY): Step.CART_REVIEW,
    (Step.CART_REVIEW, Action.CHECKOUT): Step.TIP,
    (Step.TIP, Action.SELECT_TIP): Step.TIP,
    (Step.TIP, Action.SKIP_TIP): Step.PAYMENT_CHOICE,
    (Step.TIP, Action.CONFIRM_TIP): Step.PAYMENT_CHOICE,
    (Step.TIP, Action.ORDER_MORE): Step.MENU,
    (Step.TIP, Action.VIEW_CART): Step.CART_REVIEW,
    (Step.PAYMENT_CHOICE, Action.CHOOSE_PAYMENT): Step.DONE,
    (Step.PAYMENT_CHOICE, Action.ORDER_MORE): Step.MENU,
    (Step.PAYMENT_CHOICE, Action.SELECT_TIP): Step.TIP,
    (Step.DONE, Action.RESTART): Step.WELCOME,
}

# Steps that cannot be entered while the cart is empty.
REQUIRES_CART: frozenset[ConversationStep] = frozenset({Step.TIP, Step.PAYMENT_CHOICE, Step.DONE})

AFFORDANCES: dict[ConversationStep, frozenset[Affordance]] = {
    Step.WELCOME: frozenset({Affordance.QUICK_OPTIONS}),
    Step.MENU: frozenset({Affordance.MENU_GRID, Affordance.QUICK_OPTIONS}),
    Step.CART_REVIEW: frozenset({Affordance.CART_EDITOR, Affordance.QUICK_OPTIONS}),
    Step.TIP: frozenset({Affordance.TIP_BUTTONS}),
    Step.PAYMENT_CHOICE: frozenset({Affordance.PAYMENT_CHOICES}),
    Step.DONE: frozenset({Affordance.RECEIPT, Affordance.QUICK_OPTIONS}),
}

HELP_TEXT = (
    "Here's how to order:\n\n"
    "1. Browse the menu\n"
    "2. Tap + to add items\n"
    "3. Review your cart\n"
    "4. Add a tip if you'd like\n"
    "5. Choose to pay now or at the counter\n"
    "6. Get your receipt"
)

def validate_transition_table(
    transitions: Mapping[tuple[ConversationStep, ConversationAction], ConversationStep],
    initial: ConversationStep = Step.WELCOME,
) -> None:
    """Check that a transition table is well formed.

    Every key and target must use known steps and actions, every step must be
    reachable from the initial step, and every step must have an outgoing
    action.

    Raises:
        ValueError: If the table is malformed
    """
    for (step, action), target in transitions.items():
        if not isinstance(step, ConversationStep) or not isinstance(target, ConversationStep):
            raise ValueError(f"Unknown step in transition ({step!r}, {action!r}) -> {target!r}")
        if not isinstance(action, ConversationAction):
            raise ValueError(f"Unknown action in transition ({step!r}, {action!r})")

    reachable = {initial}
    frontier = [initial]
    while frontier:
        current = frontier.pop()
        for (step, _action), target in transitions.items():
            if step == current and target not in reachable:
                reachable.add(target)
                frontier.append(target)

    unreachable = set(ConversationStep) - reachable
    if unreachable:
        names = ", ".join(sorted(s.value for s in unreachable))
        raise ValueError(f"Unreachable conversation steps: {names}")

    dead_ends = {s for s in ConversationStep if not any(k[0] == s for k in transitions)}
    if dead_ends:
        names = ", ".join(sorted(s.value for s in dead_ends))
        raise ValueError(f"Conversation steps without outgoing actions: {names}")


class ChatOption(BaseModel):
    """A quick-reply button."""

    label: str
    value: str


class ChatMessage(BaseModel):
    """A transcript entry."""

    id: int
    role: str = Field(..., description="'bot' or 'user'")
    content: str
    options: list[ChatOption] = Field(default_factory=list)
    affordances: list[Affordance] = Field(default_factory=list)


@dataclass
class TipSelection:
    """Either a percentage of the subtotal or an absolute amount, never both."""

    percentage: Decimal | None = None
    amount: Decimal | None = None

    def tip_amount(self, subtotal: Decimal) -> Decimal:
        if self.amount is not None:
            return self.amount
        if self.percentage is not None:
            return calculate_tip_amount(subtotal, self.percentage)
        return Decimal("0.00")


MENU_OPTION = ChatOption(label="View Menu", value=Action.VIEW_MENU.value)
CART_OPTION = ChatOption(label="View Cart", value=Action.VIEW_CART.value)
HELP_OPTION = ChatOption(label="Need Help", value=Action.HELP.value)
CHECKOUT_OPTION = ChatOption(label="Checkout", value=Action.CHECKOUT.value)
MORE_OPTION = ChatOption(label="Order More", value=Action.ORDER_MORE.value)
RESTART_OPTION = ChatOption(label="Start New Order", value=Action.RESTART.value)
SKIP_TIP_OPTION = ChatOption(label="No Tip", value=Action.SKIP_TIP.value)
PAY_LATER_OPTION = ChatOption(label="Pay at the Counter", value=PaymentChoice.PAY_LATER.value)
PAY_NOW_OPTION = ChatOption(label="Pay Now", value=PaymentChoice.PAY_NOW.value)

# Quick-reply buttons for argument-free actions, in display order.
ACTION_OPTIONS: tuple[tuple[ConversationAction, ChatOption], ...] = (
    (Action.VIEW_MENU, MENU_OPTION),
    (Action.VIEW_CART, CART_OPTION),
    (Action.CHECKOUT, CHECKOUT_OPTION),
    (Action.SKIP_TIP, SKIP_TIP_OPTION),
    (Action.ORDER_MORE, MORE_OPTION),
    (Action.HELP, HELP_OPTION),
    (Action.RESTART, RESTART_OPTION),
)


class ConversationFlow:
    """Drives one customer's ordering conversation at a table.

    Holds the cart, the tip selection and the chat transcript. All state is in
    memory and belongs to a single session.
    """

    def __init__(
        self,
        table_number: int,
        transitions: Mapping[
            tuple[ConversationStep, ConversationAction], ConversationStep
        ] = TRANSITIONS,
    ) -> None:
        """Initialize the flow at the welcome step.

        Args:
            table_number: Table the customer is sitting at
            transitions: Transition table, validated here

        Raises:
            ValueError: If the transition table is malformed
        """
        validate_transition_table(transitions)
        self.table_number = table_number
        self.transitions = dict(transitions)
        self.step = Step.WELCOME
        self.cart = Cart()
        self.tip = TipSelection()
        self.payment_choice: PaymentChoice | None = None
        self.order: Order | None = None
        self.messages: list[ChatMessage] = []
        self._next_message_id = 1
        self._welcome()

    @property
    def affordances(self) -> frozenset[Affordance]:
        return AFFORDANCES[self.step]

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.cart.total_price)

    @property
    def tip_amount(self) -> Decimal:
        return self.tip.tip_amount(self.subtotal)

    def allowed_actions(self) -> list[ConversationAction]:
        """Actions accepted at the current step."""
        return [action for (step, action) in self.transitions if step == self.step]

    def can(self, action: ConversationAction) -> bool:
        return (self.step, action) in self.transitions

    def accepts(self, action: ConversationAction) -> bool:
        """Whether the action would succeed now, cart requirements included."""
        target = self.transitions.get((self.step, action))
        return target is not None and not (target in REQUIRES_CART and self.cart.is_empty)

    def quick_options(self) -> list[ChatOption]:
        """Buttons for the argument-free actions accepted at the current step."""
        options = [option for action, option in ACTION_OPTIONS if self.accepts(action)]
        if self.accepts(Action.CHOOSE_PAYMENT):
            options.extend([PAY_LATER_OPTION, PAY_NOW_OPTION])
        return options

    def add_bot_message(
        self,
        content: str,
        options: list[ChatOption] | None = None,
        affordances: frozenset[Affordance] | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            id=self._allocate_message_id(),
            role="bot",
            content=content,
            options=options or [],
            affordances=sorted(affordances if affordances is not None else self.affordances),
        )
        self.messages.append(message)
        return message

    def add_user_message(self, content: str) -> ChatMessage:
        message = ChatMessage(id=self._allocate_message_id(), role="user", content=content)
        self.messages.append(message)
        return message

    def handle(self, action: ConversationAction, echo: bool = True) -> ChatMessage:
        """Apply a navigation action and reply.

        Cart edits, tip selection and payment have dedicated methods because
        they carry arguments.

        Raises:
            IllegalTransitionError: If the action is not allowed now
            EmptyCartError: If the target step needs a non-empty cart
        """
        if action == Action.VIEW_MENU:
            self._transition(action)
            self._echo(echo, "Show me the menu")
            return self.add_bot_message("Here's our menu! Tap on any category to browse:")

        if action == Action.VIEW_CART:
            self._check(action)
            self._echo(echo, "Show my cart")
            if self.cart.is_empty and self.can(Action.VIEW_MENU):
                self._transition(Action.VIEW_MENU)
                return self.add_bot_message(
                    "Your cart is empty! Let me show you our menu.", [MENU_OPTION]
                )
            self._transition(action)
            return self.add_bot_message(
                f"You have {len(self.cart)} item(s) in your cart:\n{self.format_cart()}",
                [MENU_OPTION, CHECKOUT_OPTION],
            )

        if action == Action.HELP:
            self._transition(action)
            self._echo(echo, "I need help")
            return self.add_bot_message(HELP_TEXT, [MENU_OPTION])

        if action == Action.CHECKOUT:
            self._transition(action)
            self._echo(echo, "Place my order")
            presets = ", ".join(f"{p}%" for p in TIP_PRESETS)
            return self.add_bot_message(
                f"Would you like to add a tip for our staff? ({presets} or a custom amount)"
            )

        if action == Action.SKIP_TIP:
            self._transition(action)
            self.tip = TipSelection()
            self._echo(echo, "No tip")
            return self._ask_payment("No worries!")

        if action == Action.CONFIRM_TIP:
            self._transition(action)
            self._echo(echo, f"Tip: {format_currency(self.tip_amount)}")
            return self._ask_payment(f"Great! {format_currency(self.tip_amount)} tip added.")

        if action == Action.ORDER_MORE:
            self._transition(action)
            self._echo(echo, "I want to order more")
            return self.add_bot_message("No problem! Here's the menu:")

        if action == Action.RESTART:
            self._transition(action)
            self.cart.clear()
            self.tip = TipSelection()
            self.payment_choice = None
            self.order = None
            return self._welcome()

        raise IllegalTransitionError(self.step.value, action.value)

    def advance(self, action: ConversationAction) -> ConversationStep:
        """Apply a transition without replying; the caller adds its own message."""
        self._transition(action)
        return self.step

    def add_item(self, item: MenuItem) -> OrderItem:
        """Add one unit of a menu item to the cart."""
        self._transition(Action.ADD_ITEM)
        return self.cart.add(item)

    def remove_item(self, menu_item_id: int) -> bool:
        """Remove a cart line entirely."""
        self._transition(Action.REMOVE_ITEM)
        return self.cart.remove(menu_item_id)

    def update_quantity(self, menu_item_id: int, delta: int) -> OrderItem | None:
        """Adjust a cart line by a signed delta, dropping it at zero."""
        self._transition(Action.UPDATE_QUANTITY)
        return self.cart.update_quantity(menu_item_id, delta)

    def select_tip_percentage(self, percentage: Decimal | int | float | str) -> Decimal:
        """Choose a percentage-of-subtotal tip, clearing any custom amount.

        Returns:
            Decimal: The resulting tip amount

        Raises:
            InvalidAmountError: If the percentage is not a non-negative number
        """
        value = parse_amount(percentage)
        self._transition(Action.SELECT_TIP)
        self.tip = TipSelection(percentage=value)
        return self.tip_amount

    def select_tip_amount(self, amount: Decimal | int | float | str) -> Decimal:
        """Choose an absolute tip amount, clearing any percentage."""
        value = to_money(amount)
        self._transition(Action.SELECT_TIP)
        self.tip = TipSelection(amount=value)
        return value

    def begin_payment(self, choice: PaymentChoice) -> None:
        """Check that payment can be chosen now, without changing step.

        The step only advances once the order is stored (see complete_order).

        Raises:
            IllegalTransitionError: If payment is not expected now
            EmptyCartError: If the cart is empty
        """
        self._check(Action.CHOOSE_PAYMENT)
        self.payment_choice = choice

    def complete_order(self, order: Order) -> ChatMessage:
        """Record a stored order and show the receipt."""
        self._transition(Action.CHOOSE_PAYMENT)
        self.order = order
        self.add_user_message(
            "Pay now" if self.payment_choice == PaymentChoice.PAY_NOW else "Pay at the counter"
        )
        return self.add_bot_message(
            f"Order placed!\n{self.format_bill()}\n\nYour order has been sent to the kitchen!",
            [RESTART_OPTION],
        )

    def fail_order(self, reason: str) -> ChatMessage:
        """Report a failed submission; the customer may try again."""
        return self.add_bot_message(
            f"Error: {reason or 'Could not place order'}. Please try again.",
            [ChatOption(label="Try Again", value=self.payment_choice.value)]
            if self.payment_choice
            else [],
        )

    def format_cart(self) -> str:
        if self.cart.is_empty:
            return "Your cart is empty!"
        lines = [
            f"{line.quantity}x {line.name} - {format_currency(line.line_total)}"
            for line in self.cart.lines
        ]
        lines.append(f"Subtotal: {format_currency(self.subtotal)}")
        return "\n".join(lines)

    def format_bill(self) -> str:
        """Render the bill for the stored order, or the current cart."""
        if self.order is not None:
            lines, tip = self.order.items, self.order.tip_amount
        else:
            lines, tip = self.cart.lines, self.tip_amount
        breakdown = apply_tax(self.subtotal_for(lines), tip)
        text = []
        if self.order is not None:
            text.append(f"Receipt: {self.order.receipt_id}")
        text.append(f"Table: {self.table_number}")
        text.append("")
        text.extend(
            f"{line.quantity}x {line.name} - {format_currency(line.line_total)}" for line in lines
        )
        text.append("")
        text.append(f"Subtotal: {format_currency(breakdown.subtotal)}")
        if breakdown.tip_amount > 0:
            text.append(f"Tip: {format_currency(breakdown.tip_amount)}")
        text.append(f"Tax (3%): {format_currency(breakdown.tax_amount)}")
        text.append(f"Total: {format_currency(breakdown.total)}")
        return "\n".join(text)

    @staticmethod
    def subtotal_for(lines: list[OrderItem]) -> Decimal:
        return to_money(sum((line.line_total for line in lines), Decimal("0")))

    def _echo(self, echo: bool, content: str) -> None:
        if echo:
            self.add_user_message(content)

    def _welcome(self) -> ChatMessage:
        return self.add_bot_message(
            f"Welcome! You're at Table {self.table_number}.\n\n"
            "I'm here to help you order. What would you like to do?",
            [MENU_OPTION, CART_OPTION, HELP_OPTION],
        )

    def _ask_payment(self, prefix: str) -> ChatMessage:
        return self.add_bot_message(
            f"{prefix} How would you like to pay?\n{self.format_bill()}",
            [PAY_LATER_OPTION, PAY_NOW_OPTION],
        )

    def _check(self, action: ConversationAction) -> ConversationStep:
        target = self.transitions.get((self.step, action))
        if target is None:
            raise IllegalTransitionError(self.step.value, action.value)
        if target in REQUIRES_CART and self.cart.is_empty:
            raise EmptyCartError("Your cart is empty! Add some items first.")
        return target

    def _transition(self, action: ConversationAction) -> None:
        target = self._check(action)
        if target != self.step:
            logger.debug(f"Table {self.table_number}: {self.step.value} -> {target.value}")
        self.step = target

    def _allocate_message_id(self) -> int:
        message_id = self._next_message_id
        self._next_message_id += 1
        return message_id
