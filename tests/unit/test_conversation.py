"""Unit tests for the conversational ordering flow."""

from decimal import Decimal

import pytest

from table_ordering_service.models.menu_models import MenuItem
from table_ordering_service.models.order_models import Order
from table_ordering_service.services.conversation import (
    TRANSITIONS,
    Affordance,
    ConversationAction,
    ConversationFlow,
    ConversationStep,
    PaymentChoice,
    validate_transition_table,
)
from table_ordering_service.services.errors import (
    EmptyCartError,
    IllegalTransitionError,
    InvalidAmountError,
)


def _flow_at_tip(mojito: MenuItem) -> ConversationFlow:
    flow = ConversationFlow(table_number=3)
    flow.handle(ConversationAction.VIEW_MENU)
    flow.add_item(mojito)
    flow.add_item(mojito)
    flow.handle(ConversationAction.CHECKOUT)
    return flow


@pytest.mark.unit
class TestTransitionTable:
    """Test suite for transition table validation."""

    def test_default_table_is_valid(self) -> None:
        validate_transition_table(TRANSITIONS)

    def test_unreachable_step_is_rejected(self) -> None:
        """Test that removing the only way into done fails validation."""
        transitions = {
            k: v
            for k, v in TRANSITIONS.items()
            if k != (ConversationStep.PAYMENT_CHOICE, ConversationAction.CHOOSE_PAYMENT)
        }

        with pytest.raises(ValueError, match="Unreachable"):
            validate_transition_table(transitions)

    def test_dead_end_step_is_rejected(self) -> None:
        transitions = {
            k: v
            for k, v in TRANSITIONS.items()
            if k != (ConversationStep.DONE, ConversationAction.RESTART)
        }

        with pytest.raises(ValueError, match="without outgoing"):
            validate_transition_table(transitions)

    def test_unknown_target_is_rejected(self) -> None:
        transitions = dict(TRANSITIONS)
        transitions[(ConversationStep.MENU, ConversationAction.HELP)] = "lobby"  # type: ignore[assignment]

        with pytest.raises(ValueError, match="Unknown step"):
            validate_transition_table(transitions)

    def test_flow_validates_at_construction(self) -> None:
        with pytest.raises(ValueError):
            ConversationFlow(table_number=1, transitions={})


@pytest.mark.unit
class TestConversationFlow:
    """Test suite for ConversationFlow."""

    def test_starts_with_welcome(self) -> None:
        flow = ConversationFlow(table_number=3)

        assert flow.step == ConversationStep.WELCOME
        assert len(flow.messages) == 1
        assert flow.messages[0].role == "bot"
        assert "Table 3" in flow.messages[0].content
        assert flow.affordances == {Affordance.QUICK_OPTIONS}

    def test_view_menu(self) -> None:
        flow = ConversationFlow(table_number=3)

        flow.handle(ConversationAction.VIEW_MENU)

        assert flow.step == ConversationStep.MENU
        assert Affordance.MENU_GRID in flow.affordances
        assert [m.role for m in flow.messages] == ["bot", "user", "bot"]

    def test_message_ids_are_per_flow(self) -> None:
        first = ConversationFlow(table_number=1)
        second = ConversationFlow(table_number=2)

        first.handle(ConversationAction.HELP)

        assert [m.id for m in first.messages] == [1, 2, 3]
        assert [m.id for m in second.messages] == [1]

    def test_illegal_action_raises(self) -> None:
        """Test that actions missing from the table fail fast."""
        flow = ConversationFlow(table_number=3)

        with pytest.raises(IllegalTransitionError) as exc_info:
            flow.handle(ConversationAction.CHECKOUT)

        assert exc_info.value.step == "welcome"
        assert exc_info.value.action == "checkout"
        assert flow.step == ConversationStep.WELCOME

    def test_cart_edits_need_menu_or_cart_step(self, mojito: MenuItem) -> None:
        flow = ConversationFlow(table_number=3)

        with pytest.raises(IllegalTransitionError):
            flow.add_item(mojito)

    def test_checkout_with_empty_cart_raises(self) -> None:
        """Test that the tip step cannot be entered with an empty cart."""
        flow = ConversationFlow(table_number=3)
        flow.handle(ConversationAction.VIEW_MENU)

        with pytest.raises(EmptyCartError):
            flow.handle(ConversationAction.CHECKOUT)

        assert flow.step == ConversationStep.MENU

    def test_view_empty_cart_shows_menu(self) -> None:
        flow = ConversationFlow(table_number=3)

        message = flow.handle(ConversationAction.VIEW_CART)

        assert flow.step == ConversationStep.MENU
        assert "empty" in message.content

    def test_view_cart_lists_lines(self, mojito: MenuItem) -> None:
        flow = ConversationFlow(table_number=3)
        flow.handle(ConversationAction.VIEW_MENU)
        flow.add_item(mojito)

        message = flow.handle(ConversationAction.VIEW_CART)

        assert flow.step == ConversationStep.CART_REVIEW
        assert "1x Mojito - $9.50" in message.content
        assert Affordance.CART_EDITOR in flow.affordances

    def test_checkout_moves_to_tip(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)

        assert flow.step == ConversationStep.TIP
        assert flow.affordances == {Affordance.TIP_BUTTONS}
        assert flow.subtotal == Decimal("19.00")

    def test_percentage_tip(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)

        amount = flow.select_tip_percentage(20)

        assert amount == Decimal("3.80")
        assert flow.tip_amount == Decimal("3.80")

    def test_custom_amount_clears_percentage(self, mojito: MenuItem) -> None:
        """Test that choosing one tip kind clears the other."""
        flow = _flow_at_tip(mojito)
        flow.select_tip_percentage(15)

        flow.select_tip_amount("5")

        assert flow.tip.percentage is None
        assert flow.tip_amount == Decimal("5.00")

        flow.select_tip_percentage(18)
        assert flow.tip.amount is None
        assert flow.tip_amount == Decimal("3.42")

    def test_negative_tip_rejected(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)

        with pytest.raises(InvalidAmountError):
            flow.select_tip_amount("-1")
        with pytest.raises(InvalidAmountError):
            flow.select_tip_percentage(-10)

    @pytest.mark.parametrize("percentage", ["abc", "", "NaN"])
    def test_non_numeric_tip_percentage_rejected(self, mojito: MenuItem, percentage: str) -> None:
        flow = _flow_at_tip(mojito)

        with pytest.raises(InvalidAmountError):
            flow.select_tip_percentage(percentage)

        assert flow.tip_amount == Decimal("0.00")

    def test_skip_tip_moves_to_payment(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)
        flow.select_tip_percentage(25)

        message = flow.handle(ConversationAction.SKIP_TIP)

        assert flow.step == ConversationStep.PAYMENT_CHOICE
        assert flow.tip_amount == Decimal("0.00")
        assert {o.value for o in message.options} == {"pay_later", "pay_now"}

    def test_confirm_tip_shows_bill(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)
        flow.select_tip_percentage(15)

        message = flow.handle(ConversationAction.CONFIRM_TIP)

        assert flow.step == ConversationStep.PAYMENT_CHOICE
        assert "Tip: $2.85" in message.content
        assert "Tax (3%): $0.66" in message.content
        assert "Total: $22.51" in message.content

    def test_order_more_returns_to_menu(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)

        flow.handle(ConversationAction.ORDER_MORE)

        assert flow.step == ConversationStep.MENU
        assert flow.cart.item_count == 2

    def test_begin_payment_does_not_advance(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)
        flow.handle(ConversationAction.SKIP_TIP)

        flow.begin_payment(PaymentChoice.PAY_NOW)

        assert flow.step == ConversationStep.PAYMENT_CHOICE
        assert flow.payment_choice == PaymentChoice.PAY_NOW

    def test_begin_payment_too_early(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)

        with pytest.raises(IllegalTransitionError):
            flow.begin_payment(PaymentChoice.PAY_LATER)

    def test_complete_order_shows_receipt(self, mojito: MenuItem, mock_order: Order) -> None:
        flow = _flow_at_tip(mojito)
        flow.handle(ConversationAction.SKIP_TIP)
        flow.begin_payment(PaymentChoice.PAY_LATER)

        message = flow.complete_order(mock_order)

        assert flow.step == ConversationStep.DONE
        assert flow.order is mock_order
        assert "Receipt: NX-7KQ2MZ" in message.content
        assert Affordance.RECEIPT in flow.affordances

    def test_fail_order_offers_retry(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)
        flow.handle(ConversationAction.SKIP_TIP)
        flow.begin_payment(PaymentChoice.PAY_NOW)

        message = flow.fail_order("Could not place order")

        assert flow.step == ConversationStep.PAYMENT_CHOICE
        assert message.content.startswith("Error: Could not place order")
        assert message.options[0].value == "pay_now"

    def test_restart_clears_cart_and_tip(self, mojito: MenuItem, mock_order: Order) -> None:
        """Test that restart from done returns to welcome with empty state."""
        flow = _flow_at_tip(mojito)
        flow.select_tip_amount(2)
        flow.handle(ConversationAction.CONFIRM_TIP)
        flow.begin_payment(PaymentChoice.PAY_LATER)
        flow.complete_order(mock_order)

        flow.handle(ConversationAction.RESTART)

        assert flow.step == ConversationStep.WELCOME
        assert flow.cart.is_empty
        assert flow.tip_amount == Decimal("0.00")
        assert flow.order is None
        assert flow.payment_choice is None

    def test_allowed_actions(self) -> None:
        flow = ConversationFlow(table_number=3)

        assert set(flow.allowed_actions()) == {
            ConversationAction.VIEW_MENU,
            ConversationAction.VIEW_CART,
            ConversationAction.HELP,
        }


@pytest.mark.unit
class TestQuickOptions:
    """Test suite for the buttons offered at each step."""

    def test_welcome(self) -> None:
        flow = ConversationFlow(table_number=3)

        assert [o.value for o in flow.quick_options()] == ["menu", "cart", "help"]

    def test_checkout_hidden_with_empty_cart(self) -> None:
        flow = ConversationFlow(table_number=3)
        flow.handle(ConversationAction.VIEW_MENU)

        assert "checkout" not in [o.value for o in flow.quick_options()]
        assert flow.accepts(ConversationAction.CHECKOUT) is False
        assert flow.can(ConversationAction.CHECKOUT) is True

    def test_tip_step(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)

        assert [o.value for o in flow.quick_options()] == ["cart", "skip_tip", "more"]

    def test_payment_step_offers_payment_choices(self, mojito: MenuItem) -> None:
        flow = _flow_at_tip(mojito)
        flow.handle(ConversationAction.SKIP_TIP)

        assert [o.value for o in flow.quick_options()] == ["more", "pay_later", "pay_now"]

    def test_done_only_restarts(self, mojito: MenuItem, mock_order: Order) -> None:
        flow = _flow_at_tip(mojito)
        flow.handle(ConversationAction.SKIP_TIP)
        flow.begin_payment(PaymentChoice.PAY_LATER)
        flow.complete_order(mock_order)

        assert [o.value for o in flow.quick_options()] == ["restart"]

    def test_advance_adds_no_message(self) -> None:
        flow = ConversationFlow(table_number=3)
        count = len(flow.messages)

        assert flow.advance(ConversationAction.VIEW_MENU) == ConversationStep.MENU
        assert len(flow.messages) == count
