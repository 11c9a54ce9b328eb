"""Intent and entity extraction for typed customer messages.

A message is lowercased and stripped of punctuation, then matched against
keyword rules in priority order. Menu items, quantities, categories, taste
preferences and tip amounts are pulled out alongside the intent so that
"two mojitos please" or "make it 3" can act on the cart directly.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from table_ordering_service.models.menu_models import MenuItem
from table_ordering_service.services.calculations import format_currency
from table_ordering_service.services.menu_service import group_by_category

MAX_QUANTITY = 20


class Intent(str, Enum):
    """What a typed message asks for."""

    GREETING = "greeting"
    VIEW_MENU = "view_menu"
    VIEW_CATEGORY = "view_category"
    ORDER_ITEM = "order_item"
    MODIFY_QUANTITY = "modify_quantity"
    REMOVE_ITEM = "remove_item"
    CLEAR_CART = "clear_cart"
    VIEW_CART = "view_cart"
    ADD_TIP = "add_tip"
    CHECK_PRICE = "check_price"
    RECOMMEND = "recommend"
    PLACE_ORDER = "place_order"
    THANK_YOU = "thank_you"
    PARTY = "party"
    HELP = "help"
    UNKNOWN = "unknown"


# Checked top to bottom before any entity rule; the first match wins.
KEYWORD_RULES: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    (
        Intent.CLEAR_CART,
        ("clear cart", "clear my cart", "empty my cart", "remove all", "remove everything",
         "start over", "never mind", "nevermind"),
    ),
    (
        Intent.PLACE_ORDER,
        ("place order", "place my order", "checkout", "check out", "send my order", "send order",
         "that s all", "thats all", "i m done", "done ordering", "finish", "bill", "pay"),
    ),
    (Intent.REMOVE_ITEM, ("remove", "delete", "take off", "cancel", "don t want", "dont want")),
    (
        Intent.MODIFY_QUANTITY,
        ("make it", "make that", "change to", "change it to", "one more", "another", "increase"),
    ),
    (Intent.CHECK_PRICE, ("price", "how much", "cost", "cheap", "budget", "affordable")),
    (Intent.ADD_TIP, ("tip", "gratuity")),
    (
        Intent.RECOMMEND,
        ("recommend", "suggest", "what s good", "whats good", "popular", "favorite", "favourite",
         "signature", "help me choose", "surprise me"),
    ),
    (Intent.VIEW_CART, ("cart", "basket", "my order", "my items", "what did i order")),
    (Intent.HELP, ("help", "how do", "how does", "confused", "what can you", "instructions")),
)

MENU_PHRASES = ("menu", "what do you have", "what s available", "whats available", "show me", "options")
ORDER_PHRASES = (
    "i want", "i d like", "id like", "i would like", "i need", "give me", "get me", "i ll have",
    "i ll take", "can i get", "can i have", "could i get", "add", "order",
)
GREETING_WORDS = frozenset({"hi", "hello", "hey", "hiya", "howdy", "yo", "sup", "greetings"})
GREETING_PHRASES = ("good morning", "good afternoon", "good evening")
THANKS_PHRASES = ("thank", "thx", "appreciate", "cheers")
PARTY_PHRASES = ("party", "birthday", "celebrat", "group of", "all of us")
VALUE_PHRASES = ("cheap", "budget", "affordable")
SET_QUANTITY_PHRASES = ("make it", "make that", "change to", "change it to")

QUANTITY_WORDS = {
    "a": 1, "an": 1, "one": 1, "single": 1, "two": 2, "couple": 2, "pair": 2, "three": 3,
    "few": 3, "four": 4, "five": 5, "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "cocktails": ("cocktail", "mixed drink", "mojito", "margarita", "martini", "old fashioned"),
    "beer": ("beer", "lager", "ale", "ipa", "stout", "draft", "draught"),
    "wine": ("wine", "red wine", "white wine", "rose", "prosecco", "champagne"),
    "spirits": ("spirit", "shot", "whisky", "whiskey", "vodka", "rum", "gin", "tequila"),
    "soft drinks": ("soft drink", "soda", "juice", "water", "non alcoholic", "mocktail", "coke"),
    "food": ("food", "eat", "snack", "hungry", "bite", "nachos", "fries", "wings", "burger"),
}

PREFERENCE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "strong": ("strong", "stiff", "boozy", "kick"),
    "refreshing": ("refreshing", "light", "crisp", "cool", "fresh"),
    "sweet": ("sweet", "fruity", "dessert"),
    "sour": ("sour", "tart", "citrus", "tangy"),
}

# Words an item's name or category should contain to suit a preference.
PREFERENCE_MATCHES: dict[str, tuple[str, ...]] = {
    "strong": ("old fashioned", "negroni", "whisk", "martini", "manhattan", "spirit", "shot"),
    "refreshing": ("mojito", "spritz", "lager", "ipa", "tonic", "beer", "soda", "lemonade"),
    "sweet": ("pina", "colada", "daiquiri", "cosmo", "sangria", "dessert", "cider"),
    "sour": ("sour", "margarita", "daiquiri", "lime", "lemon"),
}

PREFERENCE_INTROS = {
    "strong": "Looking for something with a kick? Try:",
    "refreshing": "For something refreshing, I'd go with:",
    "sweet": "Got a sweet tooth? These are crowd favourites:",
    "sour": "If you like it tangy, try:",
}

_TIP_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*(?:%|percent\b)")
_TIP_AMOUNT = re.compile(r"\$\s*(\d+(?:\.\d{1,2})?)")


def normalize_message(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    return " ".join(re.sub(r"[^a-z0-9\s]", " ", text.lower()).split())


def mentions(text: str, phrase: str) -> bool:
    """Whether a normalized text contains a phrase starting on a word boundary.

    Only the start is anchored so that plurals match ("mojitos", "suggestions").
    """
    return re.search(rf"\b{re.escape(phrase)}", text) is not None


def mentions_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(mentions(text, phrase) for phrase in phrases)


@dataclass
class MessageUnderstanding:
    """Intent and entities extracted from one message."""

    intent: Intent
    text: str
    item: MenuItem | None = None
    quantity: int | None = None
    category: str | None = None
    preference: str | None = None
    tip_percentage: Decimal | None = None
    tip_amount: Decimal | None = None

    @property
    def sets_quantity(self) -> bool:
        """'make it 3' sets a line's quantity; 'one more' adds to it."""
        return mentions_any(self.text, SET_QUANTITY_PHRASES)

    @property
    def wants_value(self) -> bool:
        return mentions_any(self.text, VALUE_PHRASES)


def find_menu_item(text: str, items: list[MenuItem]) -> MenuItem | None:
    """Find the menu item a normalized message refers to.

    Full names win over single words, longer names over shorter ones. A
    single word must be at least four letters to count.
    """
    by_length = sorted(items, key=lambda item: len(item.name), reverse=True)
    for item in by_length:
        name = normalize_message(item.name)
        if name and mentions(text, name):
            return item
    for item in by_length:
        for word in normalize_message(item.name).split():
            if len(word) >= 4 and mentions(text, word):
                return item
    return None


def extract_quantity(text: str) -> int | None:
    """First quantity word or number between 1 and MAX_QUANTITY."""
    for token in text.split():
        if token.isdigit():
            value = int(token)
            if 1 <= value <= MAX_QUANTITY:
                return value
        elif token in QUANTITY_WORDS:
            return QUANTITY_WORDS[token]
    return None


def extract_category(text: str) -> str | None:
    for category, keywords in CATEGORY_KEYWORDS.items():
        if mentions_any(text, keywords):
            return category
    return None


def extract_preference(text: str) -> str | None:
    for preference, keywords in PREFERENCE_KEYWORDS.items():
        if mentions_any(text, keywords):
            return preference
    return None


def extract_tip(raw: str) -> tuple[Decimal | None, Decimal | None]:
    """Return (percentage, amount) from '15%', '15 percent' or '$5'."""
    lowered = raw.lower()
    try:
        percent = _TIP_PERCENT.search(lowered)
        if percent:
            return Decimal(percent.group(1)), None
        amount = _TIP_AMOUNT.search(lowered)
        if amount:
            return None, Decimal(amount.group(1))
    except InvalidOperation:
        return None, None
    return None, None


def _strip_tip_figures(raw: str) -> str:
    return _TIP_AMOUNT.sub(" ", _TIP_PERCENT.sub(" ", raw.lower()))


def _classify(text: str, item: MenuItem | None, category: str | None, preference: str | None) -> Intent:
    for intent, phrases in KEYWORD_RULES:
        if mentions_any(text, phrases):
            return intent
    if item is not None:
        return Intent.ORDER_ITEM
    if mentions_any(text, MENU_PHRASES):
        return Intent.VIEW_MENU
    if category is not None:
        return Intent.VIEW_CATEGORY
    if mentions_any(text, ORDER_PHRASES):
        return Intent.ORDER_ITEM
    words = text.split()
    if (words and words[0] in GREETING_WORDS) or mentions_any(text, GREETING_PHRASES):
        return Intent.GREETING
    if mentions_any(text, THANKS_PHRASES):
        return Intent.THANK_YOU
    if mentions_any(text, PARTY_PHRASES):
        return Intent.PARTY
    if preference is not None:
        return Intent.RECOMMEND
    return Intent.UNKNOWN


def understand_message(raw: str, menu: list[MenuItem]) -> MessageUnderstanding:
    """Classify a typed message and extract its entities.

    Args:
        raw: The message as typed
        menu: Menu items the message may refer to

    Returns:
        MessageUnderstanding: Intent plus whatever entities were found
    """
    text = normalize_message(raw)
    tip_percentage, tip_amount = extract_tip(raw)
    item = find_menu_item(text, menu)
    category = extract_category(text)
    preference = extract_preference(text)
    return MessageUnderstanding(
        intent=_classify(text, item, category, preference),
        text=text,
        item=item,
        quantity=extract_quantity(normalize_message(_strip_tip_figures(raw))),
        category=category,
        preference=preference,
        tip_percentage=tip_percentage,
        tip_amount=tip_amount,
    )


def items_for_category(category: str, items: list[MenuItem]) -> list[MenuItem]:
    """Items whose name or category matches a category's keywords."""
    keywords = CATEGORY_KEYWORDS.get(category, (category,))
    return [
        item
        for item in items
        if mentions_any(normalize_message(f"{item.category} {item.name}"), keywords)
    ]


def suggest_items(preference: str | None, items: list[MenuItem], limit: int = 3) -> list[MenuItem]:
    """Pick items suiting a taste preference, else the first few on the menu."""
    if preference in PREFERENCE_MATCHES:
        keywords = PREFERENCE_MATCHES[preference]
        matches = [
            item
            for item in items
            if mentions_any(normalize_message(f"{item.name} {item.category}"), keywords)
        ]
        if matches:
            return matches[:limit]
    return items[:limit]


def cheapest_items(items: list[MenuItem], limit: int = 3) -> list[MenuItem]:
    return sorted(items, key=lambda item: item.price)[:limit]


def format_item_list(items: list[MenuItem]) -> str:
    return "\n".join(f"{item.name} - {format_currency(item.price)}" for item in items)


def format_menu_listing(items: list[MenuItem]) -> str:
    """Menu grouped by category with prices."""
    sections = [
        f"{category}:\n{format_item_list(group)}"
        for category, group in group_by_category(items).items()
    ]
    return "\n\n".join(sections)
