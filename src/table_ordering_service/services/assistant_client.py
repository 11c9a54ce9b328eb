"""Client for the generative-AI conversation assistant.

The assistant only adds conversational flavor text. It never sees or changes
carts or orders, and any failure degrades to an empty reply.
"""

import logging
import time
from typing import Any

import httpx

from table_ordering_service.observability.metrics import record_assistant_latency

logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent"
)

SYSTEM_INSTRUCTION = """You are a friendly and engaging bartender assistant.

Your role:
- Be conversational, warm, and helpful
- Ask follow-up questions to understand customer preferences
- Suggest drinks based on mood, occasion, and taste
- Keep responses SHORT (2-3 sentences max)

You CANNOT:
- Take orders (the ordering system handles that)
- Show menus (the system does that)
- Process payments
- Change any system functionality"""

ASSISTANT_KEYWORDS: tuple[str, ...] = (
    "recommend",
    "suggest",
    "what should",
    "which",
    "help me choose",
    "opinion",
    "think",
    "advice",
    "best",
    "favorite",
    "popular",
    "tell me about",
    "explain",
    "describe",
    "what is",
    "how is",
)


def should_use_assistant(message: str) -> bool:
    """Whether a customer message asks for a recommendation or opinion."""
    lowered = message.lower()
    return any(keyword in lowered for keyword in ASSISTANT_KEYWORDS)


def build_prompt(message: str, context: str | None, menu_item_names: list[str]) -> str:
    prompt = SYSTEM_INSTRUCTION
    if context:
        prompt += f"\n\nContext: {context}"
    if menu_item_names:
        prompt += f"\n\nAvailable items on menu: {', '.join(menu_item_names)}"
    prompt += f'\n\nCustomer says: "{message}"\n\nRespond (short, friendly, conversational):'
    return prompt


class AssistantClient:
    """HTTP client for a generateContent-style text completion endpoint."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = DEFAULT_ASSISTANT_URL,
        max_output_tokens: int = 150,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the assistant client.

        Args:
            api_key: API key; None disables the assistant
            api_url: generateContent endpoint URL
            max_output_tokens: Upper bound on generated tokens
            timeout_seconds: Request timeout
        """
        self.api_key = api_key
        self.api_url = api_url
        self.max_output_tokens = max_output_tokens
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def build_payload(
        self, message: str, context: str | None, menu_item_names: list[str]
    ) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": build_prompt(message, context, menu_item_names)}]}],
            "generationConfig": {
                "temperature": 0.9,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": self.max_output_tokens,
            },
            "safetySettings": [
                {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
                {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            ],
        }

    async def reply(
        self,
        message: str,
        context: str | None = None,
        menu_item_names: list[str] | None = None,
    ) -> str:
        """Get a short conversational reply.

        Args:
            message: What the customer typed
            context: Optional conversation context
            menu_item_names: Names of currently available menu items

        Returns:
            str: The reply text, or "" on any failure
        """
        if not self.api_key or not message.strip():
            return ""

        payload = self.build_payload(message, context, menu_item_names or [])
        started = time.perf_counter()

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.api_url, params={"key": self.api_key}, json=payload
                )
                response.raise_for_status()
                data = response.json()

        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Assistant request failed: {e}")  # pragma: no cover
            return ""

        finally:
            record_assistant_latency(time.perf_counter() - started)

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Assistant response had no candidate text")
            return ""

        return str(text).strip()
