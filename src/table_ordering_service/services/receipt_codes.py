"""Receipt code generation."""

import logging
import secrets
from collections.abc import Callable

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "NX-"
RECEIPT_CODE_LENGTH = 6
# Uppercase letters and digits without I, O and 0.
RECEIPT_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ123456789"


def generate_receipt_id() -> str:
    """Generate a receipt code such as NX-7KQ2MZ.

    No uniqueness check is made; see generate_unique_receipt_id.
    """
    code = "".join(secrets.choice(RECEIPT_ALPHABET) for _ in range(RECEIPT_CODE_LENGTH))
    return f"{RECEIPT_PREFIX}{code}"


def generate_unique_receipt_id(
    exists: Callable[[str], bool],
    max_attempts: int = 5,
) -> str:
    """Generate a receipt code that is not already in use.

    Args:
        exists: Returns True if the given code is already taken
        max_attempts: Number of candidates to try before giving up

    Returns:
        str: An unused receipt code

    Raises:
        RuntimeError: If every candidate collided
    """
    for attempt in range(1, max_attempts + 1):
        receipt_id = generate_receipt_id()
        if not exists(receipt_id):
            return receipt_id
        logger.warning(f"Receipt code collision on attempt {attempt}: {receipt_id}")

    raise RuntimeError(f"Could not generate an unused receipt code after {max_attempts} attempts")
