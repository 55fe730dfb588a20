"""
ID Generator Utility

Generates prefixed alphanumeric IDs for stored records and for the
correlation tags attached to logged failures.
Uses cryptographically secure random generation.
"""

import secrets
import string


def generate_id(prefix: str, length: int = 10) -> str:
    """
    Generate a prefixed alphanumeric ID.

    Args:
        prefix: The prefix for the ID (e.g., "DRF_", "COL_")
        length: Length of the random part (default 10)

    Returns:
        A string like "DRF_7xK9mN2pQ4"
    """
    chars = string.ascii_letters + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}{random_part}"


def generate_draft_id() -> str:
    return generate_id("DRF_")


def generate_podcast_id() -> str:
    return generate_id("POD_")


def generate_collection_id() -> str:
    return generate_id("COL_")


def generate_collection_item_id() -> str:
    return generate_id("CLI_")


def generate_correlation_tag() -> str:
    return generate_id("COR_")
