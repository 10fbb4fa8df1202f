"""
Text utilities for identifiers coming from the shop platform.
"""

from typing import Optional


def extract_numeric_id(gid: Optional[str]) -> Optional[str]:
    """
    Extract the trailing numeric segment of a global ID.

    - "gid://shopify/LineItem/13579" → "13579"
    - "13579" → "13579"

    Args:
        gid: GraphQL global ID or plain numeric ID

    Returns:
        Trailing segment, or None if input is empty
    """
    if gid is None:
        return None

    gid = str(gid).strip()

    if not gid:
        return None

    return gid.rstrip("/").split("/")[-1]


def order_name_slug(name: str) -> str:
    """
    Strip the display prefix from an order name for use in storage keys.

    - "#1001" → "1001"
    - "#AA574257" → "AA574257"
    """
    return name.strip().replace("#", "")


def split_variant_title(variant_title: Optional[str]) -> tuple[str, str]:
    """
    Split a variant descriptor into (color, size).

    - "White / 2XL" → ("White", "2XL")
    - "Black" → ("Black", "UnknownSize")
    - None → ("UnknownColor", "UnknownSize")
    """
    parts = (variant_title or "").split(" / ")
    color = parts[0].strip() if parts and parts[0].strip() else "UnknownColor"
    size = parts[1].strip() if len(parts) > 1 and parts[1].strip() else "UnknownSize"
    return color, size
