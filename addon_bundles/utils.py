"""Utility helpers for the add-on bundles app."""


def to_shopify_gid(resource_type, numeric_id):
    """Convert a numeric Shopify ID to the Global ID (GID) format.

    Values that are already GIDs are returned unchanged, so callers can pass
    whatever the resource picker stored.

    Examples::

        >>> to_shopify_gid("Product", "9154924904679")
        'gid://shopify/Product/9154924904679'
        >>> to_shopify_gid("Product", "gid://shopify/Product/1")
        'gid://shopify/Product/1'
    """
    numeric_id = str(numeric_id)
    if numeric_id.startswith("gid://"):
        return numeric_id
    return f"gid://shopify/{resource_type}/{numeric_id}"


def extract_id(gid_string):
    """Extract the numeric ID from a Shopify GID string.

    Example: ``"gid://shopify/Product/12345"`` → ``"12345"``
    """
    return str(gid_string).split("/")[-1]


def chunked(items, size):
    """Split *items* into consecutive lists of at most *size* elements."""
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]
