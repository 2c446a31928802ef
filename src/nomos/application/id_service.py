"""Service for generating stable card IDs."""

from ulid import ULID


def generate_card_id() -> str:
    """Generate a stable, time-sortable card ID using ULID."""
    return f"card_{ULID()}"
