"""Content checking for aggregator sources."""

from aggregator_cli.checker.content_checker import (
    CheckOutcome,
    ContentChecker,
    DiscoveredItem,
    derive_content_type,
    is_likely_content_link,
)

__all__ = [
    "CheckOutcome",
    "ContentChecker",
    "DiscoveredItem",
    "derive_content_type",
    "is_likely_content_link",
]
