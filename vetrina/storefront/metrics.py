"""Prometheus metrics for the storefront order editor."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter

EDITOR_LINES_SKIPPED_TOTAL: Final = Counter(
    "storefront_editor_lines_skipped_total",
    "Draft lines left out of a save because article, variant or size group was missing.",
)

EDITOR_SAVES_TOTAL: Final = Counter(
    "storefront_editor_saves_total",
    "Order saves posted by the editor.",
    labelnames=("outcome",),
)

EDITOR_SEARCH_FAILURES_TOTAL: Final = Counter(
    "storefront_editor_search_failures_total",
    "Product searches that failed and left the line without suggestions.",
)

NOTIFICATION_POLL_FAILURES_TOTAL: Final = Counter(
    "storefront_notification_poll_failures_total",
    "Unread-count polls that failed; the badge keeps its last value.",
)
