"""Prometheus metrics for the ordering service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter

# Order line persistence -------------------------------------------------------------------
ORDER_LINES_SAVED_TOTAL: Final = Counter(
    "ordering_order_lines_saved_total",
    "OrderProduct rows written by successful order saves.",
)

ORDER_ROWS_SKIPPED_TOTAL: Final = Counter(
    "ordering_order_rows_skipped_total",
    "Incoming order rows dropped before persistence.",
    labelnames=("reason",),
)

ORDER_SAVE_FAILURES_TOTAL: Final = Counter(
    "ordering_order_save_failures_total",
    "Order saves aborted and rolled back.",
)

# Products ---------------------------------------------------------------------------------
PRODUCTS_AUTO_CREATED_TOTAL: Final = Counter(
    "ordering_products_auto_created_total",
    "Products inserted while resolving order rows.",
)

PRODUCTS_IMPORTED_TOTAL: Final = Counter(
    "ordering_products_imported_total",
    "Bulk import rows by outcome.",
    labelnames=("outcome",),
)

# Catalogs ---------------------------------------------------------------------------------
CATALOG_STATUS_CHANGES_TOTAL: Final = Counter(
    "ordering_catalog_status_changes_total",
    "Catalog lifecycle transitions applied.",
    labelnames=("status",),
)
