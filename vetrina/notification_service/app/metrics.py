"""Prometheus metrics for the notification service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

_EVENT_OUTCOME_LABELS: Final = (
    "processed",
    "invalid_payload",
    "no_recipient",
    "unsupported_topic",
)

# Notification rows ------------------------------------------------------------------------
NOTIFICATIONS_CREATED_TOTAL: Final = Counter(
    "notification_created_total",
    "Notification rows written.",
    labelnames=("type",),
)

NOTIFICATIONS_READ_TOTAL: Final = Counter(
    "notification_read_total",
    "Notifications marked as read.",
)

# Real-time push ---------------------------------------------------------------------------
NOTIFICATION_PUSH_TOTAL: Final = Counter(
    "notification_push_total",
    "Notifications pushed to a user room.",
    labelnames=("channel",),
)

NOTIFICATION_PUSH_FAILURE_TOTAL: Final = Counter(
    "notification_push_failure_total",
    "Notification pushes that failed; the stored row is still served by polling.",
    labelnames=("channel",),
)

NOTIFICATION_PUSH_LATENCY_SECONDS: Final = Histogram(
    "notification_push_latency_seconds",
    "Time taken to hand a notification to the real-time channel.",
    labelnames=("channel",),
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2),
)

# Event handling ---------------------------------------------------------------------------
NOTIFICATION_EVENTS_PROCESSED_TOTAL: Final = Counter(
    "notification_events_processed_total",
    "Domain events that resulted in at least one notification.",
    labelnames=("topic",),
)

NOTIFICATION_EVENTS_DROPPED_TOTAL: Final = Counter(
    "notification_events_dropped_total",
    "Domain events skipped during processing.",
    labelnames=("topic", "reason"),
)


def normalise_event_reason(raw_reason: str) -> str:
    """Return a bounded label value for event outcome counters."""

    reason = (raw_reason or "unsupported_topic").strip().lower().replace(" ", "_")
    if reason not in _EVENT_OUTCOME_LABELS:
        return "unsupported_topic"
    return reason
