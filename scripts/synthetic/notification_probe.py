#!/usr/bin/env python3
"""Synthetic probe for the notification service.

Creates a SYSTEM notification for a probe user, checks that it shows up in the
unread count and the first page, marks it read, and (optionally) verifies the
Prometheus counters moved as expected. Intended for scheduled synthetic checks.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

import httpx
from prometheus_client.parser import text_string_to_metric_families


@dataclass(slots=True)
class MetricDelta:
    name: str
    labels: Mapping[str, str]
    before: float
    after: float

    @property
    def delta(self) -> float:
        return self.after - self.before


class ProbeError(RuntimeError):
    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synthetic probe for notification service")
    parser.add_argument(
        "--base-url",
        default=os.getenv("NOTIFICATION_BASE_URL", "http://127.0.0.1:8000"),
        help="Base URL for the notification service (default: %(default)s or NOTIFICATION_BASE_URL)",
    )
    parser.add_argument(
        "--metrics-path",
        default=os.getenv("NOTIFICATION_METRICS_PATH", "/metrics"),
        help="Path to Prometheus metrics endpoint (default: %(default)s or NOTIFICATION_METRICS_PATH)",
    )
    parser.add_argument("--skip-metrics", action="store_true", help="Skip verification of Prometheus metric deltas")
    parser.add_argument(
        "--user-id",
        type=int,
        default=int(os.getenv("NOTIFICATION_PROBE_USER_ID", "999999")),
        help="Session user that receives the probe notification (default: %(default)s)",
    )
    parser.add_argument(
        "--cookie-name",
        default=os.getenv("VETRINA_SESSION_COOKIE_NAME", "session"),
        help="Session cookie name (default: %(default)s)",
    )
    parser.add_argument("--request-timeout", type=float, default=5.0, help="HTTP timeout in seconds")
    parser.add_argument(
        "--max-create-ms",
        type=float,
        default=float(os.getenv("NOTIFICATION_PROBE_MAX_CREATE_MS", "2000")),
        help="Maximum allowed create latency in milliseconds (default: %(default)s)",
    )
    return parser.parse_args()


def metric_value(text: str, name: str, labels: Mapping[str, str]) -> float:
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if sample.name == name and all(sample.labels.get(key) == value for key, value in labels.items()):
                return float(sample.value)
    return 0.0


async def _fetch_metrics(client: httpx.AsyncClient, path: str) -> str:
    response = await client.get(path)
    response.raise_for_status()
    return response.text


def _expect(response: httpx.Response, status_code: int, what: str) -> Any:
    if response.status_code != status_code:
        raise ProbeError(what, context={"status_code": response.status_code, "body": response.text})
    return response.json()


async def run_probe(args: argparse.Namespace) -> Dict[str, Any]:
    headers = {"Cookie": f"{args.cookie_name}={args.user_id}"}
    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.request_timeout, headers=headers) as client:
        metrics_before = "" if args.skip_metrics else await _fetch_metrics(client, args.metrics_path)
        unread_before = _expect(await client.get("/notifications/unread-count"), 200, "Unread count failed")["count"]

        identifier = uuid.uuid4().hex[:8]
        start = time.monotonic()
        created = _expect(
            await client.post(
                "/notifications",
                json={"type": "SYSTEM", "icon": "Activity", "color": "gray", "message": f"Synthetic probe {identifier}"},
            ),
            200,
            "Failed to create notification",
        )
        create_ms = (time.monotonic() - start) * 1000.0
        if create_ms > args.max_create_ms:
            raise ProbeError(
                "Notification create latency exceeded threshold",
                context={"create_ms": round(create_ms, 2), "threshold_ms": args.max_create_ms},
            )

        unread_after = _expect(await client.get("/notifications/unread-count"), 200, "Unread count failed")["count"]
        if unread_after != unread_before + 1:
            raise ProbeError("Unread count did not increase", context={"before": unread_before, "after": unread_after})

        first_page = _expect(await client.get("/notifications"), 200, "Listing notifications failed")
        if not any(item["id"] == created["id"] for item in first_page["notifications"]):
            raise ProbeError("Probe notification missing from first page", context={"id": created["id"]})

        read = _expect(await client.post(f"/notifications/{created['id']}/read"), 200, "Mark read failed")
        if not read["read"]:
            raise ProbeError("Notification not marked read", context={"id": created["id"]})

        deltas: List[MetricDelta] = []
        if not args.skip_metrics:
            metrics_after = await _fetch_metrics(client, args.metrics_path)
            for name, labels in (
                ("notification_created_total", {"type": "SYSTEM"}),
                ("notification_read_total", {}),
            ):
                deltas.append(
                    MetricDelta(
                        name=name,
                        labels=labels,
                        before=metric_value(metrics_before, name, labels),
                        after=metric_value(metrics_after, name, labels),
                    )
                )
            stalled = [delta.name for delta in deltas if delta.delta < 1]
            if stalled:
                raise ProbeError("Counters did not increment", context={"metrics": stalled})

        return {
            "status": "ok",
            "notificationId": created["id"],
            "durationsMs": {"create": round(create_ms, 2)},
            "metrics": [
                {"name": delta.name, "labels": dict(delta.labels), "delta": delta.delta} for delta in deltas
            ],
        }


async def main_async() -> int:
    args = parse_args()
    try:
        result = await run_probe(args)
    except (ProbeError, httpx.HTTPError) as exc:
        context = exc.context if isinstance(exc, ProbeError) else {"exc_type": exc.__class__.__name__}
        print(json.dumps({"status": "error", "message": str(exc), "context": context}, indent=2, sort_keys=True))
        return 1
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
