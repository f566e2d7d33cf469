"""Metric definitions for the realtime relay and the messaging API."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events processed by the chat relay.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of users with a live chat connection on this process.",
    label_names=("scope",),
)

messages_created_total = registry.counter(
    "chat_messages_created_total",
    "Number of chat messages durably stored.",
)

notifications_created_total = registry.counter(
    "notifications_created_total",
    "Number of notifications stored, by type.",
    label_names=("type",),
)

notifications_deduplicated_total = registry.counter(
    "notifications_deduplicated_total",
    "Number of notification requests collapsed into a recent identical one.",
    label_names=("type",),
)
