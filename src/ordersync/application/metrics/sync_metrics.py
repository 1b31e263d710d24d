from __future__ import annotations

from prometheus_client import Counter, Gauge

from ordersync.domain.order.entities import Bucket

EVENTS_TOTAL = Counter(
    "ordersync_events_total",
    "Channel events processed by outcome.",
    ["restaurant_id", "surface", "event_type", "outcome"],
)

SNAPSHOT_LOADS_TOTAL = Counter(
    "ordersync_snapshot_loads_total",
    "Snapshot loads by trigger and outcome.",
    ["restaurant_id", "surface", "reason", "outcome"],
)

ACTIONS_TOTAL = Counter(
    "ordersync_actions_total",
    "Confirmed actions by name and outcome.",
    ["restaurant_id", "surface", "action", "outcome"],
)

CHANNEL_TRANSITIONS_TOTAL = Counter(
    "ordersync_channel_transitions_total",
    "Push channel lifecycle transitions.",
    ["restaurant_id", "surface", "phase"],
)

MALFORMED_MESSAGES_TOTAL = Counter(
    "ordersync_malformed_messages_total",
    "Channel messages dropped because they could not be parsed.",
    ["channel"],
)

STORE_ORDERS = Gauge(
    "ordersync_store_orders",
    "Orders currently held per kanban bucket.",
    ["restaurant_id", "surface", "bucket"],
)

CHANNEL_CONNECTED = Gauge(
    "ordersync_channel_connected",
    "1 while the push channel is live.",
    ["restaurant_id", "surface"],
)


def record_event(restaurant_id: str, surface: str, event_type: str, outcome: str) -> None:
    EVENTS_TOTAL.labels(
        restaurant_id=restaurant_id,
        surface=surface,
        event_type=event_type,
        outcome=outcome,
    ).inc()


def record_snapshot_load(restaurant_id: str, surface: str, reason: str, outcome: str) -> None:
    SNAPSHOT_LOADS_TOTAL.labels(
        restaurant_id=restaurant_id,
        surface=surface,
        reason=reason,
        outcome=outcome,
    ).inc()


def record_action(restaurant_id: str, surface: str, action: str, outcome: str) -> None:
    ACTIONS_TOTAL.labels(
        restaurant_id=restaurant_id,
        surface=surface,
        action=action,
        outcome=outcome,
    ).inc()


def record_channel_transition(restaurant_id: str, surface: str, phase: str, connected: bool) -> None:
    CHANNEL_TRANSITIONS_TOTAL.labels(restaurant_id=restaurant_id, surface=surface, phase=phase).inc()
    CHANNEL_CONNECTED.labels(restaurant_id=restaurant_id, surface=surface).set(1 if connected else 0)


def record_malformed_message(channel: str) -> None:
    MALFORMED_MESSAGES_TOTAL.labels(channel=channel).inc()


def record_store_counts(restaurant_id: str, surface: str, counts: dict[Bucket, int]) -> None:
    for bucket, size in counts.items():
        STORE_ORDERS.labels(restaurant_id=restaurant_id, surface=surface, bucket=bucket.value).set(size)
