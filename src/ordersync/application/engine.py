from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from opentelemetry import trace

from ordersync.application.effects import (
    Banner,
    BannerKind,
    ConnectionIndicator,
    Effect,
    EntityChange,
    KpiUpdated,
    ProjectionChanged,
    SnapshotApplied,
    Toast,
    ToastLevel,
)
from ordersync.application.errors import SnapshotLoadError, UnknownActionError
from ordersync.application.history import DEFAULT_HISTORY_CAPACITY
from ordersync.application.kpis import DashboardKpis
from ordersync.application.metrics.sync_metrics import (
    record_action,
    record_snapshot_load,
    record_store_counts,
)
from ordersync.application.notifier import TransitionNotifier
from ordersync.application.polling import PollingRefresher
from ordersync.application.ports.backend import BackendError, OrderBackend, SnapshotScope
from ordersync.application.ports.channel import (
    ChannelEvent,
    ConnectionChanged,
    ConnectionPhase,
    EventChannel,
)
from ordersync.application.reconciler import ConnectionState, EventReconciler
from ordersync.application.snapshot import (
    DEFAULT_TIMEOUT_SECONDS,
    SnapshotLoader,
    build_order_set,
    build_table_set,
)
from ordersync.application.store import LocalStateStore
from ordersync.application.surfaces import (
    ACTION_TARGETS,
    OrderAction,
    Surface,
    SurfaceProfile,
    TableAction,
    profile_for,
)
from ordersync.domain.common.ids import OrderId, RestaurantId, TableId
from ordersync.domain.order.entities import Bucket, Order, OrderStatus, is_forward_transition
from ordersync.domain.table.entities import Table, TableStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

GENERIC_ACTION_MESSAGES: dict[str, str] = {
    OrderAction.START.value: "Could not start the order",
    OrderAction.READY.value: "Could not mark the order as ready",
    OrderAction.APPROVE.value: "Could not approve the payment",
    OrderAction.REJECT.value: "Could not reject the order",
    OrderAction.DELIVER.value: "Could not mark the order as delivered",
    TableAction.RELEASE.value: "Could not release the table",
    TableAction.OCCUPY.value: "Could not occupy the table",
}

TABLE_ACTION_TARGETS: dict[TableAction, TableStatus] = {
    TableAction.RELEASE: TableStatus.AVAILABLE,
    TableAction.OCCUPY: TableStatus.OCCUPIED,
}

ProjectionCallback = Callable[[ProjectionChanged], None]


class SyncStrategy(str, Enum):
    PUSH = "push"
    PULL = "pull"


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    action: str
    entity_id: str
    message: str | None = None


class SyncEngine:
    """Composition root for one display surface of one restaurant.

    Owns the store and wires the snapshot loader, reconciler and notifier
    together. The presentation layer reads projections through the getters,
    subscribes with ``on_projection_changed`` and drives the engine through
    ``refresh`` and ``perform_action``.
    """

    def __init__(
        self,
        *,
        restaurant_id: RestaurantId,
        backend: OrderBackend,
        channel: EventChannel | None = None,
        surface: Surface = Surface.KITCHEN,
        strategy: SyncStrategy = SyncStrategy.PUSH,
        request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float | None = None,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
    ) -> None:
        if strategy == SyncStrategy.PUSH and channel is None:
            raise ValueError("push strategy requires an event channel")
        if strategy == SyncStrategy.PULL and not poll_interval_seconds:
            raise ValueError("pull strategy requires poll_interval_seconds")

        self._restaurant_id = restaurant_id
        self._profile: SurfaceProfile = profile_for(surface)
        self._backend = backend
        self._channel = channel
        self._strategy = strategy
        self._timeout_seconds = request_timeout_seconds
        self._store = LocalStateStore(history_capacity)
        self._loader = SnapshotLoader(backend, timeout_seconds=request_timeout_seconds)
        self._notifier = TransitionNotifier(self._profile)
        self._reconciler = EventReconciler(
            self._store,
            emit_change=self._on_change,
            emit_effects=self._publish,
            reload=self.refresh,
            restaurant_id=str(restaurant_id),
            surface=self._profile.surface.value,
            on_degraded=self._start_fallback_polling,
            on_recovered=self._stop_fallback_polling,
        )
        self._poller = (
            PollingRefresher(self.refresh, poll_interval_seconds) if poll_interval_seconds else None
        )
        self._kpis = DashboardKpis()
        self._subscribers: list[ProjectionCallback] = []
        self._dispatching = False
        self._pending: deque[tuple[Effect, ...]] = deque()
        self._load_lock = asyncio.Lock()
        self.loaded = False
        self.last_load_error: str | None = None

    @property
    def restaurant_id(self) -> RestaurantId:
        return self._restaurant_id

    @property
    def profile(self) -> SurfaceProfile:
        return self._profile

    @property
    def strategy(self) -> SyncStrategy:
        return self._strategy

    @property
    def store(self) -> LocalStateStore:
        return self._store

    @property
    def reconciler(self) -> EventReconciler:
        return self._reconciler

    @property
    def connection(self) -> ConnectionState:
        return self._reconciler.connection

    @property
    def kpis(self) -> DashboardKpis:
        return self._kpis

    @property
    def scope(self) -> SnapshotScope:
        return SnapshotScope(
            restaurant_id=self._restaurant_id,
            statuses=self._profile.snapshot_statuses,
            include_tables=self._profile.load_tables,
            include_kpis=self._profile.track_kpis,
        )

    # Lifecycle

    async def start(self) -> None:
        logger.info(
            "engine_starting",
            extra={
                "restaurant_id": self._restaurant_id,
                "surface": self._profile.surface.value,
                "strategy": self._strategy.value,
            },
        )
        async with self._reconciler.hold_events():
            if self._strategy == SyncStrategy.PUSH and self._channel is not None:
                try:
                    await self._channel.connect(self.handle_event)
                except Exception as exc:
                    logger.exception("channel_connect_failed")
                    await self._reconciler.on_connection_changed(
                        ConnectionChanged(phase=ConnectionPhase.CLOSED, error=str(exc), gave_up=True)
                    )
            await self.refresh("startup")
        if self._strategy == SyncStrategy.PULL and self._poller is not None:
            self._poller.start()

    async def stop(self) -> None:
        if self._poller is not None:
            await self._poller.stop()
        if self._channel is not None:
            await self._channel.disconnect()
        logger.info("engine_stopped", extra={"restaurant_id": self._restaurant_id})

    async def handle_event(self, event: ChannelEvent) -> None:
        await self._reconciler.handle(event)

    async def _start_fallback_polling(self) -> None:
        if self._poller is not None:
            self._poller.start()

    async def _stop_fallback_polling(self) -> None:
        if self._poller is not None and self._strategy == SyncStrategy.PUSH:
            await self._poller.stop()

    # Presentation API

    def on_projection_changed(self, callback: ProjectionCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def get_orders_by_status(self, status: OrderStatus | str) -> list[Order]:
        return list(self._store.project_by_status(OrderStatus(status)))

    def get_tables(self) -> list[Table]:
        return self._store.tables()

    def get_counts(self) -> dict[Bucket, int]:
        counts = self._store.counts()
        return {bucket: counts[bucket] for bucket in self._profile.buckets}

    def get_recent_orders(self) -> list[Order]:
        return self._store.recent_orders(self._store.history_capacity)

    async def refresh(self, reason: str = "manual") -> bool:
        """Reload the snapshot and swap it into the store.

        Returns False when the load failed; the store then keeps its previous
        content and a load-error banner is published.
        """
        async with self._load_lock:
            async with self._reconciler.hold_events():
                labels = (str(self._restaurant_id), self._profile.surface.value, reason)
                try:
                    snapshot = await self._loader.load(self.scope)
                except SnapshotLoadError as exc:
                    self.last_load_error = str(exc)
                    record_snapshot_load(*labels, outcome="error")
                    logger.warning(
                        "snapshot_load_failed",
                        extra={"restaurant_id": self._restaurant_id, "reason": reason, "error": str(exc)},
                    )
                    self._publish([Banner(kind=BannerKind.LOAD_ERROR, message=str(exc))])
                    return False

                orders, history = build_order_set(snapshot.orders, self._store)
                tables = (
                    build_table_set(snapshot.tables, self._store)
                    if snapshot.tables is not None
                    else None
                )
                self._store.replace_orders(orders, history)
                if tables is not None:
                    self._store.replace_tables(tables)

                effects: list[Effect] = []
                if self.last_load_error is not None:
                    effects.append(Banner(kind=BannerKind.LOAD_ERROR, message=None, visible=False))
                if snapshot.kpis is not None:
                    self._kpis = snapshot.kpis
                    effects.append(KpiUpdated(snapshot.kpis))
                self.last_load_error = None
                self.loaded = True
                record_snapshot_load(*labels, outcome="ok")
                counts = self._store.counts()
                record_store_counts(str(self._restaurant_id), self._profile.surface.value, counts)
                logger.info(
                    "snapshot_applied",
                    extra={
                        "restaurant_id": self._restaurant_id,
                        "reason": reason,
                        "orders": len(orders) + len(history),
                    },
                )
                effects.append(
                    SnapshotApplied(
                        orders=len(orders) + len(history),
                        tables=len(tables) if tables is not None else len(self._store.tables()),
                        reason=reason,
                    )
                )
                effects.append(self._notifier.counters(counts, self._store.total_active()))
                self._publish(effects)
                return True

    async def perform_action(self, action_name: str, entity_id: str) -> ActionResult:
        action = self._resolve_action(action_name)
        with tracer.start_as_current_span("ordersync.action") as span:
            span.set_attribute("ordersync.action", action.value)
            span.set_attribute("ordersync.entity_id", entity_id)
            if isinstance(action, OrderAction):
                return await self._perform_order_action(action, OrderId(entity_id))
            return await self._perform_table_action(action, TableId(entity_id))

    def _resolve_action(self, action_name: str) -> OrderAction | TableAction:
        action: OrderAction | TableAction
        try:
            action = OrderAction(action_name)
            allowed = action in self._profile.order_actions
        except ValueError:
            try:
                action = TableAction(action_name)
            except ValueError:
                raise UnknownActionError(f"unknown action: {action_name}") from None
            allowed = action in self._profile.table_actions
        if not allowed:
            raise UnknownActionError(
                f"action {action_name} is not available on the {self._profile.surface.value} surface"
            )
        return action

    async def _perform_order_action(self, action: OrderAction, order_id: OrderId) -> ActionResult:
        order = self._store.get_order(order_id)
        if order is None:
            return self._action_failed(action.value, order_id, f"Order {order_id} not found")
        target = ACTION_TARGETS[action]
        if not is_forward_transition(order.status, target):
            return self._action_failed(
                action.value,
                order_id,
                f"Order #{order.order_code} cannot {action.value} while {order.status.value}",
            )
        try:
            await asyncio.wait_for(
                self._backend.perform_order_action(order_id, action.value),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._action_failed(action.value, order_id, None, error="timeout")
        except BackendError as exc:
            return self._action_failed(action.value, order_id, exc.message, error=str(exc))

        self._reconciler.apply_confirmed_order_status(order_id, target)
        record_action(str(self._restaurant_id), self._profile.surface.value, action.value, "ok")
        return ActionResult(ok=True, action=action.value, entity_id=order_id)

    async def _perform_table_action(self, action: TableAction, table_id: TableId) -> ActionResult:
        table = self._store.get_table(table_id)
        if table is None:
            return self._action_failed(action.value, table_id, f"Table {table_id} not found")
        target = TABLE_ACTION_TARGETS[action]
        try:
            await asyncio.wait_for(
                self._backend.update_table(table_id, table.code, target),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._action_failed(action.value, table_id, None, error="timeout")
        except BackendError as exc:
            return self._action_failed(action.value, table_id, exc.message, error=str(exc))

        self._reconciler.apply_confirmed_table_status(table_id, target)
        record_action(str(self._restaurant_id), self._profile.surface.value, action.value, "ok")
        return ActionResult(ok=True, action=action.value, entity_id=table_id)

    def _action_failed(
        self,
        action: str,
        entity_id: str,
        message: str | None,
        error: str | None = None,
    ) -> ActionResult:
        text = message or GENERIC_ACTION_MESSAGES[action]
        record_action(str(self._restaurant_id), self._profile.surface.value, action, "error")
        logger.warning(
            "action_failed",
            extra={"action": action, "entity_id": entity_id, "error": error or text},
        )
        self._publish([Toast(ToastLevel.ERROR, text)])
        return ActionResult(ok=False, action=action, entity_id=entity_id, message=text)

    # Notification

    def _on_change(self, change: EntityChange) -> None:
        effects = self._notifier.effects_for(
            change,
            counts=self._store.counts(),
            total_active=self._store.total_active(),
            kpis=self._kpis,
        )
        for effect in effects:
            if isinstance(effect, KpiUpdated):
                self._kpis = effect.kpis
        if effects:
            self._publish(effects)

    def _publish(self, effects: list[Effect]) -> None:
        self._pending.append(tuple(effects))
        # Callbacks that cause further effects get them after the current
        # dispatch finishes, never nested inside it.
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                changed = ProjectionChanged(effects=self._pending.popleft())
                for callback in list(self._subscribers):
                    try:
                        callback(changed)
                    except Exception:
                        logger.exception("projection_subscriber_error")
        finally:
            self._dispatching = False


def connection_indicator(state: ConnectionState) -> ConnectionIndicator:
    if state.connected:
        return ConnectionIndicator(connected=True, message="Live")
    if state.degraded:
        return ConnectionIndicator(connected=False, message="Disconnected")
    return ConnectionIndicator(connected=False, message="Connecting")
