from __future__ import annotations

from typing import Mapping

from ordersync.application.effects import (
    AudioCue,
    AudioCueKind,
    ChangeOrigin,
    CountersUpdated,
    Effect,
    EntityChange,
    EntityKind,
    KpiUpdated,
    OrderAdded,
    OrderMoved,
    OrderRemoved,
    TableChanged,
    Toast,
    ToastLevel,
)
from ordersync.application.kpis import DashboardKpis
from ordersync.application.surfaces import SurfaceProfile
from ordersync.domain.order.entities import Bucket, Order, OrderStatus
from ordersync.domain.table.entities import Table, TableStatus

_ACTION_TOASTS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Payment approved for order #{code}",
    OrderStatus.IN_PREPARATION: "Order #{code} started",
    OrderStatus.DELIVERED: "Order #{code} marked as delivered",
}

_TABLE_ACTION_TOASTS: dict[TableStatus, str] = {
    TableStatus.AVAILABLE: "Table {code} has been released",
    TableStatus.OCCUPIED: "Table {code} is now occupied",
}


def _format_amount(amount: object) -> str:
    return f"{amount:,.0f}"


class TransitionNotifier:
    """Turns one entity change into the effects the presentation layer applies.

    The notifier only reads what it is given; it never touches the store. KPI
    effects carry the new running totals and the caller decides whether to
    keep them.
    """

    def __init__(self, profile: SurfaceProfile) -> None:
        self._profile = profile

    def effects_for(
        self,
        change: EntityChange,
        counts: Mapping[Bucket, int],
        total_active: int,
        kpis: DashboardKpis,
    ) -> list[Effect]:
        if change.kind == EntityKind.ORDER:
            effects = self._order_effects(change, kpis)
            if effects:
                effects.insert(1, self.counters(counts, total_active))
            return effects
        if change.kind == EntityKind.TABLE:
            return self._table_effects(change)
        raise TypeError(f"unsupported entity kind: {change.kind}")

    def counters(self, counts: Mapping[Bucket, int], total_active: int) -> CountersUpdated:
        return CountersUpdated(
            counts=tuple((bucket, counts.get(bucket, 0)) for bucket in self._profile.buckets),
            total_active=total_active,
        )

    def _order_effects(self, change: EntityChange, kpis: DashboardKpis) -> list[Effect]:
        before = change.before if isinstance(change.before, Order) else None
        after = change.after if isinstance(change.after, Order) else None

        if before is None and after is not None:
            return self._new_order_effects(after, kpis)
        if before is not None and after is None:
            effects: list[Effect] = [OrderRemoved(order_id=before.order_id, bucket=before.bucket)]
            if change.origin == ChangeOrigin.ACTION:
                effects.append(Toast(ToastLevel.INFO, f"Order #{before.order_code} rejected"))
            return effects
        if before is None or after is None or before.status == after.status:
            return []

        effects = [
            OrderMoved(order_id=after.order_id, from_bucket=before.bucket, to_bucket=after.bucket)
        ]
        if change.origin == ChangeOrigin.SNAPSHOT:
            return effects
        if after.status == OrderStatus.READY:
            effects.append(AudioCue(AudioCueKind.ORDER_READY))
            effects.append(Toast(ToastLevel.SUCCESS, f"Order #{after.order_code} is ready!"))
        elif change.origin == ChangeOrigin.ACTION and after.status in _ACTION_TOASTS:
            message = _ACTION_TOASTS[after.status].format(code=after.order_code)
            effects.append(Toast(ToastLevel.SUCCESS, message))
        return effects

    def _new_order_effects(self, order: Order, kpis: DashboardKpis) -> list[Effect]:
        effects: list[Effect] = [
            OrderAdded(order_id=order.order_id, bucket=order.bucket),
            AudioCue(AudioCueKind.NEW_ORDER),
        ]
        if order.status == OrderStatus.AWAITING_PAYMENT:
            message = (
                f"New order #{order.order_code} at table {order.table_code} awaiting approval"
            )
        elif self._profile.track_kpis:
            message = (
                f"New order! #{order.order_code} - table {order.table_code} "
                f"({_format_amount(order.total)})"
            )
        else:
            message = f"New order #{order.order_code}"
        effects.append(Toast(ToastLevel.INFO, message))
        if self._profile.track_kpis:
            effects.append(KpiUpdated(kpis.add_order(order.total)))
        return effects

    def _table_effects(self, change: EntityChange) -> list[Effect]:
        after = change.after if isinstance(change.after, Table) else None
        if after is None:
            return []
        before = change.before if isinstance(change.before, Table) else None
        if before is not None and before.status == after.status:
            return []
        effects: list[Effect] = [
            TableChanged(
                table_id=after.table_id,
                before=before.status if before is not None else None,
                after=after.status,
            )
        ]
        if change.origin == ChangeOrigin.ACTION:
            template = _TABLE_ACTION_TOASTS.get(after.status, "Table {code} updated")
            effects.append(Toast(ToastLevel.SUCCESS, template.format(code=after.code)))
        return effects
