from __future__ import annotations

from typing import NewType

RestaurantId = NewType("RestaurantId", str)
TableId = NewType("TableId", str)
OrderId = NewType("OrderId", str)
