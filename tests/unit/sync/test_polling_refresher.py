from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from ordersync.application.polling import PollingRefresher


def test_refresher_keeps_polling_after_a_failed_refresh() -> None:
    reasons: list[str] = []

    async def refresh(reason: str) -> bool:
        reasons.append(reason)
        if len(reasons) == 1:
            raise RuntimeError("backend hiccup")
        return True

    async def scenario() -> bool:
        poller = PollingRefresher(refresh, interval_seconds=0.01)
        poller.start()
        poller.start()
        await asyncio.sleep(0.06)
        running = poller.running
        await poller.stop()
        await poller.stop()
        return running and not poller.running

    assert asyncio.run(scenario())
    assert len(reasons) >= 2
    assert set(reasons) == {"poll"}


def test_refresher_requires_positive_interval() -> None:
    async def refresh(reason: str) -> bool:
        return True

    with pytest.raises(ValueError):
        PollingRefresher(refresh, interval_seconds=0)
