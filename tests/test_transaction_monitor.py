import asyncio

import psycopg2
import pytest

from db.connection import get_connection
from services.errors import AlreadyReleased
from services.transaction_monitor import TransactionMonitor
from services.transaction_service import TransactionService


def _register(fake_pool, registry, tx_id, **conn_kwargs):
    fake_pool.prepare(**conn_kwargs)
    conn = get_connection()
    return registry.add(tx_id, conn, "UPDATE t SET a = 1")


@pytest.mark.asyncio
async def test_expired_transaction_is_rolled_back_by_the_loop(fake_pool, registry):
    entry = _register(fake_pool, registry, "tx_1")
    monitor = TransactionMonitor(registry, timeout_ms=100, interval_ms=50, enabled=True)

    monitor.start()
    try:
        for _ in range(40):
            await asyncio.sleep(0.025)
            if not registry.has("tx_1"):
                break
    finally:
        await monitor.stop()

    assert not registry.has("tx_1")
    assert entry.released
    assert entry.connection.rollbacks == 1
    assert fake_pool.release_count(entry.connection) == 1
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_fresh_transactions_are_left_alone(fake_pool, registry):
    entry = _register(fake_pool, registry, "tx_1")
    monitor = TransactionMonitor(registry, timeout_ms=60_000, interval_ms=50)

    assert monitor.sweep() == 0
    assert entry.state == "active"
    assert registry.has("tx_1")


@pytest.mark.asyncio
async def test_forced_rollback_happens_at_most_once(fake_pool, registry):
    entry = _register(fake_pool, registry, "tx_1", rollback_delay=0.05)
    monitor = TransactionMonitor(registry, timeout_ms=0, interval_ms=50)
    await asyncio.sleep(0.001)

    assert monitor.sweep() == 1
    assert entry.state == "terminating"
    assert monitor.sweep() == 0

    await monitor.drain()

    assert entry.connection.rollbacks == 1
    assert fake_pool.release_count(entry.connection) == 1


@pytest.mark.asyncio
async def test_slow_rollback_does_not_delay_others(fake_pool, registry):
    slow = _register(fake_pool, registry, "tx_slow", rollback_delay=0.5)
    fast = _register(fake_pool, registry, "tx_fast")
    monitor = TransactionMonitor(registry, timeout_ms=0, interval_ms=50)
    await asyncio.sleep(0.001)

    assert monitor.sweep() == 2
    await asyncio.sleep(0.1)

    assert fast.released
    assert not registry.has("tx_fast")
    assert not slow.released

    await monitor.drain()
    assert slow.released


@pytest.mark.asyncio
async def test_explicit_commit_racing_the_monitor(fake_pool, registry):
    service = TransactionService(registry, max_concurrent=5)
    monitor = TransactionMonitor(registry, timeout_ms=0, interval_ms=50)
    entry = _register(fake_pool, registry, "tx_1", commit_delay=0.05)
    await asyncio.sleep(0.001)

    commit = asyncio.create_task(service.commit("tx_1"))
    await asyncio.sleep(0.01)
    monitor.sweep()

    result = await commit
    await monitor.drain()

    assert result["status"] == "committed"
    assert entry.connection.commits == 1
    assert entry.connection.rollbacks == 0
    assert fake_pool.release_count(entry.connection) == 1


@pytest.mark.asyncio
async def test_monitor_wins_the_race(fake_pool, registry):
    service = TransactionService(registry, max_concurrent=5)
    monitor = TransactionMonitor(registry, timeout_ms=0, interval_ms=50)
    entry = _register(fake_pool, registry, "tx_1", rollback_delay=0.05)
    await asyncio.sleep(0.001)

    monitor.sweep()
    await asyncio.sleep(0.01)

    with pytest.raises(AlreadyReleased):
        await service.commit("tx_1")

    await monitor.drain()
    assert entry.connection.commits == 0
    assert entry.connection.rollbacks == 1
    assert fake_pool.release_count(entry.connection) == 1


@pytest.mark.asyncio
async def test_disabled_monitor_does_not_start(registry):
    monitor = TransactionMonitor(registry, enabled=False)
    monitor.start()
    assert not monitor.running


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_cancels(registry):
    monitor = TransactionMonitor(registry, interval_ms=50, enabled=True)
    monitor.start()
    task = monitor._task
    monitor.start()
    assert monitor._task is task
    await monitor.stop()
    assert not monitor.running


@pytest.mark.asyncio
async def test_drain_resolves_everything_even_when_a_rollback_fails(fake_pool, registry):
    ok = _register(fake_pool, registry, "tx_ok")
    broken = _register(
        fake_pool, registry, "tx_broken",
        fail_rollback=psycopg2.OperationalError("server closed the connection"),
    )
    monitor = TransactionMonitor(registry, timeout_ms=60_000, interval_ms=50, enabled=True)
    monitor.start()

    await monitor.drain()

    assert registry.count == 0
    assert not monitor.running
    assert ok.released and broken.released
    assert ok.connection.rollbacks == 1
    assert broken.connection.rollbacks == 1
    assert fake_pool.in_use == 0


@pytest.mark.asyncio
async def test_drain_skips_rollback_for_released_entries(fake_pool, registry):
    entry = _register(fake_pool, registry, "tx_1")
    registry.release(entry)
    # Simulate a stale entry left behind
    registry._transactions["tx_1"] = entry

    await TransactionMonitor(registry).drain()

    assert registry.count == 0
    assert entry.connection.rollbacks == 0
    assert fake_pool.release_count(entry.connection) == 1
