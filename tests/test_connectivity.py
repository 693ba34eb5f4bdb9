"""Tests for the connection monitor: retry counting, coalescing, broadcasts, scheduling."""

import asyncio

import pytest

from studymate.connectivity import ConnectionMonitor


def _monitor(store, probe, **kwargs):
    return ConnectionMonitor(store, probe=probe, **kwargs)


# -- Subscribers --

def test_subscribe_delivers_current_status_immediately(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls())
    seen = []
    monitor.subscribe(seen.append)

    assert len(seen) == 1
    status = monitor.get_status()
    assert seen[0] == {k: status[k] for k in ("is_online", "is_checking", "retry_count", "last_check")}
    assert seen[0] == {"is_online": False, "is_checking": False, "retry_count": 0, "last_check": None}


def test_unsubscribe_unknown_handler_is_noop(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls())
    monitor.unsubscribe(lambda s: None)


@pytest.mark.asyncio
async def test_broadcast_order_for_one_probe(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    seen = []
    monitor.subscribe(seen.append)

    assert await monitor.check_connection() is True
    assert [s["is_checking"] for s in seen] == [False, True, False]
    assert seen[-1]["is_online"] is True
    assert seen[1]["last_check"] is not None


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    seen = []

    def broken(status):
        raise RuntimeError("boom")

    monitor.subscribe(broken)
    monitor.subscribe(seen.append)
    assert await monitor.check_connection() is True
    assert seen[-1]["is_online"] is True


@pytest.mark.asyncio
async def test_unsubscribed_handler_gets_nothing(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    seen = []
    monitor.subscribe(seen.append)
    monitor.unsubscribe(seen.append)
    await monitor.check_connection()
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_duplicate_subscribe_delivers_once_per_broadcast(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    seen = []
    monitor.subscribe(seen.append)
    monitor.subscribe(seen.append)
    seen.clear()
    await monitor.check_connection()
    assert len(seen) == 2  # start + end


# -- Retry counting --

@pytest.mark.asyncio
async def test_retry_count_saturates_at_max(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(False))
    for expected in range(1, 6):
        assert await monitor.check_connection() is False
        assert monitor.get_status()["retry_count"] == expected

    await monitor.check_connection()
    status = monitor.get_status()
    assert status["retry_count"] == 5
    assert status["is_online"] is False


@pytest.mark.asyncio
async def test_success_resets_retry_count(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(False, False, False, True)
    monitor = _monitor(tmp_store, probe)
    for _ in range(3):
        await monitor.check_connection()
    assert monitor.get_status()["retry_count"] == 3

    assert await monitor.check_connection() is True
    assert monitor.get_status()["retry_count"] == 0


@pytest.mark.asyncio
async def test_probe_exception_counts_as_failure(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(OSError("unreachable")))
    assert await monitor.check_connection() is False
    status = monitor.get_status()
    assert status["retry_count"] == 1
    assert status["is_checking"] is False


@pytest.mark.asyncio
async def test_status_is_persisted_after_probe(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(False))
    await monitor.check_connection()
    stored = tmp_store.get_server_status()
    assert stored["is_online"] is False
    assert stored["retry_count"] == 1
    assert stored["last_check"] == monitor.get_status()["last_check"]


def test_backoff_uses_current_retry_count(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(), base_delay=1.0, max_delay=30.0)
    assert 1.0 <= monitor.get_backoff_delay() <= 1.1
    assert 8.0 <= monitor.get_backoff_delay(3) <= 8.8


# -- Coalescing and concurrency --

@pytest.mark.asyncio
async def test_concurrent_checks_are_coalesced(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(True, gated=True)
    monitor = _monitor(tmp_store, probe)

    first = asyncio.ensure_future(monitor.check_connection())
    await asyncio.sleep(0)
    assert monitor.get_status()["is_checking"] is True

    # Returns the cached value right away, without a second probe
    assert await monitor.check_connection() is False
    probe.release()
    assert await first is True
    assert probe.calls == 1


@pytest.mark.asyncio
async def test_gathered_checks_issue_one_probe(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(True)
    monitor = _monitor(tmp_store, probe)
    results = await asyncio.gather(monitor.check_connection(), monitor.check_connection())
    assert probe.calls == 1
    assert results == [True, False]


@pytest.mark.asyncio
async def test_forced_check_runs_alongside(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(True, gated=True)
    monitor = _monitor(tmp_store, probe)

    first = asyncio.ensure_future(monitor.check_connection())
    await asyncio.sleep(0)
    second = asyncio.ensure_future(monitor.check_connection(force=True))
    await asyncio.sleep(0)
    assert probe.calls == 2

    probe.release()
    await asyncio.gather(first, second)
    status = monitor.get_status()
    assert status["is_checking"] is False
    assert status["is_online"] is True


@pytest.mark.asyncio
async def test_stale_probe_result_is_discarded(tmp_store):
    slow_gate = asyncio.Event()

    class TwoProbes:
        def __init__(self):
            self.calls = 0

        async def __call__(self):
            self.calls += 1
            if self.calls == 1:
                await slow_gate.wait()
                return True  # old, slow result
            return False  # newer, fast result

    monitor = _monitor(tmp_store, TwoProbes())
    slow = asyncio.ensure_future(monitor.check_connection())
    await asyncio.sleep(0)

    assert await monitor.check_connection(force=True) is False
    assert monitor.get_status()["is_checking"] is True  # slow probe still in flight

    slow_gate.set()
    await slow
    status = monitor.get_status()
    assert status["is_online"] is False
    assert status["retry_count"] == 1
    assert status["is_checking"] is False


# -- Scheduling --

@pytest.mark.asyncio
async def test_periodic_checks_probe_immediately_and_repeat(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(True)
    monitor = _monitor(tmp_store, probe)

    monitor.start_periodic_checks(0.01)
    await asyncio.sleep(0)
    assert probe.calls >= 1

    await asyncio.sleep(0.05)
    assert probe.calls >= 3
    assert monitor.is_running

    monitor.stop_periodic_checks()
    await asyncio.sleep(0)
    calls = probe.calls
    await asyncio.sleep(0.03)
    assert probe.calls == calls
    assert not monitor.is_running
    await monitor.close()


@pytest.mark.asyncio
async def test_restart_replaces_schedule(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    monitor.start_periodic_checks(10)
    first_task = monitor._periodic_task
    monitor.start_periodic_checks(10)
    await asyncio.sleep(0)

    assert first_task.cancelled()
    assert monitor._periodic_task is not first_task
    await monitor.close()


@pytest.mark.asyncio
async def test_stop_is_idempotent(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    monitor.stop_periodic_checks()
    monitor.start_periodic_checks(10)
    monitor.stop_periodic_checks()
    monitor.stop_periodic_checks()
    assert not monitor.is_running
    await monitor.close()


@pytest.mark.asyncio
async def test_stop_does_not_cancel_in_flight_probe(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(True, gated=True)
    monitor = _monitor(tmp_store, probe)
    seen = []
    monitor.subscribe(seen.append)

    monitor.start_periodic_checks(10)
    await asyncio.sleep(0)
    assert probe.calls == 1

    monitor.stop_periodic_checks()
    probe.release()
    for _ in range(5):
        await asyncio.sleep(0)

    assert monitor.get_status()["is_online"] is True
    assert seen[-1]["is_checking"] is False
    await monitor.close()


@pytest.mark.asyncio
async def test_stop_from_inside_subscriber(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(False))

    def stop_when_offline(status):
        if not status["is_checking"] and status["retry_count"] > 0:
            monitor.stop_periodic_checks()

    monitor.subscribe(stop_when_offline)
    monitor.start_periodic_checks(0.01)
    await asyncio.sleep(0.03)
    assert not monitor.is_running
    await monitor.close()


# -- Lifecycle --

@pytest.mark.asyncio
async def test_initialize_loads_persisted_status(tmp_store, fake_probe_cls):
    tmp_store.set_server_status({"is_online": True, "retry_count": 2, "last_check": "2026-01-01T00:00:00+00:00"})
    probe = fake_probe_cls(True, gated=True)
    monitor = _monitor(tmp_store, probe)

    await monitor.initialize()
    status = monitor.get_status()
    assert status["is_online"] is True
    assert status["retry_count"] == 2
    assert status["last_check"] == "2026-01-01T00:00:00+00:00"
    assert monitor.is_running

    probe.release()
    await monitor.close()


@pytest.mark.asyncio
async def test_explicit_zero_interval_is_honoured(tmp_store, fake_probe_cls):
    probe = fake_probe_cls(True)
    monitor = _monitor(tmp_store, probe, check_interval=30.0)

    monitor.start_periodic_checks(0)
    for _ in range(10):
        await asyncio.sleep(0)
    assert probe.calls >= 2
    await monitor.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("stored, expected", [(-4, 0), ("lots", 0), (None, 0), (99, 5)])
async def test_initialize_clamps_persisted_retry_count(tmp_store, fake_probe_cls, stored, expected):
    tmp_store.set("server_status", {"is_online": False, "retry_count": stored, "last_check": None})
    probe = fake_probe_cls(False, gated=True)
    monitor = _monitor(tmp_store, probe, max_retries=5)

    await monitor.initialize()
    assert monitor.get_status()["retry_count"] == expected

    probe.release()
    await monitor.close()


@pytest.mark.asyncio
async def test_cleanup_clears_subscribers(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    seen = []
    monitor.subscribe(seen.append)
    monitor.start_periodic_checks(10)
    monitor.cleanup()
    seen.clear()

    await monitor.check_connection()
    assert seen == []
    assert not monitor.is_running
    await monitor.close()


@pytest.mark.asyncio
async def test_close_releases_owned_probe(tmp_store):
    monitor = ConnectionMonitor(tmp_store, health_url="http://127.0.0.1:9/health")
    await monitor.close()
    assert monitor._probe.client.is_closed


# -- Demo mode --

@pytest.mark.asyncio
async def test_demo_mode_toggle_leaves_connection_state(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(False))
    await monitor.check_connection()
    before = monitor.get_status()

    monitor.enable_demo_mode()
    status = monitor.get_status()
    assert tmp_store.is_demo_mode() is True
    assert status["is_demo_mode"] is True
    assert status["retry_count"] == before["retry_count"]
    assert status["is_online"] == before["is_online"]

    monitor.disable_demo_mode()
    status = monitor.get_status()
    assert tmp_store.is_demo_mode() is False
    assert status["is_demo_mode"] is False
    assert status["retry_count"] == before["retry_count"]


@pytest.mark.asyncio
async def test_get_status_is_a_copy(tmp_store, fake_probe_cls):
    monitor = _monitor(tmp_store, fake_probe_cls(True))
    status = monitor.get_status()
    status["retry_count"] = 99
    assert monitor.get_status()["retry_count"] == 0
    assert status["max_retries"] == 5
