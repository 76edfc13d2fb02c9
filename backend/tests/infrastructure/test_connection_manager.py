"""Connection Manager — tests for connect-or-reuse, teardown and single-flight.

Tests cover:
    - Cache hit: a second call after success does not reconnect
    - Failed connects are not cached and leave the slot DISCONNECTED
    - Reconnect after a stale report tears down the old client exactly once, first
    - Concurrent cold-start callers share one connect
    - disconnect() idempotency, including during an in-flight connect
"""

import asyncio

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from app.core.connection_state import ConnectionOptions, ReadyState
from app.core.errors import DatabaseConnectionError
from app.infrastructure.database import ConnectionManager
from tests.fake_mongo import FakeClientFactory, topology_event

URI = "mongodb://fake-host:27017/auth_test"


def _manager(factory, uri=URI):
    return ConnectionManager(uri, "auth", ConnectionOptions(), client_factory=factory)


# -- Cache hit -----------------------------------------------------------------

async def test_first_call_connects_and_marks_connected(fake_mongo):
    manager = _manager(fake_mongo)
    client = await manager.ensure_connected()
    assert client is fake_mongo.clients[0]
    assert manager.state is ReadyState.CONNECTED
    assert client.commands == ["ping"]


async def test_second_call_reuses_cached_client(fake_mongo):
    manager = _manager(fake_mongo)
    first = await manager.ensure_connected()
    second = await manager.ensure_connected()
    assert first is second
    assert fake_mongo.connect_count == 1
    assert first.commands == ["ping"]


async def test_client_built_with_reliability_options(fake_mongo):
    manager = _manager(fake_mongo)
    client = await manager.ensure_connected()
    assert client.uri == URI
    assert client.kwargs["serverSelectionTimeoutMS"] == 10_000
    assert client.kwargs["socketTimeoutMS"] == 45_000
    assert client.kwargs["minPoolSize"] == 5
    assert client.kwargs["maxPoolSize"] == 10
    assert client.kwargs["maxIdleTimeMS"] == 30_000
    assert len(client.kwargs["event_listeners"]) == 1


async def test_from_settings_uses_configured_options(make_settings, fake_mongo):
    settings = make_settings(max_pool_size=3, server_selection_timeout_ms=500)
    manager = ConnectionManager.from_settings(settings, client_factory=fake_mongo)
    client = await manager.ensure_connected()
    assert client.kwargs["maxPoolSize"] == 3
    assert client.kwargs["serverSelectionTimeoutMS"] == 500


# -- Failure -------------------------------------------------------------------

async def test_failed_connect_raises_with_cause_and_is_not_cached():
    factory = FakeClientFactory(ping_error=ServerSelectionTimeoutError("no servers"))
    manager = _manager(factory)

    with pytest.raises(DatabaseConnectionError) as exc_info:
        await manager.ensure_connected()

    assert "no servers" in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, ServerSelectionTimeoutError)
    assert manager.state is ReadyState.DISCONNECTED
    assert not manager.is_connected
    assert factory.clients[0].closed


async def test_next_call_after_failure_attempts_fresh_connect():
    factory = FakeClientFactory(ping_error=ServerSelectionTimeoutError("down"))
    manager = _manager(factory)
    with pytest.raises(DatabaseConnectionError):
        await manager.ensure_connected()

    factory.ping_error = None
    client = await manager.ensure_connected()

    assert factory.connect_count == 2
    assert client is factory.clients[1]
    assert manager.state is ReadyState.CONNECTED


async def test_missing_uri_fails_without_creating_client(fake_mongo):
    manager = _manager(fake_mongo, uri=None)
    with pytest.raises(DatabaseConnectionError, match="MONGODB_URI is not set"):
        await manager.ensure_connected()
    assert fake_mongo.connect_count == 0
    assert manager.state is ReadyState.DISCONNECTED


# -- Reconnect -----------------------------------------------------------------

async def test_stale_topology_forces_reconnect_with_single_teardown(fake_mongo):
    manager = _manager(fake_mongo)
    old = await manager.ensure_connected()

    old.watcher.description_changed(topology_event(readable=False))
    assert manager.state is ReadyState.DISCONNECTED

    new = await manager.ensure_connected()

    assert new is not old
    assert old.closed
    assert fake_mongo.close_count == 1
    kinds = [kind for kind, _ in fake_mongo.events]
    assert kinds == ["create", "close", "create"]


async def test_readable_topology_does_not_downgrade(fake_mongo):
    manager = _manager(fake_mongo)
    client = await manager.ensure_connected()
    client.watcher.description_changed(topology_event(readable=True))
    assert manager.state is ReadyState.CONNECTED


async def test_events_from_replaced_client_are_ignored(fake_mongo):
    manager = _manager(fake_mongo)
    old = await manager.ensure_connected()
    old.watcher.description_changed(topology_event(readable=False))
    await manager.ensure_connected()

    old.watcher.description_changed(topology_event(readable=False))

    assert manager.state is ReadyState.CONNECTED


async def test_failed_ping_marks_stale(fake_mongo):
    manager = _manager(fake_mongo)
    await manager.ensure_connected()

    fake_mongo.ping_error = ServerSelectionTimeoutError("gone")
    with pytest.raises(DatabaseConnectionError, match="gone"):
        await manager.ping()

    assert manager.state is ReadyState.DISCONNECTED


async def test_ping_without_connection_fails(fake_mongo):
    manager = _manager(fake_mongo)
    with pytest.raises(DatabaseConnectionError):
        await manager.ping()


# -- Single-flight -------------------------------------------------------------

async def test_concurrent_cold_start_shares_one_connect():
    factory = FakeClientFactory(ping_delay=0.01)
    manager = _manager(factory)

    results = await asyncio.gather(*(manager.ensure_connected() for _ in range(5)))

    assert factory.connect_count == 1
    assert all(r is results[0] for r in results)


async def test_concurrent_callers_all_see_failure():
    factory = FakeClientFactory(
        ping_error=ServerSelectionTimeoutError("down"), ping_delay=0.01,
    )
    manager = _manager(factory)

    results = await asyncio.gather(
        *(manager.ensure_connected() for _ in range(3)), return_exceptions=True,
    )

    assert factory.connect_count == 1
    assert all(isinstance(r, DatabaseConnectionError) for r in results)


# -- Disconnect ----------------------------------------------------------------

async def test_disconnect_when_never_connected_is_noop(fake_mongo):
    manager = _manager(fake_mongo)
    await manager.disconnect()
    await manager.disconnect()
    assert manager.state is ReadyState.DISCONNECTED
    assert fake_mongo.close_count == 0


async def test_disconnect_closes_once(fake_mongo):
    manager = _manager(fake_mongo)
    client = await manager.ensure_connected()

    await manager.disconnect()
    await manager.disconnect()

    assert client.closed
    assert fake_mongo.close_count == 1
    assert manager.state is ReadyState.DISCONNECTED


async def test_disconnect_cancels_in_flight_connect():
    factory = FakeClientFactory(ping_delay=1.0)
    manager = _manager(factory)
    waiter = asyncio.create_task(manager.ensure_connected())
    await asyncio.sleep(0.01)
    assert manager.state is ReadyState.CONNECTING

    await manager.disconnect()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert manager.state is ReadyState.DISCONNECTED
    assert factory.clients[0].closed
    assert not manager.is_connected


async def test_database_uses_default_name(fake_mongo):
    manager = _manager(fake_mongo)
    await manager.ensure_connected()
    assert manager.database.name == "auth"


async def test_database_requires_connection(fake_mongo):
    manager = _manager(fake_mongo)
    with pytest.raises(DatabaseConnectionError):
        manager.database
