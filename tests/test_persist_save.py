from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from pypersist import PersistEvent, SerializationError, StorageWriteError, create_persist

P = "reduxPersist:"


async def _ready(store, reducer, storage, config=None, **kwargs: Any):
    persist = create_persist(store, reducer, config, storage=storage, **kwargs)
    await persist.wait_restored()
    await persist.drain()
    storage.set_calls.clear()
    return persist


@pytest.mark.asyncio
async def test_saving_same_state_twice_writes_once(storage, make_store) -> None:
    store, reducer = make_store({"a": 1, "b": 2})
    persist = await _ready(store, reducer, storage)

    store.dispatch({"type": "set", "key": "a", "value": 5})
    await persist.drain()
    store.dispatch({"type": "set", "key": "a", "value": 5})
    store.dispatch({"type": "touch"})
    await persist.drain()

    assert storage.set_calls == [[(f"{P}a", "5")]]


@pytest.mark.asyncio
async def test_whitelist_limits_every_storage_call(storage, make_store) -> None:
    store, reducer = make_store({"a": 1, "b": 2, "c": 3})
    persist = create_persist(store, reducer, {"whitelist": ["a", "b"]}, storage=storage)
    await persist.wait_restored()

    store.dispatch({"type": "set", "key": "c", "value": 30})
    store.dispatch({"type": "set", "key": "a", "value": 10})
    await persist.drain()

    assert storage.touched_keys() == {f"{P}a", f"{P}b"}
    assert storage.data == {f"{P}a": "10", f"{P}b": "2"}


@pytest.mark.asyncio
async def test_blacklist_excludes_fields(storage, make_store) -> None:
    store, reducer = make_store({"a": 1, "token": "secret"})
    persist = create_persist(store, reducer, {"blacklist": ["token"]}, storage=storage)
    await persist.wait_restored()

    store.dispatch({"type": "set", "key": "token", "value": "other"})
    await persist.drain()

    assert storage.touched_keys() == {f"{P}a"}


@pytest.mark.asyncio
async def test_save_listeners_called_in_order_with_changed_fields(storage, make_store) -> None:
    store, reducer = make_store({"a": 1, "b": 2})
    persist = await _ready(store, reducer, storage)
    calls: list[tuple[str, dict[str, Any]]] = []

    def l1(payload: dict[str, Any]) -> None:
        calls.append(("L1", payload))

    def l2(payload: dict[str, Any]) -> None:
        calls.append(("L2", payload))

    persist.add_event_listener(PersistEvent.SAVE, l1)
    persist.add_event_listener(PersistEvent.SAVE, l2)

    store.dispatch({"type": "set", "key": "a", "value": {"nested": [1, 2]}})
    await persist.drain()

    assert calls == [("L1", {"a": {"nested": [1, 2]}}), ("L2", {"a": {"nested": [1, 2]}})]

    calls.clear()
    persist.remove_event_listener(PersistEvent.SAVE, l1)
    store.dispatch({"type": "set", "key": "b", "value": 3})
    await persist.drain()

    assert calls == [("L2", {"b": 3})]


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(storage, make_store, caplog) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage)
    seen: list[dict[str, Any]] = []

    def broken(_payload: dict[str, Any]) -> None:
        raise RuntimeError("listener bug")

    persist.add_event_listener("save", broken)
    persist.add_event_listener("save", seen.append)

    with caplog.at_level(logging.ERROR):
        store.dispatch({"type": "set", "key": "a", "value": 2})
        await persist.drain()

    assert seen == [{"a": 2}]
    assert "listener bug" in caplog.text
    assert storage.data[f"{P}a"] == "2"


@pytest.mark.asyncio
async def test_write_failure_is_not_retried_by_default(storage, make_store) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage)
    errors: list[Exception] = []
    saved: list[dict[str, Any]] = []
    persist.add_event_listener(PersistEvent.ERROR, errors.append)
    persist.add_event_listener(PersistEvent.SAVE, saved.append)

    storage.fail_set = True
    store.dispatch({"type": "set", "key": "a", "value": 5})
    await persist.drain()

    assert saved == []
    assert len(errors) == 1
    assert isinstance(errors[0], StorageWriteError)
    assert errors[0].keys == (f"{P}a",)
    assert persist.last_persisted[f"{P}a"] == "5"

    storage.fail_set = False
    store.dispatch({"type": "touch"})
    await persist.drain()

    assert len(storage.set_calls) == 1
    assert storage.data[f"{P}a"] == "1"


@pytest.mark.asyncio
async def test_rollback_on_failure_retries_next_save(storage, make_store) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage, {"rollback_on_failure": True})

    storage.fail_set = True
    store.dispatch({"type": "set", "key": "a", "value": 5})
    await persist.drain()
    assert persist.last_persisted[f"{P}a"] == "1"

    storage.fail_set = False
    store.dispatch({"type": "touch"})
    await persist.drain()

    assert len(storage.set_calls) == 2
    assert storage.data[f"{P}a"] == "5"


@pytest.mark.asyncio
async def test_rollback_keeps_newer_baseline(storage, make_store) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage, {"rollback_on_failure": True})

    storage.write_gate = asyncio.Event()
    storage.fail_set = True
    store.dispatch({"type": "set", "key": "a", "value": 5})
    store.dispatch({"type": "set", "key": "a", "value": 6})
    await asyncio.sleep(0)
    storage.write_gate.set()
    await persist.drain()

    # Both writes failed: the baseline falls back to the last acknowledged value.
    assert persist.last_persisted[f"{P}a"] == "1"

    storage.fail_set = False
    store.dispatch({"type": "touch"})
    await persist.drain()
    assert storage.data[f"{P}a"] == "6"


@pytest.mark.asyncio
async def test_rollback_skips_keys_moved_on_by_newer_save(storage, make_store) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage, {"rollback_on_failure": True})

    first_gate = asyncio.Event()
    storage.write_gate = first_gate
    store.dispatch({"type": "set", "key": "a", "value": 5})
    await asyncio.sleep(0)
    # The first write is parked on its gate; the next one goes straight through.
    storage.write_gate = None
    store.dispatch({"type": "set", "key": "a", "value": 6})
    await asyncio.sleep(0)
    assert storage.data[f"{P}a"] == "6"

    storage.fail_set = True
    first_gate.set()
    await persist.drain()

    assert persist.last_persisted[f"{P}a"] == "6"


@pytest.mark.asyncio
async def test_overlapping_saves_each_write(storage, make_store) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage)

    storage.write_gate = asyncio.Event()
    for value in (2, 3, 4):
        store.dispatch({"type": "set", "key": "a", "value": value})
    storage.write_gate.set()
    await persist.drain()

    assert [call[0][1] for call in storage.set_calls] == ["2", "3", "4"]


@pytest.mark.asyncio
async def test_coalesced_saves_collapse_to_latest(storage, make_store) -> None:
    store, reducer = make_store({"a": 1})
    persist = await _ready(store, reducer, storage, {"coalesce_saves": True})

    storage.write_gate = asyncio.Event()
    for value in (2, 3, 4):
        store.dispatch({"type": "set", "key": "a", "value": value})
    storage.write_gate.set()
    await persist.drain()

    assert [call[0][1] for call in storage.set_calls] == ["2", "4"]
    assert storage.data[f"{P}a"] == "4"

    store.dispatch({"type": "set", "key": "a", "value": 5})
    await persist.drain()
    assert storage.data[f"{P}a"] == "5"


@pytest.mark.asyncio
async def test_unserializable_field_is_skipped(storage, make_store) -> None:
    store, reducer = make_store({"a": 1, "b": 2})
    persist = await _ready(store, reducer, storage)
    errors: list[Exception] = []
    persist.add_event_listener(PersistEvent.ERROR, errors.append)

    store.dispatch({"type": "set", "key": "a", "value": object()})
    store.dispatch({"type": "set", "key": "b", "value": 3})
    await persist.drain()

    assert storage.data[f"{P}b"] == "3"
    assert storage.data[f"{P}a"] == "1"
    assert errors
    assert all(isinstance(err, SerializationError) and err.key == "a" for err in errors)


@pytest.mark.asyncio
async def test_trace_lines_only_when_log_enabled(storage, make_store, caplog) -> None:
    logger = logging.getLogger("tests.persist")

    with caplog.at_level(logging.INFO, logger="tests.persist"):
        store, reducer = make_store({"a": 1})
        persist = await _ready(store, reducer, storage, logger=logger)
        store.dispatch({"type": "set", "key": "a", "value": 2})
        await persist.drain()
    assert "Persist:" not in caplog.text

    caplog.clear()
    with caplog.at_level(logging.INFO, logger="tests.persist"):
        store, reducer = make_store({"a": 1, "password": "hunter2"})
        persist = await _ready(store, reducer, storage, {"log": True}, logger=logger)
        store.dispatch({"type": "set", "key": "a", "value": 3})
        await persist.drain()

    assert "Persist: >> restore" in caplog.text
    assert "Persist: << save" in caplog.text
    assert "hunter2" not in caplog.text
    assert all(record.name == "tests.persist" for record in caplog.records)
