# ZenSync Engine Tests
# Tests for incremental sync, full sync, push and the sync properties

import threading

import pytest

from zensync.config import ZenSyncConfig
from zensync.config.schema import ConcurrencyPolicy
from zensync.errors import MalformedResponse, StorageFailure, SyncInProgress, TransportFailure
from zensync.models import Account, Transaction
from zensync.sync.changes import ChangeKind
from zensync.sync.engine import SyncEngine, SyncMode
from zensync.sync.file_store import FileSnapshotStore
from zensync.sync.store import MemorySnapshotStore, Snapshot, Tombstone

from conftest import FailingStore, FakeTransport


def _engine(store=None, transport=None, clock=None, **kwargs) -> SyncEngine:
    extra = {"clock": clock} if clock is not None else {}
    return SyncEngine(store or MemorySnapshotStore(), transport or FakeTransport(), **extra, **kwargs)


def _live_ids(snapshot: Snapshot, entity_type: str) -> set[str]:
    return set(snapshot.keys(entity_type))


class TestScenarios:
    """End-to-end sync scenarios."""

    def test_first_sync_populates_snapshot(self):
        """Checkpoint 0 plus one account advances to 100 with the account cached."""
        transport = FakeTransport({"serverTimestamp": 100, "account": [{"id": "a1", "title": "Cash"}]})
        engine = _engine(transport=transport)

        result = engine.incremental_sync()

        assert transport.last_request["serverTimestamp"] == 0
        assert engine.store.get_checkpoint() == 100
        assert engine.store.read_snapshot().get("account", "a1").title == "Cash"
        assert result.advanced
        assert result.upserted == 1

    def test_server_deletion_removes_record(self):
        """A deletion record removes a cached transaction without a conflict."""
        store = MemorySnapshotStore()
        store.apply_batch([Transaction.from_wire({"id": "t1", "outcome": 5})], [], 100)
        transport = FakeTransport(
            {"serverTimestamp": 150, "deletion": [{"id": "t1", "object": "transaction", "stamp": 150}]}
        )

        result = _engine(store, transport).incremental_sync()

        snapshot = store.read_snapshot()
        assert snapshot.get("transaction", "t1") is None
        assert snapshot.has_tombstone("transaction", "t1")
        assert result.deleted == 1
        assert transport.last_request["serverTimestamp"] == 100

    def test_create_resolves_temp_id(self):
        """A staged create correlated with the echoed record resolves its temp id."""
        transport = FakeTransport(
            {"serverTimestamp": 200, "account": [{"id": "a9", "title": "Savings", "type": "deposit", "balance": 0}]}
        )
        engine = _engine(transport=transport)

        temp_id = engine.create("account", {"title": "Savings", "kind": "deposit", "balance": 0})
        assert temp_id == "tmp-1"

        result = engine.incremental_sync()

        assert engine.changes.resolve("tmp-1") == "a9"
        assert engine.changes.is_empty
        assert result.resolved == {"tmp-1": "a9"}
        assert result.confirmed == 1

    def test_concurrent_sync_rejected(self):
        """A second sync while one is in flight fails; the first completes."""
        entered = threading.Event()
        release = threading.Event()

        def slow_response(body):
            entered.set()
            release.wait(5)
            return {"serverTimestamp": 100, "account": [{"id": "a1"}]}

        engine = _engine(transport=FakeTransport(slow_response))
        results = []
        worker = threading.Thread(target=lambda: results.append(engine.incremental_sync()))
        worker.start()
        assert entered.wait(5)

        with pytest.raises(SyncInProgress):
            engine.incremental_sync()

        release.set()
        worker.join(5)
        assert results[0].checkpoint_after == 100
        assert engine.store.get_checkpoint() == 100


class TestSyncProperties:
    """Idempotence, monotonicity, atomicity, exclusivity and determinism."""

    def test_idempotent_merge(self, sample_response: dict):
        engine = _engine(transport=FakeTransport(sample_response, sample_response))

        engine.incremental_sync()
        once = engine.store.read_snapshot()
        engine.incremental_sync()

        assert engine.store.read_snapshot() == once
        assert engine.store.get_checkpoint() == 100

    def test_checkpoint_monotonic(self):
        transport = FakeTransport(
            {"serverTimestamp": 100},
            {"serverTimestamp": 100},
            {"serverTimestamp": 250, "tag": [{"id": "g1"}]},
        )
        engine = _engine(transport=transport)

        seen = [engine.incremental_sync().checkpoint_after for _ in range(3)]
        assert seen == sorted(seen) == [100, 100, 250]

    def test_backwards_checkpoint_rejected(self):
        store = MemorySnapshotStore()
        store.apply_batch([], [], 300)
        engine = _engine(store, FakeTransport({"serverTimestamp": 200, "account": [{"id": "a1"}]}))

        with pytest.raises(MalformedResponse):
            engine.incremental_sync()

        assert store.get_checkpoint() == 300
        assert store.read_snapshot().get("account", "a1") is None

    def test_failed_commit_changes_nothing(self, sample_response: dict):
        store = FailingStore()
        store.apply_batch([Account.from_wire({"id": "a0"})], [], 50)
        before = store.read_snapshot()
        engine = _engine(store, FakeTransport(sample_response))
        engine.update("account", "a0", {"title": "Renamed"})

        store.fail = True
        with pytest.raises(StorageFailure):
            engine.incremental_sync()

        assert store.read_snapshot() == before
        assert store.get_checkpoint() == 50
        assert len(engine.changes) == 1

    def test_transport_failure_changes_nothing(self):
        store = MemorySnapshotStore()
        engine = _engine(store, FakeTransport(TransportFailure("connection reset")))
        engine.delete("transaction", "t1")

        with pytest.raises(TransportFailure):
            engine.incremental_sync()

        assert store.get_checkpoint() == 0
        assert len(engine.changes) == 1

    def test_tombstone_exclusivity(self, sample_response: dict):
        transport = FakeTransport(
            sample_response,
            {"serverTimestamp": 150, "deletion": [{"id": "t1", "object": "transaction", "stamp": 150}]},
            {"serverTimestamp": 200, "transaction": [{"id": "t1", "outcome": 1}]},
        )
        engine = _engine(transport=transport)

        for _ in range(3):
            engine.incremental_sync()
            snapshot = engine.store.read_snapshot()
            for entity_type in snapshot.types():
                for key in snapshot.keys(entity_type):
                    assert not snapshot.has_tombstone(entity_type, key)

        assert engine.store.read_snapshot().get("transaction", "t1") is not None

    def test_full_sync_determinism(self):
        listing = {"serverTimestamp": 500, "account": [{"id": "a1", "title": "Cash"}, {"id": "a2"}]}

        empty = _engine(transport=FakeTransport(listing))
        stale_store = MemorySnapshotStore()
        stale_store.apply_batch(
            [Account.from_wire({"id": "a1", "title": "Old"}), Account.from_wire({"id": "a3"})],
            [Tombstone("account", "a2", 10)],
            400,
        )
        stale = _engine(stale_store, FakeTransport(listing))

        empty.full_sync()
        stale.full_sync()

        def accounts(engine):
            return sorted((r.to_wire() for r in engine.store.read_snapshot().records("account")), key=str)

        assert accounts(empty) == accounts(stale)
        assert _live_ids(stale_store.read_snapshot(), "account") == {"a1", "a2"}


class TestIncrementalSync:
    """Tests for request building and reconciliation."""

    def test_request_carries_changes(self, clock, sample_response: dict):
        store = MemorySnapshotStore()
        engine = _engine(store, FakeTransport(sample_response, {"serverTimestamp": 120}), clock=clock)
        engine.incremental_sync()

        engine.create("tag", {"title": "Travel"})
        engine.update("account", "a1", {"title": "Wallet"})
        engine.delete("transaction", "t2")
        engine.incremental_sync()

        body = engine.transport.last_request
        assert body["serverTimestamp"] == 100
        assert body["currentClientTimestamp"] == int(clock.now)
        assert body["tag"] == [{"title": "Travel", "changed": int(clock.now), "user": 7}]
        assert body["account"][0]["id"] == "a1"
        assert body["account"][0]["title"] == "Wallet"
        assert body["account"][0]["balance"] == 1500.0
        assert body["deletion"] == [{"id": "t2", "object": "transaction", "stamp": int(clock.now), "user": 7}]

    def test_unechoed_changes_stay_pending(self):
        engine = _engine(transport=FakeTransport({"serverTimestamp": 100}))
        engine.create("tag", {"title": "Travel"})

        result = engine.incremental_sync()

        assert result.sent == 1
        assert result.pending == 1
        assert result.has_pending

    def test_change_staged_mid_sync_survives(self):
        store = MemorySnapshotStore()
        store.apply_batch([Account.from_wire({"id": "a1", "title": "Cash"})], [], 50)
        engine = _engine(store)

        def respond(body):
            engine.update("account", "a1", {"title": "Purse"})
            return {"serverTimestamp": 100, "account": [{"id": "a1", "title": "Wallet"}]}

        engine.transport.queue(respond)
        engine.update("account", "a1", {"title": "Wallet"})
        engine.incremental_sync()

        pending = engine.changes.pending()
        assert len(pending) == 1
        assert dict(pending[0].fields) == {"title": "Purse"}

    def test_delete_of_in_flight_create_reaches_server_id(self):
        """Deleting a temp id while its create is in flight deletes the created record next sync."""
        engine = _engine()

        def respond(body):
            engine.delete("account", "tmp-1")
            return {"serverTimestamp": 100, "account": [{"id": "a9", "title": "Savings"}]}

        engine.transport.queue(
            respond,
            {"serverTimestamp": 200, "deletion": [{"id": "a9", "object": "account", "stamp": 200}]},
        )
        engine.create("account", {"title": "Savings"})

        first = engine.incremental_sync()

        assert first.resolved == {"tmp-1": "a9"}
        assert first.pending == 1
        assert engine.changes.get("account", "a9").kind == ChangeKind.DELETE
        assert engine.changes.get("account", "tmp-1") is None

        engine.incremental_sync()

        assert [d["id"] for d in engine.transport.last_request["deletion"]] == ["a9"]
        assert "account" not in engine.transport.last_request
        assert engine.store.read_snapshot().get("account", "a9") is None
        assert engine.changes.is_empty

    def test_update_of_in_flight_create_becomes_update(self):
        """Renaming a temp id while its create is in flight updates the created record next sync."""
        engine = _engine()

        def respond(body):
            engine.update("account", "tmp-1", {"title": "Renamed"})
            return {"serverTimestamp": 100, "account": [{"id": "a9", "title": "Savings"}]}

        engine.transport.queue(respond, {"serverTimestamp": 200, "account": [{"id": "a9", "title": "Renamed"}]})
        engine.create("account", {"title": "Savings"})

        engine.incremental_sync()

        change = engine.changes.get("account", "a9")
        assert change.kind == ChangeKind.UPDATE
        assert dict(change.fields) == {"title": "Renamed"}

        engine.incremental_sync()

        sent = engine.transport.last_request["account"]
        assert len(sent) == 1
        assert sent[0]["id"] == "a9"
        assert sent[0]["title"] == "Renamed"
        assert engine.store.read_snapshot().get("account", "a9").title == "Renamed"
        assert engine.changes.is_empty

    def test_delete_of_in_flight_create_dropped_on_failure(self, caplog):
        engine = _engine()

        def fail(body):
            engine.delete("account", "tmp-1")
            raise TransportFailure("connection reset")

        engine.transport.queue(fail)
        engine.create("account", {"title": "Savings"})

        with caplog.at_level("WARNING"), pytest.raises(TransportFailure):
            engine.incremental_sync()

        assert engine.changes.is_empty
        assert "never confirmed" in caplog.text

    def test_ambiguous_echo_left_pending(self, caplog):
        engine = _engine(
            transport=FakeTransport(
                {"serverTimestamp": 100, "tag": [{"id": "g1", "title": "Food"}, {"id": "g2", "title": "Food"}]}
            )
        )
        engine.create("tag", {"title": "Food"})

        with caplog.at_level("WARNING"):
            result = engine.incremental_sync()

        assert result.ambiguous == 1
        assert len(engine.changes) == 1
        assert "ambiguous" in caplog.text.lower()

    def test_block_policy_waits(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_response(body):
            entered.set()
            release.wait(5)
            return {"serverTimestamp": 100}

        engine = _engine(
            transport=FakeTransport(slow_response, {"serverTimestamp": 200}),
            policy=ConcurrencyPolicy.BLOCK,
        )
        worker = threading.Thread(target=engine.incremental_sync)
        worker.start()
        assert entered.wait(5)

        second = []
        waiter = threading.Thread(target=lambda: second.append(engine.incremental_sync()))
        waiter.start()
        release.set()
        worker.join(5)
        waiter.join(5)

        assert second[0].checkpoint_before == 100
        assert engine.store.get_checkpoint() == 200


class TestFullSync:
    """Tests for full sync."""

    def test_request_starts_from_zero(self):
        store = MemorySnapshotStore()
        store.apply_batch([], [], 300)
        transport = FakeTransport({"serverTimestamp": 400})
        engine = _engine(store, transport, force_fetch=["instrument", "country"])

        result = engine.full_sync()

        assert transport.last_request["serverTimestamp"] == 0
        assert transport.last_request["forceFetch"] == ["instrument", "country"]
        assert result.mode == SyncMode.FULL

    def test_evicts_unlisted_records(self):
        store = MemorySnapshotStore()
        store.apply_batch([Account.from_wire({"id": "a1"}), Account.from_wire({"id": "a2"})], [], 300)
        engine = _engine(store, FakeTransport({"serverTimestamp": 400, "account": [{"id": "a1"}]}))

        result = engine.full_sync()

        assert result.evicted == 1
        assert _live_ids(store.read_snapshot(), "account") == {"a1"}

    def test_absence_deletes_disabled(self):
        store = MemorySnapshotStore()
        store.apply_batch([Account.from_wire({"id": "a1"}), Account.from_wire({"id": "a2"})], [], 300)
        engine = _engine(
            store,
            FakeTransport({"serverTimestamp": 400, "account": [{"id": "a1"}]}),
            full_sync_absence_deletes=False,
        )

        engine.full_sync()
        assert _live_ids(store.read_snapshot(), "account") == {"a1", "a2"}

    def test_older_server_checkpoint_rejected(self):
        store = MemorySnapshotStore()
        store.apply_batch([], [], 300)
        engine = _engine(store, FakeTransport({"serverTimestamp": 200}))

        with pytest.raises(MalformedResponse):
            engine.full_sync()


class TestPush:
    """Tests for push."""

    def test_push_stages_and_syncs(self):
        transport = FakeTransport(
            {"serverTimestamp": 100, "merchant": [{"id": "m5", "title": "Bakery"}]},
        )
        engine = _engine(transport=transport)

        result = engine.push([("create", "merchant", {"title": "Bakery"}), ("delete", "tag", "g1")])

        assert result.staged == ["tmp-1"]
        assert result.resolved == {"tmp-1": "m5"}
        assert transport.last_request["deletion"][0]["id"] == "g1"

    def test_unknown_operation(self):
        engine = _engine()
        with pytest.raises(ValueError):
            engine.push([("upsert", "tag", "g1")])

    def test_staged_changes_survive_rejected_sync(self):
        engine = _engine()
        engine.store.sync_lock.acquire()
        try:
            with pytest.raises(SyncInProgress):
                engine.push([("update", "account", "a1", {"title": "Wallet"})])
        finally:
            engine.store.sync_lock.release()

        assert len(engine.changes) == 1


class TestEngineLifecycle:
    """Tests for construction, reset and queries."""

    def test_from_config_memory_backend(self):
        config = ZenSyncConfig.model_validate(
            {"storage": {"backend": "memory"}, "sync": {"concurrency": "block", "full_sync_absence_deletes": False}}
        )
        engine = SyncEngine.from_config(config, FakeTransport())

        assert isinstance(engine.store, MemorySnapshotStore)
        assert engine.policy == ConcurrencyPolicy.BLOCK
        assert engine.full_sync_absence_deletes is False
        assert engine.tombstone_retention == 30 * 24 * 3600

    def test_tombstone_retention_prunes_old_deletions(self):
        transport = FakeTransport(
            {"serverTimestamp": 1000, "deletion": [{"id": "t1", "object": "transaction", "stamp": 1000}]},
            {"serverTimestamp": 5000, "deletion": [{"id": "t2", "object": "transaction", "stamp": 5000}]},
        )
        engine = _engine(transport=transport, tombstone_retention=3600)

        engine.incremental_sync()
        assert engine.store.read_snapshot().has_tombstone("transaction", "t1")

        engine.incremental_sync()
        snapshot = engine.store.read_snapshot()
        assert not snapshot.has_tombstone("transaction", "t1")
        assert snapshot.has_tombstone("transaction", "t2")

    def test_from_config_file_backend(self, temp_dir):
        config = ZenSyncConfig.model_validate({"storage": {"backend": "file", "path": str(temp_dir)}})
        engine = SyncEngine.from_config(config, FakeTransport())
        assert isinstance(engine.store, FileSnapshotStore)

    def test_reset_keeps_pending_changes(self, sample_response: dict):
        engine = _engine(transport=FakeTransport(sample_response))
        engine.incremental_sync()
        engine.delete("transaction", "t1")

        engine.reset()

        assert engine.store.get_checkpoint() == 0
        assert engine.store.read_snapshot().count() == 0
        assert len(engine.changes) == 1

    def test_query_view_is_pinned(self, sample_response: dict):
        engine = _engine(transport=FakeTransport(sample_response))
        view = engine.query()
        engine.incremental_sync()

        assert view.accounts().count() == 0
        assert engine.query().accounts().count() == 2
