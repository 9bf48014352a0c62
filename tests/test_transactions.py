"""Tests for the transaction coordinator and managed connections."""

import pytest

from conftest import FakeError, FakeNative
from spinedb.drivers import open_connection
from spinedb.errors import TransactionError
from spinedb.protocols import TransactionResource
from spinedb.transactions import Transaction, TransactionManager


# ── Fixtures ─────────────────────────────────────────────────────────────


class RecordingResource:
    """Transaction resource that logs every boundary call."""

    def __init__(self, name, log):
        self.name = name
        self.log = log

    def begin_managed_transaction(self, tx):
        self.log.append(f"{self.name}:begin:{tx.identifier}")

    def commit_managed_transaction(self, tx):
        self.log.append(f"{self.name}:commit:{tx.identifier}")

    def roll_back_managed_transaction(self, tx):
        self.log.append(f"{self.name}:rollback:{tx.identifier}")


@pytest.fixture
def tm():
    return TransactionManager()


def run_foo_bar_baz(conn, tm):
    tm.begin_transaction()
    conn.insert("#__t", {"v": "foo"})
    tm.begin_transaction()
    conn.insert("#__t", {"v": "bar"})
    tm.roll_back()
    tm.begin_transaction()
    conn.insert("#__t", {"v": "baz"})
    tm.commit()
    tm.commit()


# =============================================================================
# Transaction / TransactionManager
# =============================================================================


class TestTransactionManager:
    def test_identifiers_are_sequential(self, tm):
        t1 = tm.begin_transaction()
        t2 = tm.begin_transaction()
        tm.commit()
        t3 = tm.begin_transaction()
        assert [t1.identifier, t2.identifier, t3.identifier] == ["T1", "T2", "T3"]
        assert t3.parent is t1
        assert t1.is_root and not t3.is_root

    def test_depth_and_current(self, tm):
        assert tm.current_transaction is None
        assert not tm.in_transaction()
        tx = tm.begin_transaction()
        assert tm.current_transaction is tx
        assert tm.depth == 1
        tm.roll_back()
        assert tm.depth == 0

    def test_commit_without_transaction(self, tm):
        with pytest.raises(TransactionError):
            tm.commit()
        with pytest.raises(TransactionError):
            tm.roll_back()

    def test_attach_joins_ancestors_first(self, tm):
        log = []
        resource = RecordingResource("r", log)
        tm.begin_transaction()
        tm.begin_transaction()
        tm.current_transaction.attach_resource(resource)
        assert log == ["r:begin:T1", "r:begin:T2"]

    def test_attach_is_idempotent(self):
        log = []
        resource = RecordingResource("r", log)
        tx = Transaction("T1")
        tx.attach_resource(resource)
        tx.attach_resource(resource)
        assert tx.resource_count == 1
        assert tx.has_resource(resource)
        assert log == ["r:begin:T1"]

    def test_resources_finish_in_reverse_order(self, tm):
        log = []
        tx = tm.begin_transaction()
        tx.attach_resource(RecordingResource("a", log))
        tx.attach_resource(RecordingResource("b", log))
        tm.commit()
        assert log[-2:] == ["b:commit:T1", "a:commit:T1"]

    def test_rollback_reaches_every_resource(self, tm):
        log = []
        tx = tm.begin_transaction()
        tx.attach_resource(RecordingResource("a", log))
        tx.attach_resource(RecordingResource("b", log))
        tm.roll_back()
        assert log[-2:] == ["b:rollback:T1", "a:rollback:T1"]

    def test_resource_protocol(self):
        assert isinstance(RecordingResource("r", []), TransactionResource)


# =============================================================================
# Managed connections
# =============================================================================


class TestManagedConnection:
    def test_statement_sequence(self, fake_conn, tm):
        native = FakeNative()
        conn = fake_conn("sqlite", native=native, coordinator=tm)

        run_foo_bar_baz(conn, tm)

        assert ["INSERT" if sql.startswith("INSERT") else sql for sql in native.log] == [
            "BEGIN",
            "INSERT",
            "SAVEPOINT T2",
            "INSERT",
            "ROLLBACK TO SAVEPOINT T2",
            "SAVEPOINT T3",
            "INSERT",
            "SAVEPOINT T1",
            "COMMIT",
        ]
        assert [p for p in native.params if p] == [{"vv": "foo"}, {"vv": "bar"}, {"vv": "baz"}]
        assert conn.transaction_depth == 0

    def test_rolled_back_level_is_discarded(self, tm):
        conn = open_connection("sqlite:///:memory:", coordinator=tm)
        try:
            conn.execute("CREATE TABLE `#__t` (`v` TEXT)")
            run_foo_bar_baz(conn, tm)

            stmt = conn.prepare("SELECT `v` FROM `#__t` ORDER BY `v`")
            stmt.execute()
            assert stmt.fetch_columns() == ["baz", "foo"]
        finally:
            conn.close()

    def test_rolling_back_level_by_level(self, tm):
        conn = open_connection("sqlite:///:memory:", coordinator=tm)

        def seen():
            stmt = conn.prepare("SELECT `v` FROM `t` ORDER BY `v`")
            stmt.execute()
            return set(stmt.fetch_columns())

        try:
            conn.execute("CREATE TABLE `t` (`v` TEXT)")
            for value in ("foo", "bar", "baz"):
                tm.begin_transaction()
                conn.insert("t", {"v": value})

            tm.roll_back()
            assert seen() == {"foo", "bar"}
            tm.roll_back()
            assert seen() == {"foo"}
            tm.commit()
            assert seen() == {"foo"}
            assert conn.transaction_depth == 0
        finally:
            conn.close()

    def test_connection_joins_only_when_used(self, fake_conn, tm):
        native = FakeNative()
        conn = fake_conn("sqlite", native=native, coordinator=tm)
        tm.begin_transaction()
        tm.commit()
        assert native.log == []

    def test_late_join_opens_every_level(self, fake_conn, tm):
        native = FakeNative()
        conn = fake_conn("sqlite", native=native, coordinator=tm)
        tm.begin_transaction()
        tm.begin_transaction()
        conn.execute("DELETE FROM `t`")
        assert native.log[:2] == ["BEGIN", "SAVEPOINT T2"]
        assert conn.transaction_depth == 2

    def test_connection_api_delegates_to_coordinator(self, fake_conn, tm):
        conn = fake_conn("sqlite", coordinator=tm)
        assert not conn.in_transaction()
        conn.begin_transaction()
        assert tm.depth == 1
        assert conn.in_transaction()
        assert conn.transaction_depth == 0
        conn.commit()
        assert tm.depth == 0

    def test_two_connections_share_a_transaction(self, fake_conn, tm):
        log = []
        first = fake_conn("sqlite", native=FakeNative(log), coordinator=tm)
        second = fake_conn("postgresql", native=FakeNative(log), coordinator=tm)

        tx = tm.begin_transaction()
        first.execute("DELETE FROM `a`")
        second.execute("DELETE FROM `b`")
        assert tx.resources == (first, second)

        tm.roll_back()
        assert log[-2:] == ["ROLLBACK", "ROLLBACK"]
        assert first.transaction_depth == second.transaction_depth == 0

    def test_failed_root_commit_rolls_back_connection(self, fake_conn, tm):
        native = FakeNative()
        conn = fake_conn("sqlite", native=native, coordinator=tm)
        tm.begin_transaction()
        conn.execute("DELETE FROM `t`")
        native.fail_on("COMMIT", FakeError("deferred constraint failed"))

        with pytest.raises(TransactionError):
            tm.commit()
        assert native.log[-2:] == ["COMMIT", "ROLLBACK"]
        assert conn.transaction_depth == 0
        assert tm.depth == 0
