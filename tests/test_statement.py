"""Tests for Statement: binding, pagination and the fetch family."""

import pytest

from conftest import FakeCursor, FakeError, FakeNative
from spinedb.errors import DatabaseError, QueryError
from spinedb.params import PlaceholderList
from spinedb.statement import FetchStyle


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def people(conn):
    """``#__people`` with five rows, ids 1..5."""
    conn.execute("CREATE TABLE `#__people` (`id` INTEGER PRIMARY KEY, `name` TEXT, `age` INTEGER)")
    for i, (name, age) in enumerate(
        [("ann", 31), ("bob", 25), ("cid", 47), ("dee", 19), ("eve", 52)], start=1
    ):
        conn.insert("#__people", {"id": i, "name": name, "age": age})
    return conn


def select(conn, sql="SELECT `id`, `name` FROM `#__people` ORDER BY `id`"):
    return conn.prepare(sql)


# =============================================================================
# Fetch styles and exhaustion
# =============================================================================


class TestFetchStyles:
    def test_assoc_is_default(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_next_row() == {"id": 1, "name": "ann"}

    def test_num(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_next_row(FetchStyle.NUM) == (1, "ann")

    def test_both(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_next_row(FetchStyle.BOTH) == {0: 1, 1: "ann", "id": 1, "name": "ann"}

    def test_default_style_is_configurable(self, people):
        stmt = select(people)
        stmt.fetch_style = FetchStyle.NUM
        stmt.execute()
        assert stmt.fetch_rows()[0] == (1, "ann")

    def test_exhaustion_sentinels(self, people):
        stmt = select(people, "SELECT `id`, `name` FROM `#__people` WHERE `id` > 99")
        stmt.execute()
        assert stmt.fetch_next_row() is None
        assert stmt.fetch_next_column() is None
        assert stmt.fetch_rows() == []
        assert stmt.fetch_columns() == []
        assert stmt.fetch_map() == {}

    def test_fetch_after_exhaustion(self, people):
        stmt = select(people)
        stmt.execute()
        assert len(stmt.fetch_rows()) == 5
        assert stmt.fetch_next_row() is None

    def test_fetch_before_execute(self, people):
        with pytest.raises(QueryError):
            select(people).fetch_next_row()

    def test_statement_without_result_set(self, people):
        stmt = people.prepare("UPDATE `#__people` SET `age` = `age` + 1")
        assert stmt.execute() == 5
        assert stmt.fetch_next_row() is None
        assert stmt.fetch_rows() == []


# =============================================================================
# Column and map fetches
# =============================================================================


class TestColumnsAndMaps:
    def test_fetch_columns_by_position_and_name(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_columns(1) == ["ann", "bob", "cid", "dee", "eve"]

        stmt.execute()
        assert stmt.fetch_columns("id") == [1, 2, 3, 4, 5]

    def test_fetch_next_column(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_next_column("name") == "ann"
        assert stmt.fetch_next_column() == 2

    def test_fetch_map(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_map() == {1: "ann", 2: "bob", 3: "cid", 4: "dee", 5: "eve"}

    def test_fetch_map_by_name(self, people):
        stmt = select(people)
        stmt.execute()
        assert stmt.fetch_map("name", "id")["cid"] == 3

    def test_unknown_column(self, people):
        stmt = select(people)
        stmt.execute()
        with pytest.raises(QueryError):
            stmt.fetch_next_column("missing")
        with pytest.raises(QueryError):
            stmt.fetch_columns(7)

    def test_position_out_of_range(self, people):
        stmt = select(people)
        stmt.execute()
        with pytest.raises(QueryError):
            stmt.fetch_next_column(2)
        assert stmt.fetch_next_column(1) == "bob"

    def test_iteration_is_lazy(self, people):
        stmt = select(people)
        stmt.execute()
        iterator = iter(stmt)
        assert next(iterator)["name"] == "ann"
        assert stmt.fetch_next_row()["name"] == "bob"
        assert [row["id"] for row in iterator] == [3, 4, 5]

    def test_iter_map(self, people):
        stmt = select(people)
        stmt.execute()
        assert list(stmt.iter_map("id", "name"))[:2] == [(1, "ann"), (2, "bob")]


# =============================================================================
# Binding
# =============================================================================


class TestBinding:
    def test_bind_value_strips_colon(self, people):
        stmt = select(people, "SELECT `name` FROM `#__people` WHERE `id` = :id")
        stmt.bind_value(":id", 3)
        assert stmt.params == {"id": 3}
        stmt.execute()
        assert stmt.fetch_next_column() == "cid"

    def test_execute_params_are_merged(self, people):
        stmt = select(people, "SELECT `name` FROM `#__people` WHERE `age` > :min AND `age` < :max")
        stmt.bind_value("min", 20)
        stmt.execute({"max": 40})
        assert sorted(stmt.fetch_columns()) == ["ann", "bob"]

    def test_repeated_placeholder(self, people):
        stmt = select(people, "SELECT `name` FROM `#__people` WHERE `id` = :id OR `age` = :id")
        stmt.execute({"id": 19})
        assert stmt.fetch_columns() == ["dee"]

    def test_missing_parameter(self, people):
        stmt = select(people, "SELECT `name` FROM `#__people` WHERE `id` = :id")
        with pytest.raises(QueryError, match=":id"):
            stmt.execute()

    def test_placeholder_list(self, people):
        ids = PlaceholderList([2, 4], prefix="id")
        stmt = select(people, f"SELECT `name` FROM `#__people` WHERE `id` IN ({ids}) ORDER BY `id`")
        stmt.bind_list(ids)
        stmt.execute()
        assert stmt.fetch_columns() == ["bob", "dee"]

    def test_reexecute_with_new_value(self, people):
        stmt = select(people, "SELECT `name` FROM `#__people` WHERE `id` = :id")
        stmt.execute({"id": 1})
        assert stmt.fetch_next_column() == "ann"
        stmt.execute({"id": 2})
        assert stmt.fetch_next_column() == "bob"

    def test_rowcount(self, people):
        stmt = people.prepare("DELETE FROM `#__people` WHERE `age` < :age")
        assert stmt.execute({"age": 30}) == 2
        assert stmt.execute({"age": 30}) == 0


# =============================================================================
# Pagination
# =============================================================================


class TestPagination:
    def test_limit_and_offset(self, people):
        stmt = select(people).set_limit(2).set_offset(1)
        stmt.execute()
        assert stmt.fetch_columns("id") == [2, 3]

    def test_offset_without_limit_is_ignored(self, people):
        stmt = select(people).set_offset(3)
        stmt.execute()
        assert len(stmt.fetch_rows()) == 5

    def test_negative_values_clamp_to_zero(self, people):
        stmt = select(people).set_limit(-5).set_offset(-1)
        assert (stmt.limit, stmt.offset) == (0, 0)

    def test_changing_limit_recompiles(self, people):
        sent = []
        people.add_listener(lambda event: sent.append(event.sql))

        stmt = select(people).set_limit(2)
        stmt.execute()
        assert stmt.fetch_columns("id") == [1, 2]

        stmt.set_limit(3)
        stmt.execute()
        assert stmt.fetch_columns("id") == [1, 2, 3]
        assert sent[0].endswith("LIMIT 2 OFFSET 0")
        assert sent[1].endswith("LIMIT 3 OFFSET 0")

    def test_unchanged_limit_keeps_cursor(self, people):
        stmt = select(people).set_limit(2)
        stmt.execute()
        cursor = stmt._cursor
        stmt.set_limit(2)
        assert stmt._cursor is cursor

    def test_event_reports_pagination(self, people):
        events = []
        people.add_listener(events.append)
        select(people).set_limit(2).set_offset(3).execute()
        assert (events[0].limit, events[0].offset) == (2, 3)


# =============================================================================
# Enhanced fetch
# =============================================================================


class TestEnhancedFetch:
    def test_transforms_apply_in_order(self, people):
        stmt = select(people)
        stmt.transform("name", str.upper).transform("name", lambda v: v + "!")
        stmt.execute()
        assert stmt.fetch_next_row() == {"id": 1, "name": "ANN!"}

    def test_transform_by_position(self, people):
        stmt = select(people).transform(0, lambda v: v * 10)
        stmt.execute()
        assert stmt.fetch_columns(0)[:2] == [10, 20]

    def test_compute_sees_transformed_values(self, people):
        stmt = select(people)
        stmt.transform("name", str.title)
        stmt.compute("label", lambda row: f"{row['id']}:{row['name']}")
        stmt.execute()
        assert stmt.fetch_next_row() == {"id": 1, "name": "Ann", "label": "1:Ann"}

    def test_computed_columns_in_num_style(self, people):
        stmt = select(people).compute("double", lambda row: row["id"] * 2)
        stmt.execute()
        assert stmt.fetch_next_row(FetchStyle.NUM) == (1, "ann", 2)

    def test_compute_can_overwrite(self, people):
        stmt = select(people).compute("name", lambda row: row["name"][::-1])
        stmt.execute()
        assert stmt.fetch_columns("name")[:2] == ["nna", "bob"]

    def test_fetch_next_column_uses_enhanced_row(self, people):
        stmt = select(people).compute("double", lambda row: row["id"] * 2)
        stmt.execute()
        assert stmt.fetch_next_column("double") == 2
        assert stmt.fetch_next_column(2) == 4

    def test_transform_unknown_column(self, people):
        stmt = select(people).transform("missing", str.upper)
        stmt.execute()
        with pytest.raises(QueryError):
            stmt.fetch_next_row()

    def test_enhanced_flag(self, people):
        stmt = select(people)
        assert not stmt.enhanced
        stmt.compute("x", lambda row: 1)
        assert stmt.enhanced


# =============================================================================
# Cursor reuse and close
# =============================================================================


class UnbufferedCursor(FakeCursor):
    """Refuses to close or run again while rows are unread, like mysql.connector."""

    def _check_unread(self):
        if self._rows:
            raise FakeError("Unread result found")

    def execute(self, sql, params=None):
        self._check_unread()
        super().execute(sql, params)

    def close(self):
        self._check_unread()
        super().close()


class UnbufferedNative(FakeNative):
    def cursor(self):
        return UnbufferedCursor(self)


class TestCursorReuse:
    def test_close_after_partial_fetch(self, fake_conn):
        native = UnbufferedNative()
        native.add_result("SELECT", ["id"], [(1,), (2,), (3,)])
        stmt = fake_conn("mysql", native=native).prepare("SELECT `id` FROM `t`")
        stmt.execute()
        assert stmt.fetch_next_column() == 1

        stmt.close()

    def test_reexecute_after_partial_fetch(self, fake_conn):
        native = UnbufferedNative()
        native.add_result("SELECT", ["id"], [(1,), (2,)])
        native.add_result("SELECT", ["id"], [(7,)])
        stmt = fake_conn("mysql", native=native).prepare("SELECT `id` FROM `t`")
        stmt.execute()
        stmt.fetch_next_row()

        stmt.execute()
        assert stmt.fetch_columns() == [7]

    def test_close_errors_are_converted(self, fake_conn):
        class BrokenCursor(FakeCursor):
            def close(self):
                raise FakeError("connection lost")

        class BrokenNative(FakeNative):
            def cursor(self):
                return BrokenCursor(self)

        stmt = fake_conn("mysql", native=BrokenNative()).prepare("SELECT 1")
        stmt.execute()
        with pytest.raises(DatabaseError) as exc_info:
            stmt.close()
        assert isinstance(exc_info.value.__cause__, FakeError)
