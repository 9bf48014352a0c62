"""Tests for per-dialect SQL: quoting, pagination, transactions and DDL."""

import pytest

from conftest import FakeError, FakeNative
from spinedb.errors import InvalidConfigError, TransactionError, UnsupportedOperationError
from spinedb.platforms import (
    CubridPlatform,
    DB2Platform,
    MSSQLPlatform,
    MySQLPlatform,
    OraclePlatform,
    PostgreSQLPlatform,
    SQLitePlatform,
    get_platform,
    parse_major_version,
    register_platform,
)
from spinedb.schema import ForeignKey, Index, Table


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    @pytest.mark.parametrize(
        "driver,cls",
        [
            ("sqlite", SQLitePlatform),
            ("mysql", MySQLPlatform),
            ("MariaDB", MySQLPlatform),
            ("cubrid", CubridPlatform),
            ("postgres", PostgreSQLPlatform),
            ("sqlsrv", MSSQLPlatform),
            ("oracle", OraclePlatform),
            ("db2", DB2Platform),
        ],
    )
    def test_lookup(self, driver, cls):
        assert get_platform(driver) is cls

    def test_unknown_driver(self):
        with pytest.raises(InvalidConfigError):
            get_platform("foxpro")

    def test_register_custom(self, fake_conn):
        class QuietPlatform(SQLitePlatform):
            name = "quiet"

        register_platform("quiet", QuietPlatform)
        assert isinstance(fake_conn("quiet").get_platform(), QuietPlatform)

    def test_parse_major_version(self):
        assert parse_major_version("Oracle Database 11g Release 2") == 11
        assert parse_major_version("19.3.0.0.0") == 19
        assert parse_major_version(None) == 0


# =============================================================================
# Quoting
# =============================================================================


class TestQuoting:
    def test_identifiers(self, fake_conn):
        assert fake_conn("sqlite").quote_identifier('a"b') == '"a""b"'
        assert fake_conn("mysql").quote_identifier("a`b") == "`a``b`"
        assert fake_conn("mssql").quote_identifier("[ab]") == "[ab]"
        assert fake_conn("oracle").quote_identifier('a"b') == '"ab"'

    def test_literals(self, fake_conn):
        sqlite = fake_conn("sqlite")
        assert sqlite.quote("it's") == "'it''s'"
        assert sqlite.quote(None) == "NULL"
        assert sqlite.quote(True) == "1"
        assert sqlite.quote(b"\x0a\x0b") == "X'0A0B'"
        assert fake_conn("postgresql").quote(False) == "FALSE"

    def test_prepare_sql_rewrites_backticks(self, fake_conn):
        sql = "SELECT  `id`\n  FROM `#__users`"
        assert fake_conn("mysql", prefix="app_").prepare_sql(sql) == "SELECT `id` FROM `app_users`"
        assert fake_conn("mssql", prefix="app_").prepare_sql(sql) == "SELECT [id] FROM [app_users]"
        assert fake_conn("postgresql").prepare_sql(sql, prefix="x_") == 'SELECT "id" FROM "x_users"'


# =============================================================================
# Pagination
# =============================================================================


class TestPagination:
    def test_limit_offset(self, fake_conn):
        platform = fake_conn("sqlite").get_platform()
        assert platform.apply_pagination("SELECT 1", 10, 5) == "SELECT 1 LIMIT 10 OFFSET 5"
        assert platform.apply_pagination("SELECT 1", 0, 5) == "SELECT 1"

    def test_cubrid(self, fake_conn):
        platform = fake_conn("cubrid").get_platform()
        assert platform.apply_pagination("SELECT 1", 10, 5) == "SELECT 1 LIMIT 5, 10"

    def test_mssql_top(self, fake_conn):
        platform = fake_conn("mssql").get_platform()
        assert platform.apply_pagination("SELECT a FROM t", 3) == "SELECT TOP 3 a FROM t"
        assert (
            platform.apply_pagination("select distinct a FROM t", 3)
            == "select distinct TOP 3 a FROM t"
        )

    def test_mssql_top_skips_nested_selects(self, fake_conn):
        platform = fake_conn("mssql").get_platform()
        assert (
            platform.apply_pagination("WITH x AS (SELECT a FROM t) SELECT a FROM x", 2)
            == "WITH x AS (SELECT a FROM t) SELECT TOP 2 a FROM x"
        )
        assert (
            platform.apply_pagination("SELECT a FROM (SELECT a FROM t) s", 2)
            == "SELECT TOP 2 a FROM (SELECT a FROM t) s"
        )
        assert platform.apply_pagination("SELECT\n a FROM t", 1) == "SELECT TOP 1\n a FROM t"

    def test_mssql_rejects_offset(self, fake_conn):
        platform = fake_conn("mssql").get_platform()
        with pytest.raises(UnsupportedOperationError):
            platform.apply_pagination("SELECT a FROM t", 3, 1)
        with pytest.raises(UnsupportedOperationError):
            platform.apply_pagination("UPDATE t SET a = 1", 3)

    def test_oracle_12_and_later(self, fake_conn):
        platform = fake_conn("oracle", server_version="19.3.0.0.0").get_platform()
        assert (
            platform.apply_pagination("SELECT a FROM t", 10, 5)
            == "SELECT a FROM t OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY"
        )

    def test_oracle_rownum(self, fake_conn):
        platform = fake_conn("oracle", server_version="11.2.0.4").get_platform()
        sql = platform.apply_pagination("SELECT a FROM t", 10, 5)
        assert "(SELECT a FROM t) kklq WHERE ROWNUM <= 15" in sql
        assert sql.endswith("WHERE kkrn > 5")

    def test_db2(self, fake_conn):
        platform = fake_conn("db2").get_platform()
        assert platform.apply_pagination("SELECT a FROM t", 10) == "SELECT a FROM t FETCH FIRST 10 ROWS ONLY"
        with pytest.raises(UnsupportedOperationError):
            platform.apply_pagination("SELECT a FROM t", 10, 5)

    def test_db2_limit_offset_option(self, fake_conn):
        platform = fake_conn("db2", options={"db2_limit_offset": True}).get_platform()
        assert platform.apply_pagination("SELECT a FROM t", 10, 5) == "SELECT a FROM t LIMIT 10 OFFSET 5"

    def test_statement_uses_platform_pagination(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mssql", native=native)
        conn.prepare("SELECT `a` FROM `t`").set_limit(2).execute()
        assert native.log == ["SELECT TOP 2 [a] FROM [t]"]


# =============================================================================
# Transactions
# =============================================================================


class TestTransactionSql:
    def test_mysql_nesting(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mysql", native=native)
        conn.begin_transaction().begin_transaction().commit().commit()
        assert native.log == ["START TRANSACTION", "SAVEPOINT LEVEL1", "SAVEPOINT LEVEL1", "COMMIT"]

    def test_mssql_nesting(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mssql", native=native)
        conn.begin_transaction().begin_transaction().roll_back().commit()
        assert native.log == [
            "BEGIN TRANSACTION",
            "SAVE TRANSACTION LEVEL1",
            "ROLLBACK TRANSACTION LEVEL1",
            "COMMIT TRANSACTION",
        ]

    def test_oracle_uses_autocommit_switch(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("oracle", native=native)

        conn.begin_transaction()
        assert native.autocommit is False
        conn.begin_transaction().roll_back()
        conn.commit()

        assert native.autocommit is True
        assert native.log == ["SAVEPOINT LEVEL1", "ROLLBACK TO LEVEL1", "<commit>"]

    def test_db2_savepoint_and_rollback(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("db2", native=native)
        conn.begin_transaction().begin_transaction().commit().roll_back()
        assert native.log == [
            "SAVEPOINT LEVEL1 ON ROLLBACK RETAIN CURSORS",
            "SAVEPOINT LEVEL1 ON ROLLBACK RETAIN CURSORS",
            "<rollback>",
        ]
        assert native.autocommit is True

    def test_cubrid_has_no_savepoints(self, fake_conn):
        conn = fake_conn("cubrid")
        conn.begin_transaction()
        with pytest.raises(UnsupportedOperationError):
            conn.begin_transaction()
        assert conn.transaction_depth == 1

    def test_failed_savepoint_keeps_depth(self, fake_conn):
        native = FakeNative()
        native.fail_on("SAVEPOINT", FakeError("no savepoints today"))
        conn = fake_conn("postgresql", native=native)
        conn.begin_transaction()
        with pytest.raises(TransactionError) as exc_info:
            conn.begin_transaction()
        assert conn.transaction_depth == 1
        assert "no savepoints today" in exc_info.value.message


# =============================================================================
# DDL
# =============================================================================


def posts(conn):
    table = Table("#__posts", conn.get_platform())
    table.add_column("id", "int", identity=True, unsigned=True)
    table.add_column("user_id", "int")
    table.add_column("title", "varchar", limit=500)
    table.add_column("published", "bool", default=False)
    table.add_index(["title"], unique=True)
    table.add_foreign_key(["user_id"], "#__users", ["id"])
    return table


class TestMySQLDdl:
    def test_create_table(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mysql", native=native, prefix="app_")
        posts(conn).create()

        (sql,) = native.log
        index = Index(("title",)).name_for("app_posts")
        fk = ForeignKey(("user_id",), "#__users", ("id",)).name_for("app_posts")
        assert sql.startswith("CREATE TABLE `app_posts` (")
        assert "`id` INT UNSIGNED NOT NULL PRIMARY KEY AUTO_INCREMENT" in sql
        assert "`title` VARCHAR(250) NOT NULL" in sql
        assert "`published` TINYINT(1) NOT NULL DEFAULT 0" in sql
        assert f"UNIQUE INDEX `{index}` (`title`)" in sql
        assert (
            f"CONSTRAINT `{fk}` FOREIGN KEY (`user_id`) REFERENCES `app_users` (`id`) "
            "ON UPDATE CASCADE ON DELETE CASCADE" in sql
        )
        assert sql.endswith("ENGINE=InnoDB COLLATE=utf8_unicode_ci")

    def test_table_options(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mysql", native=native)
        Table("t", conn.get_platform(), engine="MyISAM").add_column("a", "text").create()
        assert native.log[0].endswith("ENGINE=MyISAM COLLATE=utf8_unicode_ci")

    def test_composite_primary_key(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mysql", native=native)
        table = Table("t", conn.get_platform())
        table.add_column("a", "int", primary_key=True).add_column("b", "int", primary_key=True)
        table.create()
        assert "PRIMARY KEY (`a`, `b`)" in native.log[0]

    def test_alter_statements(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mysql", native=native)
        table = Table("t", conn.get_platform())
        table.add_column("c", "bigint", null=True).add_index(["c"]).update()
        table.remove_index(["c"])

        name = Index(("c",)).name_for("t")
        assert native.log == [
            "ALTER TABLE `t` ADD `c` BIGINT NULL",
            f"ALTER TABLE `t` ADD INDEX `{name}` (`c`)",
            f"ALTER TABLE `t` DROP INDEX `{name}`",
        ]

    def test_drop_foreign_key_when_present(self, fake_conn):
        native = FakeNative()
        native.add_result("TABLE_CONSTRAINTS", ["1"], [(1,)])
        conn = fake_conn("mysql", native=native, prefix="app_")
        Table("#__posts", conn.get_platform()).remove_foreign_key(["user_id"], "#__users", ["id"])

        name = ForeignKey(("user_id",), "#__users", ("id",)).name_for("app_posts")
        assert native.log[-1] == f"ALTER TABLE `app_posts` DROP FOREIGN KEY `{name}`"
        assert native.params[0] == {"name": name}

    def test_drop_foreign_key_when_absent(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("mysql", native=native)
        Table("posts", conn.get_platform()).remove_foreign_key(["user_id"], "users", ["id"])
        assert len(native.log) == 1


class TestPostgreSQLDdl:
    def test_create_table(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("postgresql", native=native, prefix="app_")
        posts(conn).create()

        create, index = native.log
        assert '"id" SERIAL NOT NULL CHECK ("id" >= 0)' in create
        assert '"published" BOOLEAN NOT NULL DEFAULT FALSE' in create
        assert 'PRIMARY KEY ("id")' in create
        assert 'REFERENCES "app_users" ("id")' in create
        assert index.startswith('CREATE UNIQUE INDEX "idx_')
        assert index.endswith('ON "app_posts" ("title")')

    def test_bigint_identity_is_bigserial(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("postgresql", native=native)
        Table("t", conn.get_platform()).add_column("id", "bigint", identity=True).create()
        assert native.log[0] == 'CREATE TABLE "t" ("id" BIGSERIAL NOT NULL, PRIMARY KEY ("id"))'

    def test_drop_table_cascades(self, fake_conn):
        native = FakeNative()
        conn = fake_conn("postgresql", native=native)
        Table("t", conn.get_platform()).drop()
        assert native.log == ['DROP TABLE "t" CASCADE']

    def test_flush_data_truncates_all_but_tracking(self, fake_conn):
        native = FakeNative()
        native.add_result(
            '"tables"', ["table_name"], [("app_users",), ("app_posts",), ("app_spinedb_migrations",)]
        )
        conn = fake_conn("postgresql", native=native, prefix="app_")
        conn.get_platform().flush_data()
        assert native.log[-1] == 'TRUNCATE TABLE "app_users", "app_posts" RESTART IDENTITY CASCADE'

    def test_last_insert_id_for_serial_column(self, fake_conn):
        native = FakeNative()
        native.add_result("currval", ["currval"], [(7,)])
        conn = fake_conn("postgresql", native=native, prefix="app_")
        assert conn.last_insert_id(("#__posts", "id")) == 7
        assert native.log == ["SELECT currval(pg_get_serial_sequence(%(table)s, %(column)s))"]
        assert native.params == [{"table": "app_posts", "column": "id"}]


class TestPlatformsWithoutDdl:
    @pytest.mark.parametrize("driver", ["mssql", "oracle", "db2"])
    def test_create_table_unsupported(self, fake_conn, driver):
        conn = fake_conn(driver)
        with pytest.raises(UnsupportedOperationError):
            Table("t", conn.get_platform()).add_column("a", "int").create()

    def test_mssql_last_insert_id(self, fake_conn):
        native = FakeNative()
        native.add_result("SCOPE_IDENTITY", ["id"], [(12,)])
        assert fake_conn("mssql", native=native).last_insert_id() == 12

    def test_oracle_last_insert_id_needs_sequence(self, fake_conn):
        native = FakeNative()
        native.add_result("CURRVAL", ["id"], [(3,)])
        conn = fake_conn("oracle", native=native, prefix="app_")
        assert conn.last_insert_id("#__posts_seq") == 3
        assert native.log == ["SELECT app_posts_seq.CURRVAL FROM DUAL"]
        with pytest.raises(UnsupportedOperationError):
            conn.last_insert_id()
