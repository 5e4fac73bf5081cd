"""Tests for the PyMySQL loader against mocked connections."""

from unittest.mock import MagicMock, call

import pymysql
import pytest

from station_sync.config import MySQLConfig
from station_sync.errors import TargetConnectionError
from station_sync.loaders.mysql_loader import MySQLLoader, is_connection_lost


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def connection(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.fixture
def mysql_loader(connection):
    return MySQLLoader(MySQLConfig(database="shadow"), connection=connection)


def test_connection_params():
    params = MySQLConfig(host="db", port=3307, database="shadow").to_connection_params()
    assert params["host"] == "db"
    assert params["port"] == 3307
    assert params["database"] == "shadow"
    assert params["charset"] == "utf8mb4"
    assert params["autocommit"] is False
    assert params["cursorclass"] is pymysql.cursors.DictCursor
    assert "database" not in MySQLConfig().to_connection_params(with_database=False)


def test_insert_binds_parameters(mysql_loader, cursor):
    cursor.execute.return_value = 1

    affected = mysql_loader.insert_row("customers", {"id": "c1", "name": None, "meta": '{"a":1}'})

    assert affected == 1
    cursor.execute.assert_called_once_with(
        "INSERT INTO `customers` (`id`, `name`, `meta`) VALUES (%s, %s, %s)",
        ["c1", None, '{"a":1}'],
    )


def test_insert_ignore(mysql_loader, cursor):
    cursor.execute.return_value = 0

    assert mysql_loader.insert_row("customers", {"id": "c1"}, ignore=True) == 0
    assert cursor.execute.call_args[0][0].startswith("INSERT IGNORE INTO `customers`")


def test_find_and_update(mysql_loader, cursor):
    cursor.fetchone.return_value = {"id": "u1", "email": "a@example.com"}

    assert mysql_loader.find_by_pk("users", "id", "u1") == {"id": "u1", "email": "a@example.com"}
    mysql_loader.update_row("users", "id", "u1", {"email": "b@example.com", "phone": None})

    assert cursor.execute.call_args_list == [
        call("SELECT * FROM `users` WHERE `id` = %s LIMIT 1", ["u1"]),
        call("UPDATE `users` SET `email` = %s, `phone` = %s WHERE `id` = %s", ["b@example.com", None, "u1"]),
    ]


def test_count_rows(mysql_loader, cursor):
    cursor.fetchone.return_value = {"count": 12}
    assert mysql_loader.count_rows("job_cards") == 12
    cursor.execute.assert_called_once_with("SELECT COUNT(*) AS count FROM `job_cards`", None)


def test_row_errors_propagate_unchanged(mysql_loader, cursor):
    cursor.execute.side_effect = pymysql.err.IntegrityError(1062, "Duplicate entry 'c1' for key 'PRIMARY'")
    with pytest.raises(pymysql.err.IntegrityError):
        mysql_loader.insert_row("customers", {"id": "c1"})


def test_lost_connection_becomes_target_error(mysql_loader, cursor):
    cursor.execute.side_effect = pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
    with pytest.raises(TargetConnectionError):
        mysql_loader.insert_row("customers", {"id": "c1"})


def test_is_connection_lost():
    assert is_connection_lost(pymysql.err.OperationalError(2006, "MySQL server has gone away"))
    assert is_connection_lost(pymysql.err.InterfaceError(0, ""))
    assert not is_connection_lost(pymysql.err.OperationalError(1054, "Unknown column 'x'"))
    assert not is_connection_lost(pymysql.err.IntegrityError(1062, "Duplicate entry"))


def test_savepoints_and_transactions(mysql_loader, connection, cursor):
    with mysql_loader.transaction():
        with pytest.raises(ValueError):
            with mysql_loader.savepoint():
                raise ValueError("bad row")
        with mysql_loader.savepoint():
            pass

    statements = [c[0][0] for c in cursor.execute.call_args_list]
    assert statements == [
        "SAVEPOINT sp_1",
        "ROLLBACK TO SAVEPOINT sp_1",
        "SAVEPOINT sp_2",
        "RELEASE SAVEPOINT sp_2",
    ]
    connection.begin.assert_called_once()
    connection.commit.assert_called_once()
    connection.rollback.assert_not_called()


def test_transaction_rolls_back_on_error(mysql_loader, connection):
    with pytest.raises(RuntimeError):
        with mysql_loader.transaction():
            raise RuntimeError("boom")
    connection.rollback.assert_called_once()
    connection.commit.assert_not_called()


def test_open_wraps_connect_errors():
    connect = MagicMock(side_effect=pymysql.err.OperationalError(2003, "Can't connect to MySQL server on 'db'"))
    loader = MySQLLoader(MySQLConfig(host="db"), connect=connect)

    with pytest.raises(TargetConnectionError) as excinfo:
        loader.open()
    assert "Can't connect to MySQL server on 'db'" in str(excinfo.value)


def test_context_manager_closes_connection():
    conn = MagicMock()
    connect = MagicMock(return_value=conn)

    with MySQLLoader(MySQLConfig(), connect=connect) as loader:
        assert loader.connection is conn

    conn.close.assert_called_once()
    with pytest.raises(TargetConnectionError):
        loader.connection


def test_connect_with_retry_backs_off():
    conn = MagicMock()
    connect = MagicMock(side_effect=[
        pymysql.err.OperationalError(2003, "refused"),
        pymysql.err.OperationalError(2003, "refused"),
        conn,
    ])
    delays = []
    loader = MySQLLoader(MySQLConfig(), connect=connect)

    loader.connect_with_retry(sleep=delays.append)

    assert delays == [1.0, 2.0]
    assert loader.connection is conn


def test_connect_with_retry_gives_up():
    connect = MagicMock(side_effect=pymysql.err.OperationalError(2003, "refused"))
    loader = MySQLLoader(MySQLConfig(), connect=connect)

    with pytest.raises(TargetConnectionError):
        loader.connect_with_retry(sleep=lambda s: None)
    assert connect.call_count == 3


def test_connect_with_retry_retries_database_creation():
    conn = MagicMock()
    connect = MagicMock(side_effect=[pymysql.err.OperationalError(2003, "refused"), conn, conn])
    delays = []
    loader = MySQLLoader(MySQLConfig(database="shadow"), connect=connect)

    loader.connect_with_retry(sleep=delays.append, create_database=True)

    assert delays == [1.0]
    assert connect.call_count == 3
    assert "database" not in connect.call_args_list[1].kwargs
    assert connect.call_args_list[2].kwargs["database"] == "shadow"
    assert loader.connection is conn


def test_ensure_database():
    server = MagicMock()
    server_cursor = MagicMock()
    server.cursor.return_value.__enter__.return_value = server_cursor
    connect = MagicMock(return_value=server)

    MySQLLoader(MySQLConfig(database="shadow"), connect=connect).ensure_database()

    assert "database" not in connect.call_args.kwargs
    server_cursor.execute.assert_called_once_with(
        "CREATE DATABASE IF NOT EXISTS `shadow` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
    )
    server.close.assert_called_once()


def test_ping(mysql_loader, cursor):
    cursor.fetchone.side_effect = [{"version": "8.0.36"}, {"count": 27}]

    result = mysql_loader.ping()

    assert result == {
        "ok": True,
        "details": {"version": "8.0.36", "database": "shadow", "tables": 27, "connection": "active"},
    }


def test_ping_returns_driver_message(mysql_loader, cursor):
    cursor.execute.side_effect = pymysql.err.OperationalError(1045, "Access denied for user 'root'@'localhost'")

    assert mysql_loader.ping() == {"ok": False, "error": "Access denied for user 'root'@'localhost'"}
