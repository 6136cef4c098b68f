"""Unit tests for MySQLConnector."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from mysql.connector import Error as MySQLError

from querypilot.connectors.base import ConnectionError, QueryError, SchemaError
from querypilot.connectors.mysql import MySQLConnector


def _install_fake_mysql(monkeypatch, connect_impl: Mock) -> None:
    fake_mysql = SimpleNamespace(
        connector=SimpleNamespace(connect=connect_impl),
    )
    monkeypatch.setattr("querypilot.connectors.mysql.mysql", fake_mysql)


def _build_connection(*, with_rows: bool = True, rows: list[dict] | None = None):
    conn = Mock()
    cursor = Mock()
    conn.cursor.return_value = cursor
    cursor.with_rows = with_rows
    cursor.fetchall.return_value = rows or []
    cursor.description = [("id",), ("name",)]
    return conn, cursor


def _connector() -> MySQLConnector:
    return MySQLConnector(host="localhost", port=3306, database="crm", user="root", password="secret")


@pytest.mark.asyncio
async def test_connect_success(monkeypatch):
    conn, cursor = _build_connection()
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    await connector.connect()

    assert connector.is_connected is True
    cursor.execute.assert_called_with("SELECT VERSION()")
    conn.close.assert_called_once()


@pytest.mark.asyncio
async def test_connect_failure_raises_connection_error(monkeypatch):
    _install_fake_mysql(monkeypatch, Mock(side_effect=MySQLError("connection refused")))

    connector = _connector()
    with pytest.raises(ConnectionError, match="Failed to connect"):
        await connector.connect()
    assert connector.is_connected is False


@pytest.mark.asyncio
async def test_execute_returns_rows(monkeypatch):
    conn, cursor = _build_connection(rows=[{"id": 1, "name": "Alice Zhang"}])
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    connector._connected = True
    result = await connector.execute("SELECT id, name FROM `customers` WHERE id = %s", [1])

    assert result.rows == [{"id": 1, "name": "Alice Zhang"}]
    assert result.columns == ["id", "name"]
    cursor.execute.assert_called_with("SELECT id, name FROM `customers` WHERE id = %s", (1,))
    cursor.close.assert_called_once()
    conn.close.assert_called_once()


@pytest.mark.asyncio
async def test_execute_statement_without_rows(monkeypatch):
    conn, _ = _build_connection(with_rows=False)
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    connector._connected = True
    result = await connector.execute("SET @a = 1")

    assert result.row_count == 0
    assert result.columns == []


@pytest.mark.asyncio
async def test_execute_error_raises_query_error(monkeypatch):
    conn, cursor = _build_connection()
    cursor.execute.side_effect = MySQLError("syntax error")
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    connector._connected = True
    with pytest.raises(QueryError, match="Query execution failed"):
        await connector.execute("SELEC 1")


@pytest.mark.asyncio
async def test_read_only_execute_rolls_back_transaction(monkeypatch):
    conn, cursor = _build_connection(rows=[{"id": 1, "name": "Alice Zhang"}])
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    connector._connected = True
    await connector.execute("SELECT id, name FROM `customers`", read_only=True)

    conn.start_transaction.assert_called_once_with(readonly=True)
    conn.rollback.assert_called_once()
    conn.close.assert_called_once()


@pytest.mark.asyncio
async def test_plain_execute_has_no_transaction(monkeypatch):
    conn, _ = _build_connection()
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    connector._connected = True
    await connector.execute("SELECT 1")

    conn.start_transaction.assert_not_called()
    conn.rollback.assert_not_called()


@pytest.mark.asyncio
async def test_execute_requires_connection():
    with pytest.raises(ConnectionError, match="Not connected"):
        await _connector().execute("SELECT 1")


@pytest.mark.asyncio
async def test_get_schema_maps_keys(monkeypatch):
    conn, cursor = _build_connection()
    cursor.fetchall.side_effect = [
        [
            {"table_name": "contacts", "table_type": "BASE TABLE", "table_rows": 50, "table_comment": ""},
            {"table_name": "accounts", "table_type": "BASE TABLE", "table_rows": None, "table_comment": "CRM accounts"},
        ],
        [
            {"table_name": "contacts", "column_name": "id", "column_type": "int", "is_nullable": "NO",
             "column_default": None, "column_key": "PRI", "column_comment": ""},
            {"table_name": "contacts", "column_name": "account_id", "column_type": "int", "is_nullable": "YES",
             "column_default": None, "column_key": "MUL", "column_comment": "owner"},
            {"table_name": "accounts", "column_name": "id", "column_type": "int", "is_nullable": "NO",
             "column_default": None, "column_key": "PRI", "column_comment": ""},
        ],
        [
            {"table_name": "contacts", "column_name": "account_id",
             "referenced_table_name": "accounts", "referenced_column_name": "id"},
        ],
    ]
    _install_fake_mysql(monkeypatch, Mock(return_value=conn))

    connector = _connector()
    connector._connected = True
    tables = await connector.get_schema()

    contacts, accounts = tables
    assert contacts.schema == "crm"
    assert contacts.row_count == 50
    assert contacts.comment is None
    assert contacts.columns[0].is_primary_key is True
    fk = contacts.columns[1]
    assert (fk.is_foreign_key, fk.foreign_table, fk.foreign_column) == (True, "accounts", "id")
    assert fk.comment == "owner"
    assert accounts.row_count is None
    assert accounts.comment == "CRM accounts"


@pytest.mark.asyncio
async def test_get_schema_error(monkeypatch):
    _install_fake_mysql(monkeypatch, Mock(side_effect=MySQLError("access denied")))

    connector = _connector()
    connector._connected = True
    with pytest.raises(SchemaError, match="Failed to introspect schema"):
        await connector.get_schema()


def test_dialect_helpers():
    connector = _connector()
    assert connector.placeholder(3) == "%s"
    assert connector.quote_identifier("order") == "`order`"
    assert connector.text_match_clause("name", 1) == "CAST(`name` AS CHAR) LIKE %s ESCAPE '\\\\'"
