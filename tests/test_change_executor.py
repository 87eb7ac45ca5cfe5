"""
Tests for online ADD INDEX generation and execution.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import FakeTarget
from safeddl.connectors.mysql_target import MySQLTarget
from safeddl.core.change_executor import ChangeExecutor, build_add_index_sql
from safeddl.core.errors import IdentifierValidationError
from safeddl.models import IndexChange


def test_add_index_sql_shape() -> None:
    assert (
        build_add_index_sql("orders", "idx_orders_customer_id", ["customer_id"])
        == "ALTER TABLE `orders` ADD INDEX `idx_orders_customer_id` (`customer_id`) "
        "ALGORITHM=INPLACE, LOCK=NONE"
    )


def test_add_index_sql_keeps_column_order() -> None:
    sql = build_add_index_sql("orders", "idx_cust_created", ["customer_id", "created_at"])
    assert "(`customer_id`, `created_at`)" in sql


@pytest.mark.asyncio
async def test_apply_runs_exactly_one_statement() -> None:
    target = FakeTarget()

    applied = await ChangeExecutor(target).apply_add_index(
        "orders", "idx_orders_customer_id", ["customer_id"]
    )

    assert target.executed == [applied.applied_sql]
    assert applied.columns == ("customer_id",)


@pytest.mark.parametrize(
    "table,index,columns",
    [
        ("orders;", "idx", ["a"]),
        ("orders", "idx`x", ["a"]),
        ("orders", "idx", []),
        ("orders", "idx", ["a", "b c"]),
    ],
)
@pytest.mark.asyncio
async def test_invalid_input_never_reaches_database(table, index, columns) -> None:
    target = FakeTarget()

    with pytest.raises(IdentifierValidationError):
        await ChangeExecutor(target).apply_add_index(table, index, columns)

    assert target.executed == []


@pytest.mark.asyncio
async def test_database_error_propagates_unchanged() -> None:
    error = RuntimeError("(1061, \"Duplicate key name 'idx_orders_customer_id'\")")
    target = FakeTarget(fail_on={"ADD INDEX": error})

    with pytest.raises(RuntimeError) as excinfo:
        await ChangeExecutor(target).apply_add_index(
            "orders", "idx_orders_customer_id", ["customer_id"]
        )

    assert excinfo.value is error


@pytest.mark.asyncio
async def test_index_exists_uses_bound_parameters() -> None:
    target = FakeTarget(index_count=1)

    assert await ChangeExecutor(target).index_exists("orders", "idx_orders_customer_id")

    query, params = target.lookups[0]
    assert "information_schema.STATISTICS" in query
    assert params == ("orders", "idx_orders_customer_id")


@pytest.mark.asyncio
async def test_index_missing_or_lookup_failure_is_false() -> None:
    assert not await ChangeExecutor(FakeTarget(index_count=0)).index_exists("orders", "idx")
    assert not await ChangeExecutor(
        FakeTarget(index_count=ConnectionError("gone"))
    ).index_exists("orders", "idx")


@pytest.mark.asyncio
async def test_target_connection_is_closed_on_error() -> None:
    cursor = MagicMock()
    cursor.execute = AsyncMock(side_effect=RuntimeError("lock wait timeout"))
    cursor_cm = MagicMock()
    cursor_cm.__aenter__ = AsyncMock(return_value=cursor)
    cursor_cm.__aexit__ = AsyncMock(return_value=False)
    conn = MagicMock()
    conn.cursor.return_value = cursor_cm

    target = MySQLTarget("db", 3306, "optimizer", "secret", "shop")
    with patch(
        "safeddl.connectors.mysql_target.aiomysql.connect",
        new_callable=AsyncMock,
        return_value=conn,
    ) as connect:
        with pytest.raises(RuntimeError, match="lock wait timeout"):
            await ChangeExecutor(target).apply_add_index("orders", "idx", ["customer_id"])

    connect.assert_awaited_once()
    assert connect.await_args.kwargs["autocommit"] is True
    conn.close.assert_called_once()


@pytest.mark.asyncio
async def test_apply_index_change() -> None:
    target = FakeTarget()
    change = IndexChange(
        table_name="orders", index_name="idx_cust_created", columns=["customer_id", "created_at"]
    )

    applied = await ChangeExecutor(target).apply(change)

    assert applied.index_name == "idx_cust_created"
    assert target.executed == [
        "ALTER TABLE `orders` ADD INDEX `idx_cust_created` (`customer_id`, `created_at`) "
        "ALGORITHM=INPLACE, LOCK=NONE"
    ]
