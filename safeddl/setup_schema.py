"""
Database Schema Setup Script

Creates the coordinator store tables (executions, audit trail, verification
samples, rollback records, kill switch settings).
Executes the SQL DDL from (rerunnable, idempotent):
- sql/schema/coordinator_tables.sql

Usage:
    python -m safeddl.setup_schema
"""

import asyncio
import sys
from pathlib import Path

import asyncpg

from safeddl.config import settings

SCHEMA_FILES = ["coordinator_tables.sql"]


def read_schema_sql() -> str:
    """Read the schema SQL files and concatenate them."""
    schema_dir = Path(__file__).parent.parent / "sql" / "schema"

    contents: list[str] = []
    for name in SCHEMA_FILES:
        schema_file = schema_dir / name
        if not schema_file.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_file}")
        contents.append(schema_file.read_text())

    return "\n\n".join(contents)


def split_sql_statements(sql_content: str) -> list[str]:
    """Split a DDL script into statements, dropping comment-only lines."""
    statements = []
    current_statement = []

    for line in sql_content.split("\n"):
        stripped = line.strip()

        if not stripped or stripped.startswith("--"):
            continue

        current_statement.append(line)

        if stripped.endswith(";"):
            statements.append("\n".join(current_statement))
            current_statement = []

    return statements


async def execute_sql_statements(conn: asyncpg.Connection, statements: list[str]) -> None:
    total = len(statements)
    print(f"\nFound {total} SQL statements to execute\n")

    for idx, statement in enumerate(statements, 1):
        first_line = statement.strip().split("\n")[0][:80]
        print(f"[{idx}/{total}] Executing: {first_line}...")
        try:
            result = await conn.execute(statement)
            print(f"  ok: {result}")
        except Exception as e:
            print(f"  error: {e}")
            if "already exists" not in str(e).lower():
                raise


async def setup_schema() -> None:
    """Main setup function."""
    print("=" * 80)
    print("safeddl - Coordinator Store Schema Setup")
    print("=" * 80)

    print("\nPostgres Configuration:")
    print(f"  Host: {settings.COORDINATOR_DB_HOST}:{settings.COORDINATOR_DB_PORT}")
    print(f"  User: {settings.COORDINATOR_DB_USER}")
    print(f"  Database: {settings.COORDINATOR_DB_DATABASE}")

    print("\nConnecting to Postgres...")
    conn = await asyncpg.connect(
        host=settings.COORDINATOR_DB_HOST,
        port=settings.COORDINATOR_DB_PORT,
        user=settings.COORDINATOR_DB_USER,
        password=settings.COORDINATOR_DB_PASSWORD,
        database=settings.COORDINATOR_DB_DATABASE,
    )
    try:
        print("  Connected successfully")
        statements = split_sql_statements(read_schema_sql())
        await execute_sql_statements(conn, statements)

        tables = await conn.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """
        )
        print(f"\nTables present ({len(tables)}):")
        for table in tables:
            print(f"  - {table['table_name']}")
    finally:
        await conn.close()

    print("\n" + "=" * 80)
    print("Schema setup complete!")
    print("=" * 80)


def main() -> int:
    try:
        asyncio.run(setup_schema())
    except Exception as e:
        print(f"\nSchema setup failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
