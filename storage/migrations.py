"""Ad-hoc database migrations for ShopSync."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_sync_item_columns(conn) -> None:
    # Queue tables created before these columns existed get them added in place.
    columns = {
        "last_result": "TEXT",
        "device_origin": "TEXT",
        "priority": "INTEGER NOT NULL DEFAULT 0",
        "next_retry_at": "DATETIME",
        "updated_at": "DATETIME",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "sync_item", name):
            conn.execute(text(f"ALTER TABLE sync_item ADD COLUMN {name} {ddl_type}"))

    conn.execute(
        text(
            """
            UPDATE sync_item
            SET updated_at = created_at
            WHERE updated_at IS NULL
            """
        )
    )


def ensure_sync_item_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_sync_item_owner_status_order
            ON sync_item (owner_id, status, priority, created_at)
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_sync_item_status_retry
            ON sync_item (status, next_retry_at)
            """
        )
    )


def run_all(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    with engine.begin() as conn:
        ensure_sync_item_columns(conn)
        # SQLModel creates the indexes on new tables; legacy databases need them added
        ensure_sync_item_indexes(conn)


__all__ = ["run_all"]
