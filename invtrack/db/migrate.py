"""Tiny home-grown migrations for databases created by older releases."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

# Idempotent, additive only. Columns are added and indexes created; nothing is
# dropped. ``Base.metadata.create_all`` handles brand-new databases.


def _table_columns(engine: Engine, table: str) -> list[dict[str, object]]:
    """Fetch SQLite's description of a table so we know what columns exist."""

    with engine.connect() as conn:
        return conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()


def _column_names(engine: Engine, table: str) -> set[str]:
    return {record["name"] for record in _table_columns(engine, table)}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    """ALTER TABLE ADD COLUMN helper."""
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def _ensure_columns(engine: Engine, table: str, needed: dict[str, str]) -> None:
    existing = _column_names(engine, table)
    if not existing:
        return
    for name, dtype in needed.items():
        if name not in existing:
            _add_column_sqlite(engine, table, f"{name} {dtype}")


def _backfill_category_tags(engine: Engine) -> None:
    """Older releases marked valuable items by a category literally named ``Tagged_Item``
    or by an ``is_valuable`` copy on the item; fold both into ``categories.tagged``."""

    with engine.begin() as conn:
        conn.execute(text("UPDATE categories SET tagged = 1 WHERE lower(name) = 'tagged_item'"))
    if "is_valuable" in _column_names(engine, "items"):
        with engine.begin() as conn:
            conn.execute(
                text(
                    """
                    UPDATE categories SET tagged = 1
                    WHERE id IN (SELECT DISTINCT category_id FROM items WHERE is_valuable = 1)
                    """
                )
            )


def _deduplicate(engine: Engine, table: str, key_cols: Iterable[str]) -> None:
    """Keep the newest row per key so a unique index can be created on old data."""

    cols = ", ".join(key_cols)
    with engine.begin() as conn:
        conn.execute(
            text(
                f"""
                DELETE FROM {table}
                WHERE id NOT IN (SELECT MAX(id) FROM {table} GROUP BY {cols})
                """
            )
        )


def _has_duplicate_snapshot_rows(engine: Engine) -> bool:
    with engine.connect() as conn:
        row = conn.execute(
            text(
                """
                SELECT 1 FROM monthly_inventories
                WHERE item_id IS NOT NULL
                GROUP BY department_id, item_id, month, year
                HAVING COUNT(*) > 1
                LIMIT 1
                """
            )
        ).first()
    return row is not None


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite schema up to date with the models."""

    if engine.dialect.name != "sqlite":
        return

    _ensure_columns(engine, "categories", {"tagged": "BOOLEAN DEFAULT 0 NOT NULL", "department_id": "INTEGER"})
    _ensure_columns(engine, "items", {"deleted_at": "TEXT", "article_number": "TEXT", "created_at": "TEXT"})
    _ensure_columns(
        engine,
        "monthly_inventories",
        {"notes": "TEXT DEFAULT '' NOT NULL", "category_id": "INTEGER", "updated_at": "TEXT"},
    )
    _ensure_columns(
        engine,
        "users",
        {"failed_attempts": "INTEGER DEFAULT 0 NOT NULL", "locked_until": "TEXT", "created_at": "TEXT"},
    )
    _ensure_columns(engine, "spot_inventories", {"note": "TEXT DEFAULT '' NOT NULL"})

    if _column_names(engine, "categories") and _column_names(engine, "items"):
        _backfill_category_tags(engine)

    unique_keys = {
        "thresholds": ("uq_thresholds_area_item", ("area_id", "item_id")),
        "area_items": ("uq_area_items_area_item", ("area_id", "item_id")),
    }
    for table, (name, cols) in unique_keys.items():
        if _column_names(engine, table):
            _deduplicate(engine, table, cols)
            _create_index_if_not_exists(engine, table, name, cols, unique=True)

    if _column_names(engine, "monthly_inventories") and not _has_duplicate_snapshot_rows(engine):
        # Historical imports may hold several rows per item and period; those
        # are summed on read, so the index only goes on once the data allows it.
        _create_index_if_not_exists(
            engine,
            "monthly_inventories",
            "uq_monthly_dept_item_period",
            ("department_id", "item_id", "month", "year"),
            unique=True,
        )

    if _column_names(engine, "records"):
        _create_index_if_not_exists(engine, "records", "ix_records_area_latest", ("area_id", "inventory_date", "created_at"))
