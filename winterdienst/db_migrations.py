"""Lightweight SQLite migration runner for Winterdienst."""

from __future__ import annotations

import argparse
import logging
import sqlite3
from pathlib import Path
from typing import Callable, Iterable

from . import database
from . import models

logger = logging.getLogger(__name__)

MigrationFn = Callable[[sqlite3.Connection], None]

SEQUENCES = ("report_number", "invoice_number")


def _columns(connection: sqlite3.Connection, table: str) -> set[str]:
    cursor = connection.execute(f"PRAGMA table_info('{table}')")
    return {row[1] for row in cursor.fetchall()}


def _baseline(_connection: sqlite3.Connection) -> None:
    """Tables are created by the runner before the steps are applied."""
    return None


def _add_street_bg_flag(connection: sqlite3.Connection) -> None:
    if "is_bg" not in _columns(connection, "streets"):
        connection.execute("ALTER TABLE streets ADD COLUMN is_bg INTEGER NOT NULL DEFAULT 0")
        connection.commit()


def _seed_number_sequences(connection: sqlite3.Connection) -> None:
    for name in SEQUENCES:
        connection.execute(
            "INSERT OR IGNORE INTO number_sequences (name, next_value) VALUES (?, ?)",
            (name, 1000),
        )
    connection.commit()


MIGRATIONS: list[tuple[int, MigrationFn]] = [
    (1, _baseline),
    (2, _add_street_bg_flag),
    (3, _seed_number_sequences),
]


def _apply_migrations(connection: sqlite3.Connection, migrations: Iterable[tuple[int, MigrationFn]]) -> None:
    cursor = connection.execute("PRAGMA user_version")
    row = cursor.fetchone()
    current_version = int(row[0]) if row else 0
    for version, upgrade in migrations:
        if version <= current_version:
            continue
        logger.info("Applying migration %s (%s)", version, upgrade.__name__)
        upgrade(connection)
        connection.execute(f"PRAGMA user_version = {version}")
        connection.commit()


def current_version(database_path: Path) -> int:
    with sqlite3.connect(database_path) as connection:
        row = connection.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def run(database_path: Path) -> None:
    database_path.parent.mkdir(parents=True, exist_ok=True)
    engine = database.make_engine(f"sqlite:///{database_path}")
    try:
        models.Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()
    with sqlite3.connect(database_path) as connection:
        connection.execute("PRAGMA foreign_keys = ON")
        _apply_migrations(connection, MIGRATIONS)


def main(argv: list[str] | None = None) -> None:
    default_path = Path(database.SQLALCHEMY_DATABASE_URL.replace("sqlite:///", ""))
    parser = argparse.ArgumentParser(description="Führt SQLite-Migrationen für Winterdienst aus.")
    parser.add_argument("--database", default=str(default_path), help="Pfad zur SQLite-Datenbank")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    run(Path(args.database))


if __name__ == "__main__":
    main()
