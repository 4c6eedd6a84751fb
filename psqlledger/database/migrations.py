"""
Schema migrations for the PostgreSQL backend.

Migrations are plain SQL files named `<version>_<name>.up.sql` (matching
`.down.sql` files are ignored here). The current version is kept as a single
row in `schema_migrations`. Each pending file runs in its own transaction
together with the version bump, so a failing script leaves the previous
version in place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from psycopg import AsyncConnection

from psqlledger.errors import MigrationError
from psqlledger.utils.logging import get_logger

log = get_logger(__name__)

_FILENAME = re.compile(r"^(?P<version>\d+)_(?P<name>.+)\.up\.sql$")

_CREATE_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version BIGINT NOT NULL PRIMARY KEY,
    dirty BOOLEAN NOT NULL
);
"""


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    path: Path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover_migrations(migrations_path: str | Path) -> List[Migration]:
    """
    Collect `*.up.sql` files under `migrations_path`, ordered by version.

    Raises
    ------
    MigrationError
        If the directory does not exist or two files share a version.
    """
    root = Path(migrations_path)
    if not root.is_dir():
        raise MigrationError(f"migrations directory '{root}' not found")

    migrations: List[Migration] = []
    for path in root.iterdir():
        match = _FILENAME.match(path.name)
        if match:
            migrations.append(
                Migration(version=int(match["version"]), name=match["name"], path=path)
            )
    migrations.sort(key=lambda m: m.version)

    versions = [m.version for m in migrations]
    if len(versions) != len(set(versions)):
        raise MigrationError(f"duplicate migration versions in '{root}'")
    return migrations


async def _current_version(conn: AsyncConnection) -> Tuple[Optional[int], bool]:
    await conn.execute(_CREATE_VERSION_TABLE)
    cur = await conn.execute("SELECT version, dirty FROM schema_migrations LIMIT 1;")
    row = await cur.fetchone()
    if row is None:
        return None, False
    return int(row[0]), bool(row[1])


async def apply_migrations(conn: AsyncConnection, migrations_path: str | Path) -> List[int]:
    """
    Bring the connected database up to the newest migration.

    Parameters
    ----------
    conn : AsyncConnection
        An autocommit connection; each migration opens its own transaction.
    migrations_path : str | Path
        Directory holding the `*.up.sql` files.

    Returns
    -------
    List[int]
        Versions applied by this call, empty when already up to date.
    """
    migrations = discover_migrations(migrations_path)
    current, dirty = await _current_version(conn)
    if dirty:
        raise MigrationError(f"schema version {current} is dirty; fix it manually")

    applied: List[int] = []
    for migration in migrations:
        if current is not None and migration.version <= current:
            continue
        log.debug(
            "Applying migration",
            extra={"version": migration.version, "migration": migration.name},
        )
        async with conn.transaction():
            await conn.execute(migration.read())  # type: ignore[arg-type]
            await conn.execute("DELETE FROM schema_migrations;")
            await conn.execute(
                "INSERT INTO schema_migrations (version, dirty) VALUES (%s, FALSE);",
                (migration.version,),
            )
        applied.append(migration.version)

    return applied


__all__ = ["Migration", "discover_migrations", "apply_migrations"]
