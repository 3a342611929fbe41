from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")


@dataclass(frozen=True)
class MigrationFile:
    version: str
    name: str
    ext: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version}_{self.name}.{self.ext}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _checksum_file(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _ensure_migration_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _load_applied(conn: sqlite3.Connection) -> dict[str, tuple[str, str]]:
    cur = conn.cursor()
    cur.execute("SELECT version, name, checksum FROM schema_migrations")
    return {str(version): (str(name), str(checksum)) for version, name, checksum in cur.fetchall()}


def discover_migrations(migrations_dir: str | Path) -> list[MigrationFile]:
    base = Path(migrations_dir)
    if not base.exists():
        raise RuntimeError(f"Migrations directory not found: {migrations_dir}")
    found: list[MigrationFile] = []
    for p in sorted(base.iterdir()):
        m = MIGRATION_RE.match(p.name) if p.is_file() else None
        if m:
            found.append(MigrationFile(m.group(1), m.group(2), m.group(3), p))
    return found


def _run_py(conn: sqlite3.Connection, path: Path) -> None:
    spec = importlib.util.spec_from_file_location(f"warden_migration_{path.stem}", str(path))
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Could not load migration module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise RuntimeError(f"Python migration missing upgrade(conn): {path}")
    upgrade(conn)


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str | Path) -> list[str]:
    """
    Apply pending migrations in version order and return their labels.

    An already-applied version whose name or checksum changed on disk is a hard
    error; edited migrations need a new version number.
    """
    _ensure_migration_table(conn)
    applied = _load_applied(conn)
    newly_applied: list[str] = []

    for mig in discover_migrations(migrations_dir):
        checksum = _checksum_file(mig.path)
        existing = applied.get(mig.version)
        if existing:
            old_name, old_checksum = existing
            if old_name != mig.name or old_checksum != checksum:
                raise RuntimeError(
                    f"Migration version {mig.version} already applied with different content "
                    f"(existing name={old_name}, file name={mig.name})."
                )
            continue

        print(f"[DB] Applying migration {mig.label}")
        if mig.ext == "sql":
            conn.executescript(mig.path.read_text(encoding="utf-8"))
        else:
            _run_py(conn, mig.path)

        conn.execute(
            "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
            (mig.version, mig.name, checksum, _utc_now_iso()),
        )
        conn.commit()
        newly_applied.append(mig.label)
    return newly_applied


def table_columns_sync(conn: sqlite3.Connection, table: str) -> list[str]:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    return [str(row[1]) for row in cur.fetchall()]


def verify_schema_sync(conn: sqlite3.Connection, expected: dict[str, tuple[str, ...]]) -> list[str]:
    """Return one problem line per table that is missing or lacks an expected column."""
    problems: list[str] = []
    for table, columns in expected.items():
        have = set(table_columns_sync(conn, table))
        if not have:
            problems.append(f"{table}: missing")
            continue
        missing = [c for c in columns if c not in have]
        if missing:
            problems.append(f"{table}: missing columns {', '.join(missing)}")
    return problems


def list_schema_migrations_sync(conn: sqlite3.Connection, limit: int = 30) -> list[tuple[str, str, str]]:
    cur = conn.cursor()
    cur.execute(
        "SELECT version, name, applied_at_utc FROM schema_migrations ORDER BY version DESC LIMIT ?",
        (max(1, int(limit)),),
    )
    return [(str(v), str(n), str(a)) for v, n, a in cur.fetchall()]
