"""Core database operations for the local work item store.

Single source of truth for all SQLite operations. The CLI, the HTTP API and
the async store adapter all import from this module. No daemon, no sync --
just direct SQLite with WAL mode.

Convention-based discovery: each project has a `.decomposer/` directory
containing `decomposer.db` (SQLite), `config.json` (project name, id prefix,
hierarchy rules, known users) and `settings.json` (tag/assignment policy).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sqlite3
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from decomposer.rules import HierarchyRuleSet
from decomposer.types.core import CommentRecord, ISOTimestamp, ProjectConfig, WorkItemDict
from decomposer.validation import sanitize_tag, sanitize_title

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

DECOMPOSER_DIR_NAME = ".decomposer"
DB_FILENAME = "decomposer.db"
CONFIG_FILENAME = "config.json"
SETTINGS_FILENAME = "settings.json"


def find_decomposer_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .decomposer/ directory.

    Returns the .decomposer/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / DECOMPOSER_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {DECOMPOSER_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(decomposer_dir: Path) -> ProjectConfig:
    """Read .decomposer/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="decomposer", project=decomposer_dir.resolve().parent.name, version=1)
    config_path = decomposer_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(result, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    return result


def write_config(decomposer_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .decomposer/config.json."""
    config_path = decomposer_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def load_rules(decomposer_dir: Path) -> HierarchyRuleSet:
    """Hierarchy rules from config.json, or the built-in defaults.

    Invalid rules in the config are logged and replaced by the defaults so a
    typo never leaves a session with no creatable types at all.
    """
    raw = read_config(decomposer_dir).get("hierarchy_rules")
    if raw is None:
        return HierarchyRuleSet.default()
    try:
        return HierarchyRuleSet.from_dict(raw)
    except ValueError as exc:
        logger.warning("Invalid hierarchy_rules in %s, using defaults: %s", decomposer_dir / CONFIG_FILENAME, exc)
        return HierarchyRuleSet.default()


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS work_items (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    title          TEXT NOT NULL,
    type           TEXT NOT NULL,
    parent_id      INTEGER REFERENCES work_items(id) ON DELETE SET NULL,
    assignee       TEXT DEFAULT '',
    area_path      TEXT DEFAULT '',
    iteration_path TEXT DEFAULT '',
    created_by     TEXT DEFAULT '',
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_work_items_parent ON work_items(parent_id);
CREATE INDEX IF NOT EXISTS idx_work_items_type ON work_items(type);

CREATE TABLE IF NOT EXISTS tags (
    item_id INTEGER NOT NULL REFERENCES work_items(id),
    tag     TEXT NOT NULL,
    PRIMARY KEY (item_id, tag)
);

CREATE TABLE IF NOT EXISTS comments (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id    INTEGER NOT NULL REFERENCES work_items(id),
    author     TEXT DEFAULT '',
    text       TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_comments_item ON comments(item_id, created_at);
"""

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class WorkItem:
    id: int
    title: str
    type: str
    parent_id: int | None = None
    assignee: str = ""
    area_path: str = ""
    iteration_path: str = ""
    created_by: str = ""
    created_at: str = ""
    updated_at: str = ""
    # Computed (not stored directly)
    tags: list[str] = field(default_factory=list)
    children: list[int] = field(default_factory=list)

    def to_dict(self) -> WorkItemDict:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "parent_id": self.parent_id,
            "assignee": self.assignee,
            "area_path": self.area_path,
            "iteration_path": self.iteration_path,
            "tags": self.tags,
            "created_at": ISOTimestamp(self.created_at),
            "updated_at": ISOTimestamp(self.updated_at),
            "children": self.children,
        }


# ---------------------------------------------------------------------------
# WorkItemDB -- the core
# ---------------------------------------------------------------------------


class WorkItemDB:
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and API."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        project: str = "decomposer",
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.project = project
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> WorkItemDB:
        """Create a WorkItemDB by discovering .decomposer/ from project_path (or cwd)."""
        decomposer_dir = find_decomposer_root(project_path)
        config = read_config(decomposer_dir)
        db = cls(
            decomposer_dir / DB_FILENAME,
            project=config.get("project", decomposer_dir.resolve().parent.name),
            check_same_thread=check_same_thread,
        )
        db.initialize()
        return db

    def __enter__(self) -> WorkItemDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables for a fresh database and stamp the schema version."""
        if self.get_schema_version() == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -- Work item CRUD ------------------------------------------------------

    def create_item(
        self,
        title: str,
        *,
        type: str,
        parent_id: int | None = None,
        assignee: str = "",
        area_path: str = "",
        iteration_path: str = "",
        tags: list[str] | None = None,
        comment: str = "",
        actor: str = "",
    ) -> WorkItem:
        """Insert a work item (plus tags and optional comment) in one transaction.

        Empty area/iteration paths are inherited from the parent item.
        """
        title, err = sanitize_title(title)
        if err:
            raise ValueError(err)
        if not type or not type.strip():
            msg = "Work item type cannot be empty"
            raise ValueError(msg)
        cleaned_tags: list[str] = []
        for tag in tags or []:
            cleaned, err = sanitize_tag(tag)
            if err:
                raise ValueError(err)
            if cleaned not in cleaned_tags:
                cleaned_tags.append(cleaned)

        if parent_id is not None:
            parent = self.conn.execute(
                "SELECT area_path, iteration_path FROM work_items WHERE id = ?", (parent_id,)
            ).fetchone()
            if parent is None:
                msg = f"parent_id {parent_id} does not reference an existing work item"
                raise ValueError(msg)
            area_path = area_path or parent["area_path"]
            iteration_path = iteration_path or parent["iteration_path"]

        now = _now_iso()
        try:
            cursor = self.conn.execute(
                "INSERT INTO work_items (title, type, parent_id, assignee, area_path, iteration_path, "
                "created_by, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (title, type, parent_id, assignee, area_path, iteration_path, actor, now, now),
            )
            item_id = cursor.lastrowid
            if item_id is None:  # pragma: no cover -- INSERT always sets lastrowid
                msg = "INSERT did not produce a lastrowid"
                raise RuntimeError(msg)
            self.conn.executemany(
                "INSERT OR IGNORE INTO tags (item_id, tag) VALUES (?, ?)",
                [(item_id, tag) for tag in cleaned_tags],
            )
            if comment.strip():
                self.conn.execute(
                    "INSERT INTO comments (item_id, author, text, created_at) VALUES (?, ?, ?, ?)",
                    (item_id, actor, comment, now),
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.debug("Created work item %d (%s) under %s", item_id, type, parent_id)
        return self.get_item(item_id)

    def get_item(self, item_id: int) -> WorkItem:
        row = self.conn.execute("SELECT * FROM work_items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            msg = f"Work item not found: {item_id}"
            raise KeyError(msg)
        return self._build_item(row)

    def _build_item(self, row: sqlite3.Row) -> WorkItem:
        item_id = row["id"]
        tags = [r["tag"] for r in self.conn.execute("SELECT tag FROM tags WHERE item_id = ? ORDER BY rowid", (item_id,))]
        children = [r["id"] for r in self.conn.execute("SELECT id FROM work_items WHERE parent_id = ? ORDER BY id", (item_id,))]
        return WorkItem(
            id=item_id,
            title=row["title"],
            type=row["type"],
            parent_id=row["parent_id"],
            assignee=row["assignee"] or "",
            area_path=row["area_path"] or "",
            iteration_path=row["iteration_path"] or "",
            created_by=row["created_by"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            tags=tags,
            children=children,
        )

    def list_items(
        self,
        *,
        type: str | None = None,
        parent_id: int | None = None,
        assignee: str | None = None,
        tag: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[WorkItem]:
        if limit < 0:
            limit = 100
        if offset < 0:
            offset = 0
        conditions: list[str] = []
        params: list[Any] = []
        if type is not None:
            conditions.append("type = ?")
            params.append(type)
        if parent_id is not None:
            conditions.append("parent_id = ?")
            params.append(parent_id)
        if assignee is not None:
            conditions.append("assignee = ?")
            params.append(assignee)
        if tag is not None:
            conditions.append("id IN (SELECT item_id FROM tags WHERE tag = ?)")
            params.append(tag)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.conn.execute(
            f"SELECT * FROM work_items {where} ORDER BY id LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [self._build_item(r) for r in rows]

    def get_descendants(self, item_id: int) -> list[WorkItem]:
        """All items below *item_id*, depth-first in creation order."""
        result: list[WorkItem] = []
        for child in self.list_items(parent_id=item_id, limit=10000):
            result.append(child)
            result.extend(self.get_descendants(child.id))
        return result

    # -- Tags ----------------------------------------------------------------

    def add_tag(self, item_id: int, tag: str) -> bool:
        cleaned, err = sanitize_tag(tag)
        if err:
            raise ValueError(err)
        self.get_item(item_id)
        cursor = self.conn.execute("INSERT OR IGNORE INTO tags (item_id, tag) VALUES (?, ?)", (item_id, cleaned))
        self.conn.commit()
        return cursor.rowcount > 0

    def remove_tag(self, item_id: int, tag: str) -> bool:
        cursor = self.conn.execute("DELETE FROM tags WHERE item_id = ? AND tag = ?", (item_id, tag))
        self.conn.commit()
        return cursor.rowcount > 0

    # -- Comments ------------------------------------------------------------

    def add_comment(self, item_id: int, text: str, *, author: str = "") -> int:
        if not text or not text.strip():
            msg = "Comment text cannot be empty"
            raise ValueError(msg)
        self.get_item(item_id)
        cursor = self.conn.execute(
            "INSERT INTO comments (item_id, author, text, created_at) VALUES (?, ?, ?, ?)",
            (item_id, author, text, _now_iso()),
        )
        self.conn.commit()
        rowid = cursor.lastrowid
        if rowid is None:  # pragma: no cover -- INSERT always sets lastrowid
            msg = "INSERT did not produce a lastrowid"
            raise RuntimeError(msg)
        return rowid

    def get_comments(self, item_id: int) -> list[CommentRecord]:
        rows = self.conn.execute(
            "SELECT id, author, text, created_at FROM comments WHERE item_id = ? ORDER BY created_at, id",
            (item_id,),
        ).fetchall()
        return cast(list[CommentRecord], [dict(r) for r in rows])
