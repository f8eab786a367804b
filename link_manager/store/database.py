"""
SQLite content store.

Links, their metadata rows and the many-to-many association tables live in
one SQLite file. The ``links_fts`` full-text table is a projection of
(url, title, content, summary) keyed by link id; every insert, update and
delete of a link re-projects or removes its index row inside the same
transaction, so the two tables can never disagree.

All access goes through a single connection guarded by a re-entrant lock,
which makes the store safe to call from worker threads (the pipeline
dispatches store calls with ``asyncio.to_thread``).
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any, Iterator

from ..core.errors import DuplicateURLError, LinkNotFoundError, StoreError
from ..core.types import Activity, Category, Link, LinkStatus, Tag, Task
from ..logging_utils import log_event
from .schema import ASSOCIATION_TABLES, SCHEMA, SCHEMA_VERSION

_LINK_COLUMNS = (
    "id, url, title, content, summary, status, created_at, updated_at, fetched_at, summarized_at"
)
_UPDATABLE_FIELDS = ("title", "content", "summary", "status")


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ContentStore:
    """Durable link storage with a synchronized search index.

    Args:
        path: SQLite file path, or ":memory:"
        logger: Optional logger for write events
    """

    def __init__(self, path: str | Path, logger: logging.Logger | None = None):
        self.path = str(path)
        self.logger = logger
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.executescript(SCHEMA)
        self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "ContentStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # -- links -------------------------------------------------------------

    def find_by_url(self, url: str) -> Link | None:
        rows = self._query(f"SELECT {_LINK_COLUMNS} FROM links WHERE url = ?", (url,))
        return _row_to_link(rows[0]) if rows else None

    def get_link(self, link_id: int) -> Link:
        rows = self._query(f"SELECT {_LINK_COLUMNS} FROM links WHERE id = ?", (link_id,))
        if not rows:
            raise LinkNotFoundError(f"link not found: {link_id}")
        return _row_to_link(rows[0])

    def create_link(
        self,
        url: str,
        title: str | None = None,
        content: str | None = None,
        summary: str | None = None,
        status: LinkStatus = LinkStatus.READ_LATER,
        fetched: bool = False,
        summarized: bool = False,
    ) -> Link:
        """Insert a link and its index row in one transaction.

        Raises:
            DuplicateURLError: A link with this URL already exists
        """
        now = utcnow()
        try:
            with self._transaction() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO links (url, title, content, summary, status,
                                       created_at, updated_at, fetched_at, summarized_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        url,
                        _nullable(title),
                        _nullable(content),
                        _nullable(summary),
                        LinkStatus(status).value,
                        now,
                        now,
                        now if fetched else None,
                        now if summarized else None,
                    ),
                )
                link_id = cur.lastrowid
                _project_index(conn, link_id)
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" not in str(exc).upper():
                raise StoreError(f"failed to save link: {exc}") from exc
            existing = self.find_by_url(url)
            raise DuplicateURLError(url, existing.id if existing else None) from exc

        log_event(self.logger, "Link created", level=logging.DEBUG, event="link_created", link_id=link_id, url=url)
        return self.get_link(link_id)

    def update_link(self, link_id: int, **fields: Any) -> Link:
        """Update title/content/summary/status and re-project the index row.

        Empty strings are stored as NULL, matching ``create_link``.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
        if "status" in fields:
            fields["status"] = LinkStatus(fields["status"]).value
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_nullable(value) for value in fields.values()]

        with self._transaction() as conn:
            sql = "UPDATE links SET updated_at = ?"
            if assignments:
                sql += f", {assignments}"
            cur = conn.execute(f"{sql} WHERE id = ?", (utcnow(), *params, link_id))
            if cur.rowcount == 0:
                raise LinkNotFoundError(f"link not found: {link_id}")
            _project_index(conn, link_id)
        return self.get_link(link_id)

    def set_status(self, link_id: int, status: LinkStatus | str) -> Link:
        return self.update_link(link_id, status=status)

    def mark_fetched(self, link_id: int) -> None:
        self._touch(link_id, "fetched_at")

    def mark_summarized(self, link_id: int) -> None:
        self._touch(link_id, "summarized_at")

    def _touch(self, link_id: int, column: str) -> None:
        now = utcnow()
        with self._transaction() as conn:
            cur = conn.execute(
                f"UPDATE links SET {column} = ?, updated_at = ? WHERE id = ?", (now, now, link_id)
            )
            if cur.rowcount == 0:
                raise LinkNotFoundError(f"link not found: {link_id}")

    def delete_link(self, link_id: int) -> None:
        """Delete a link; associations cascade and the index row is removed."""
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM links WHERE id = ?", (link_id,))
            if cur.rowcount == 0:
                raise LinkNotFoundError(f"link not found: {link_id}")
            conn.execute("DELETE FROM links_fts WHERE rowid = ?", (link_id,))
        log_event(self.logger, "Link deleted", level=logging.DEBUG, event="link_deleted", link_id=link_id)

    def list_links(
        self,
        status: LinkStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Link]:
        if status is None:
            rows = self._query(
                f"SELECT {_LINK_COLUMNS} FROM links ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
        else:
            rows = self._query(
                f"SELECT {_LINK_COLUMNS} FROM links WHERE status = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (LinkStatus(status).value, limit, offset),
            )
        return [_row_to_link(row) for row in rows]

    def search(
        self,
        query: str,
        category: str | None = None,
        tags: list[str] | None = None,
        link_type: str | None = None,
        limit: int = 100,
    ) -> list[Link]:
        """Full-text search over url, title, content and summary.

        Args:
            query: Free text; each whitespace-separated term must match
            category: Only links in this category
            tags: Only links carrying all of these tags
            link_type: "task" / "activity" for links associated with one,
                "link" for links associated with neither
            limit: Maximum number of results
        """
        columns = ", ".join(f"l.{col.strip()}" for col in _LINK_COLUMNS.split(","))
        match = _fts_query(query)
        if match:
            sql = (
                f"SELECT {columns} FROM links_fts JOIN links l ON l.id = links_fts.rowid "
                "WHERE links_fts MATCH ?"
            )
            params: list[Any] = [match]
        else:
            sql = f"SELECT {columns} FROM links l WHERE 1 = 1"
            params = []

        if category:
            sql += (
                " AND l.id IN (SELECT lc.link_id FROM link_categories lc"
                " JOIN categories c ON c.id = lc.category_id WHERE c.name = ?)"
            )
            params.append(category)
        for tag in tags or []:
            sql += (
                " AND l.id IN (SELECT lt.link_id FROM link_tags lt"
                " JOIN tags t ON t.id = lt.tag_id WHERE t.name = ?)"
            )
            params.append(tag)
        if link_type == "task":
            sql += " AND EXISTS (SELECT 1 FROM link_tasks WHERE link_id = l.id)"
        elif link_type == "activity":
            sql += " AND EXISTS (SELECT 1 FROM link_activities WHERE link_id = l.id)"
        elif link_type == "link":
            sql += (
                " AND NOT EXISTS (SELECT 1 FROM link_tasks WHERE link_id = l.id)"
                " AND NOT EXISTS (SELECT 1 FROM link_activities WHERE link_id = l.id)"
            )
        elif link_type is not None:
            raise ValueError(f"invalid link type {link_type!r}: must be link, task, or activity")

        sql += " ORDER BY bm25(links_fts)" if match else " ORDER BY l.created_at DESC, l.id DESC"
        sql += " LIMIT ?"
        params.append(limit)
        return [_row_to_link(row) for row in self._query(sql, tuple(params))]

    def count_links(self) -> int:
        return self._query("SELECT COUNT(*) FROM links")[0][0]

    def count_index_rows(self) -> int:
        return self._query("SELECT COUNT(*) FROM links_fts")[0][0]

    # -- categories, tags, tasks, activities ----------------------------------

    def get_category_by_name(self, name: str) -> Category | None:
        rows = self._query("SELECT id, name, description FROM categories WHERE name = ?", (name,))
        return Category(**dict(rows[0])) if rows else None

    def get_or_create_category(self, name: str, description: str | None = None) -> Category:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO categories (name, description) VALUES (?, ?)",
                (name, description),
            )
        category = self.get_category_by_name(name)
        if category is None:
            raise StoreError(f"could not create category: {name}")
        return category

    def list_categories(self) -> list[Category]:
        rows = self._query("SELECT id, name, description FROM categories ORDER BY name")
        return [Category(**dict(row)) for row in rows]

    def delete_category(self, category_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))

    def get_tag_by_name(self, name: str) -> Tag | None:
        rows = self._query("SELECT id, name FROM tags WHERE name = ?", (name,))
        return Tag(**dict(rows[0])) if rows else None

    def get_or_create_tag(self, name: str) -> Tag:
        with self._transaction() as conn:
            conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (name,))
        tag = self.get_tag_by_name(name)
        if tag is None:
            raise StoreError(f"could not create tag: {name}")
        return tag

    def list_tags(self) -> list[Tag]:
        return [Tag(**dict(row)) for row in self._query("SELECT id, name FROM tags ORDER BY name")]

    def delete_tag(self, tag_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))

    def get_or_create_task(self, name: str, description: str | None = None) -> Task:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, name, description, completed FROM tasks WHERE name = ? ORDER BY id LIMIT 1",
                (name,),
            ).fetchone()
            if row is None:
                cur = conn.execute(
                    "INSERT INTO tasks (name, description) VALUES (?, ?)", (name, description)
                )
                return Task(id=cur.lastrowid, name=name, description=description)
        return _row_to_task(row)

    def complete_task(self, task_id: int, completed: bool = True) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE tasks SET completed = ?, updated_at = ? WHERE id = ?",
                (int(completed), utcnow(), task_id),
            )

    def get_or_create_activity(self, name: str, description: str | None = None) -> Activity:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, name, description FROM activities WHERE name = ? ORDER BY id LIMIT 1",
                (name,),
            ).fetchone()
            if row is None:
                cur = conn.execute(
                    "INSERT INTO activities (name, description) VALUES (?, ?)", (name, description)
                )
                return Activity(id=cur.lastrowid, name=name, description=description)
        return Activity(**dict(row))

    # -- associations ------------------------------------------------------------

    def link_association(self, kind: str, link_id: int, other_id: int) -> bool:
        """Associate a link with a category/tag/task/activity.

        Re-linking an existing pair is a no-op.

        Returns:
            True when a new association row was written
        """
        table, column = _association(kind)
        try:
            with self._transaction() as conn:
                cur = conn.execute(
                    f"INSERT OR IGNORE INTO {table} (link_id, {column}) VALUES (?, ?)",
                    (link_id, other_id),
                )
        except sqlite3.IntegrityError as exc:
            raise StoreError(f"cannot link {kind} {other_id} to link {link_id}: {exc}") from exc
        return cur.rowcount > 0

    def unlink_association(self, kind: str, link_id: int, other_id: int) -> None:
        table, column = _association(kind)
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM {table} WHERE link_id = ? AND {column} = ?", (link_id, other_id))

    def unlink_category(self, link_id: int, category_id: int) -> None:
        self.unlink_association("category", link_id, category_id)

    def unlink_tag(self, link_id: int, tag_id: int) -> None:
        self.unlink_association("tag", link_id, tag_id)

    def link_category(self, link_id: int, category_id: int) -> bool:
        return self.link_association("category", link_id, category_id)

    def link_tag(self, link_id: int, tag_id: int) -> bool:
        return self.link_association("tag", link_id, tag_id)

    def link_task(self, link_id: int, task_id: int) -> bool:
        return self.link_association("task", link_id, task_id)

    def link_activity(self, link_id: int, activity_id: int) -> bool:
        return self.link_association("activity", link_id, activity_id)

    def categories_for_link(self, link_id: int) -> list[Category]:
        rows = self._query(
            "SELECT c.id, c.name, c.description FROM categories c "
            "JOIN link_categories lc ON lc.category_id = c.id WHERE lc.link_id = ? ORDER BY c.name",
            (link_id,),
        )
        return [Category(**dict(row)) for row in rows]

    def tags_for_link(self, link_id: int) -> list[Tag]:
        rows = self._query(
            "SELECT t.id, t.name FROM tags t "
            "JOIN link_tags lt ON lt.tag_id = t.id WHERE lt.link_id = ? ORDER BY t.name",
            (link_id,),
        )
        return [Tag(**dict(row)) for row in rows]

    def tasks_for_link(self, link_id: int) -> list[Task]:
        rows = self._query(
            "SELECT t.id, t.name, t.description, t.completed FROM tasks t "
            "JOIN link_tasks lt ON lt.task_id = t.id WHERE lt.link_id = ? ORDER BY t.id",
            (link_id,),
        )
        return [_row_to_task(row) for row in rows]

    def activities_for_link(self, link_id: int) -> list[Activity]:
        rows = self._query(
            "SELECT a.id, a.name, a.description FROM activities a "
            "JOIN link_activities la ON la.activity_id = a.id WHERE la.link_id = ? ORDER BY a.id",
            (link_id,),
        )
        return [Activity(**dict(row)) for row in rows]

    def links_for_category(self, category_id: int) -> list[Link]:
        columns = ", ".join(f"l.{col.strip()}" for col in _LINK_COLUMNS.split(","))
        rows = self._query(
            f"SELECT {columns} FROM links l JOIN link_categories lc ON lc.link_id = l.id "
            "WHERE lc.category_id = ? ORDER BY l.created_at DESC, l.id DESC",
            (category_id,),
        )
        return [_row_to_link(row) for row in rows]

    def count_associations(self, kind: str, link_id: int | None = None) -> int:
        table, _ = _association(kind)
        if link_id is None:
            return self._query(f"SELECT COUNT(*) FROM {table}")[0][0]
        return self._query(f"SELECT COUNT(*) FROM {table} WHERE link_id = ?", (link_id,))[0][0]


def _project_index(conn: sqlite3.Connection, link_id: int) -> None:
    """Replace the index row of ``link_id`` with the current link columns."""
    conn.execute("DELETE FROM links_fts WHERE rowid = ?", (link_id,))
    conn.execute(
        "INSERT INTO links_fts (rowid, url, title, content, summary) "
        "SELECT id, url, title, content, summary FROM links WHERE id = ?",
        (link_id,),
    )


def _fts_query(query: str) -> str:
    # quote every term so FTS5 operators in user input are matched literally
    terms = [term.replace('"', '""') for term in query.split()]
    return " ".join(f'"{term}"' for term in terms if term)


def _association(kind: str) -> tuple[str, str]:
    try:
        return ASSOCIATION_TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown association kind: {kind}") from None


def _nullable(value: Any) -> Any:
    if isinstance(value, str) and value == "":
        return None
    return value


def _row_to_link(row: sqlite3.Row) -> Link:
    data = dict(row)
    data["status"] = LinkStatus(data["status"])
    return Link(**data)


def _row_to_task(row: sqlite3.Row) -> Task:
    data = dict(row)
    data["completed"] = bool(data["completed"])
    return Task(**data)
