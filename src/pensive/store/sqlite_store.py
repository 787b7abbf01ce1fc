"""SQLite-backed taxonomy and rule store.

SqliteTaxonomyStore implements both read contracts using stdlib sqlite3.
Taxonomy records keep their scalar/list fields in a JSON ``data`` column;
story associations live in two link tables so a fandom's full
story-to-tag and story-to-plot-block maps load in one query each.

Rules are read inside a single read transaction so a rule and its ordered
conditions and actions are always observed as one consistent unit.
"""

from __future__ import annotations

import json
import sqlite3
from collections import defaultdict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pensive.errors import StoreReadError
from pensive.models.rules import MalformedCondition, ValidationRule
from pensive.models.taxonomy import Fandom, PlotBlock, Story, Tag, TagClass
from pensive.observability.logging import get_logger
from pensive.store.protocols import TaxonomySnapshot

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS fandoms (
    id        TEXT PRIMARY KEY,
    name      TEXT NOT NULL,
    slug      TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS tags (
    id        TEXT PRIMARY KEY,
    fandom_id TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    data      JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tags_fandom ON tags(fandom_id);

CREATE TABLE IF NOT EXISTS tag_classes (
    id        TEXT PRIMARY KEY,
    fandom_id TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    data      JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tag_classes_fandom ON tag_classes(fandom_id);

CREATE TABLE IF NOT EXISTS plot_blocks (
    id        TEXT PRIMARY KEY,
    fandom_id TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    data      JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_plot_blocks_fandom ON plot_blocks(fandom_id);

CREATE TABLE IF NOT EXISTS stories (
    id        TEXT PRIMARY KEY,
    fandom_id TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    data      JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_stories_fandom ON stories(fandom_id);

CREATE TABLE IF NOT EXISTS story_tags (
    story_id TEXT NOT NULL REFERENCES stories(id) ON DELETE CASCADE,
    tag_id   TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (story_id, tag_id)
);

CREATE TABLE IF NOT EXISTS story_plot_blocks (
    story_id      TEXT NOT NULL REFERENCES stories(id) ON DELETE CASCADE,
    plot_block_id TEXT NOT NULL,
    position      INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (story_id, plot_block_id)
);

CREATE TABLE IF NOT EXISTS validation_rules (
    id         TEXT PRIMARY KEY,
    fandom_id  TEXT NOT NULL,
    name       TEXT NOT NULL,
    category   TEXT NOT NULL DEFAULT 'general',
    priority   INTEGER NOT NULL DEFAULT 0,
    is_active  INTEGER NOT NULL DEFAULT 1,
    applies_to JSON NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_rules_fandom ON validation_rules(fandom_id, is_active);

CREATE TABLE IF NOT EXISTS rule_conditions (
    rule_id  TEXT NOT NULL REFERENCES validation_rules(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    data     JSON NOT NULL,
    PRIMARY KEY (rule_id, position)
);

CREATE TABLE IF NOT EXISTS rule_actions (
    rule_id  TEXT NOT NULL REFERENCES validation_rules(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    data     JSON NOT NULL,
    PRIMARY KEY (rule_id, position)
);
"""

_RECORD_TABLES = {
    "tag": "tags",
    "tag_class": "tag_classes",
    "plot_block": "plot_blocks",
    "story": "stories",
    "rule": "validation_rules",
    "fandom": "fandoms",
}


class SqliteTaxonomyStore:
    """TaxonomyAccessor and RuleStore backed by a SQLite database."""

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """Open or create a taxonomy database.

        Args:
            db_path: Path to ``.db`` file, or ``":memory:"`` for in-memory.
            _conn: Pre-existing connection (for testing). If provided,
                   *db_path* is ignored.
        """
        if _conn is not None:
            self._conn = _conn
            self._db_path = ":memory:"
        else:
            self._db_path = str(db_path)
            self._conn = sqlite3.connect(
                self._db_path,
                isolation_level=None,  # autocommit; transactions are explicit
                check_same_thread=False,
            )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        self._listeners: list[Callable[[str], None]] = []

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def add_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with the fandom id after each write."""
        self._listeners.append(listener)

    def _notify(self, fandom_id: str) -> None:
        for listener in self._listeners:
            listener(fandom_id)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._conn.execute("BEGIN")
        try:
            yield
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")

    # -- Writes ----------------------------------------------------------------

    def add_fandom(self, fandom: Fandom) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO fandoms (id, name, slug, is_active) VALUES (?, ?, ?, ?)",
            (fandom.id, fandom.name, fandom.slug, int(fandom.is_active)),
        )
        self._notify(fandom.id)

    def _put_record(self, table: str, record: Tag | TagClass | PlotBlock | Story) -> None:
        data = record.model_dump(
            mode="json",
            exclude={"id", "fandom_id", "is_active", "tag_ids", "plot_block_ids"},
        )
        self._conn.execute(
            f"INSERT OR REPLACE INTO {table} (id, fandom_id, is_active, data) VALUES (?, ?, ?, ?)",
            (record.id, record.fandom_id, int(record.is_active), json.dumps(data)),
        )

    def add_tag(self, tag: Tag) -> None:
        self._put_record("tags", tag)
        self._notify(tag.fandom_id)

    def add_tag_class(self, tag_class: TagClass) -> None:
        self._put_record("tag_classes", tag_class)
        self._notify(tag_class.fandom_id)

    def add_plot_block(self, plot_block: PlotBlock) -> None:
        self._put_record("plot_blocks", plot_block)
        self._notify(plot_block.fandom_id)

    def add_story(self, story: Story) -> None:
        with self._transaction():
            self._put_record("stories", story)
            self._conn.execute("DELETE FROM story_tags WHERE story_id = ?", (story.id,))
            self._conn.execute("DELETE FROM story_plot_blocks WHERE story_id = ?", (story.id,))
            self._conn.executemany(
                "INSERT OR IGNORE INTO story_tags (story_id, tag_id, position) VALUES (?, ?, ?)",
                [(story.id, tag_id, i) for i, tag_id in enumerate(story.tag_ids)],
            )
            self._conn.executemany(
                "INSERT OR IGNORE INTO story_plot_blocks (story_id, plot_block_id, position) "
                "VALUES (?, ?, ?)",
                [(story.id, pb_id, i) for i, pb_id in enumerate(story.plot_block_ids)],
            )
        self._notify(story.fandom_id)

    def add_rule(self, rule: ValidationRule) -> None:
        """Insert or replace a rule together with its conditions and actions."""
        with self._transaction():
            self._conn.execute("DELETE FROM validation_rules WHERE id = ?", (rule.id,))
            self._conn.execute(
                "INSERT INTO validation_rules "
                "(id, fandom_id, name, category, priority, is_active, applies_to) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    rule.id,
                    rule.fandom_id,
                    rule.name,
                    rule.category,
                    rule.priority,
                    int(rule.is_active),
                    json.dumps(rule.applies_to),
                ),
            )
            self._conn.executemany(
                "INSERT INTO rule_conditions (rule_id, position, data) VALUES (?, ?, ?)",
                [
                    (rule.id, i, json.dumps(_condition_row(c)))
                    for i, c in enumerate(rule.conditions)
                ],
            )
            self._conn.executemany(
                "INSERT INTO rule_actions (rule_id, position, data) VALUES (?, ?, ?)",
                [(rule.id, i, json.dumps(a.model_dump())) for i, a in enumerate(rule.actions)],
            )
        self._notify(rule.fandom_id)

    def deactivate(self, kind: str, record_id: str) -> None:
        """Mark a record inactive.

        Raises:
            ValueError: If ``kind`` is unknown.
            KeyError: If no such record exists.
        """
        if kind not in _RECORD_TABLES:
            msg = f"Unknown record kind: {kind}"
            raise ValueError(msg)
        table = _RECORD_TABLES[kind]
        column = "id" if kind == "fandom" else "fandom_id"
        row = self._conn.execute(
            f"SELECT {column} AS fandom_id FROM {table} WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            raise KeyError(record_id)
        self._conn.execute(f"UPDATE {table} SET is_active = 0 WHERE id = ?", (record_id,))
        self._notify(row["fandom_id"])

    # -- Reads -----------------------------------------------------------------

    def get(self, fandom_id: str, active_only: bool = True) -> TaxonomySnapshot:
        try:
            with self._transaction():
                return self._read_snapshot(fandom_id, active_only)
        except (sqlite3.Error, ValueError) as e:
            raise StoreReadError("get_taxonomy", fandom_id, str(e)) from e

    def _read_snapshot(self, fandom_id: str, active_only: bool) -> TaxonomySnapshot:
        row = self._conn.execute("SELECT * FROM fandoms WHERE id = ?", (fandom_id,)).fetchone()
        fandom = None
        if row is not None:
            fandom = Fandom(
                id=row["id"], name=row["name"], slug=row["slug"], is_active=bool(row["is_active"])
            )
        active_clause = " AND is_active = 1" if active_only else ""

        def records(table: str) -> list[dict[str, Any]]:
            rows = self._conn.execute(
                f"SELECT id, fandom_id, is_active, data FROM {table} "
                f"WHERE fandom_id = ?{active_clause} ORDER BY rowid",
                (fandom_id,),
            ).fetchall()
            return [
                {
                    **json.loads(r["data"]),
                    "id": r["id"],
                    "fandom_id": r["fandom_id"],
                    "is_active": bool(r["is_active"]),
                }
                for r in rows
            ]

        story_tags = self._associations("story_tags", "tag_id", fandom_id)
        story_plot_blocks = self._associations("story_plot_blocks", "plot_block_id", fandom_id)
        stories = tuple(
            Story.model_validate(
                {
                    **data,
                    "tag_ids": story_tags.get(data["id"], []),
                    "plot_block_ids": story_plot_blocks.get(data["id"], []),
                }
            )
            for data in records("stories")
        )
        return TaxonomySnapshot(
            fandom=fandom,
            tags=tuple(Tag.model_validate(d) for d in records("tags")),
            tag_classes=tuple(TagClass.model_validate(d) for d in records("tag_classes")),
            plot_blocks=tuple(PlotBlock.model_validate(d) for d in records("plot_blocks")),
            stories=stories,
            active_only=active_only,
        )

    def _associations(self, table: str, column: str, fandom_id: str) -> dict[str, list[str]]:
        rows = self._conn.execute(
            f"SELECT l.story_id, l.{column} AS item_id FROM {table} l "
            "JOIN stories s ON s.id = l.story_id "
            "WHERE s.fandom_id = ? ORDER BY l.story_id, l.position",
            (fandom_id,),
        ).fetchall()
        index: dict[str, list[str]] = defaultdict(list)
        for r in rows:
            index[r["story_id"]].append(r["item_id"])
        return index

    def list_active_rules(self, fandom_id: str) -> list[ValidationRule]:
        try:
            with self._transaction():
                rule_rows = self._conn.execute(
                    "SELECT * FROM validation_rules WHERE fandom_id = ? AND is_active = 1 "
                    "ORDER BY priority DESC, rowid",
                    (fandom_id,),
                ).fetchall()
                conditions = self._rule_parts("rule_conditions", fandom_id)
                actions = self._rule_parts("rule_actions", fandom_id)
        except sqlite3.Error as e:
            raise StoreReadError("list_active_rules", fandom_id, str(e)) from e

        rules: list[ValidationRule] = []
        for r in rule_rows:
            try:
                rules.append(
                    ValidationRule.model_validate(
                        {
                            "id": r["id"],
                            "fandom_id": r["fandom_id"],
                            "name": r["name"],
                            "category": r["category"],
                            "priority": r["priority"],
                            "is_active": bool(r["is_active"]),
                            "applies_to": json.loads(r["applies_to"]),
                            "conditions": conditions.get(r["id"], []),
                            "actions": actions.get(r["id"], []),
                        }
                    )
                )
            except ValueError as e:
                raise StoreReadError("list_active_rules", fandom_id, str(e)) from e
        log.debug("rules_loaded", fandom_id=fandom_id, count=len(rules))
        return rules

    def _rule_parts(self, table: str, fandom_id: str) -> dict[str, list[Any]]:
        rows = self._conn.execute(
            f"SELECT p.rule_id, p.data FROM {table} p "
            "JOIN validation_rules r ON r.id = p.rule_id "
            "WHERE r.fandom_id = ? AND r.is_active = 1 ORDER BY p.rule_id, p.position",
            (fandom_id,),
        ).fetchall()
        parts: dict[str, list[Any]] = defaultdict(list)
        for row in rows:
            parts[row["rule_id"]].append(json.loads(row["data"]))
        return parts


def _condition_row(condition: Any) -> dict[str, Any]:
    if isinstance(condition, MalformedCondition):
        return condition.raw
    data: dict[str, Any] = condition.model_dump()
    return data
