"""
Record store interface and SQLite repositories for novels, chapters and parser rules.

Structs are converted to and from rows by the explicit ``*_to_row`` /
``row_to_*`` functions below; nothing is mapped by reflection.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from novel_importer.data.models import ParserRule, NovelRecord, ChapterRecord
from novel_importer.data.sqlite_database import SQLiteDatabaseManager
from novel_importer.utils.errors import DatabaseError
from novel_importer.utils.logging import get_business_logger


logger = get_business_logger('database')


class RecordStore(ABC):
    """The narrow set of persistence operations the download orchestrator needs."""

    @abstractmethod
    def insert_novel(self, novel: NovelRecord) -> int:
        """Persist a novel and return its id."""

    @abstractmethod
    def insert_chapters(self, chapters: Sequence[ChapterRecord]) -> None:
        """Persist chapters atomically."""

    @abstractmethod
    def update_chapter_info(self, novel_id: int, total_chapters: int,
                            latest_title: Optional[str]) -> None:
        """Update a novel's chapter count and latest chapter title."""

    @abstractmethod
    def update_discovered_chapters(self, novel_id: int, discovered_chapters: int) -> None:
        """Record the length of a novel's most recently discovered chapter list."""

    @abstractmethod
    def get_chapter_count_for_novel(self, novel_id: int) -> int:
        """Number of chapters persisted for a novel."""

    @abstractmethod
    def get_novel(self, novel_id: int) -> Optional[NovelRecord]:
        """A novel by id, or None."""

    @abstractmethod
    def get_novel_by_source_url(self, source_url: str) -> Optional[NovelRecord]:
        """The earliest novel imported from a source URL, or None."""


def _to_timestamp(value: datetime) -> str:
    return value.isoformat()


def _from_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def novel_to_row(novel: NovelRecord) -> tuple:
    return (
        novel.title,
        novel.author,
        novel.description,
        novel.source_url,
        novel.total_chapters,
        novel.discovered_chapters,
        novel.latest_chapter_title,
        _to_timestamp(novel.created_at),
        _to_timestamp(novel.updated_at),
    )


def row_to_novel(row) -> NovelRecord:
    return NovelRecord(
        id=row["id"],
        title=row["title"],
        author=row["author"],
        description=row["description"],
        source_url=row["source_url"],
        total_chapters=row["total_chapters"],
        discovered_chapters=row["discovered_chapters"],
        latest_chapter_title=row["latest_chapter_title"],
        created_at=_from_timestamp(row["created_at"]),
        updated_at=_from_timestamp(row["updated_at"]),
    )


def chapter_to_row(chapter: ChapterRecord) -> tuple:
    return (
        chapter.novel_id,
        chapter.chapter_index,
        chapter.title,
        chapter.content,
        chapter.source_url,
        _to_timestamp(chapter.created_at),
    )


def row_to_chapter(row) -> ChapterRecord:
    return ChapterRecord(
        id=row["id"],
        novel_id=row["novel_id"],
        chapter_index=row["chapter_index"],
        title=row["title"],
        content=row["content"],
        source_url=row["source_url"],
        created_at=_from_timestamp(row["created_at"]),
    )


def rule_to_row(rule: ParserRule) -> tuple:
    return (
        rule.name,
        rule.domain_pattern,
        rule.chapter_list_selector,
        rule.chapter_title_selector or None,
        rule.chapter_link_selector or None,
        rule.content_selector,
        rule.remove_selectors_as_string(),
        rule.created_at,
    )


def row_to_rule(row) -> ParserRule:
    rule = ParserRule(
        id=row["id"],
        name=row["name"],
        domain_pattern=row["domain"],
        chapter_list_selector=row["chapter_list_selector"],
        chapter_title_selector=row["chapter_title_selector"],
        chapter_link_selector=row["chapter_link_selector"],
        content_selector=row["content_selector"],
        created_at=row["create_time"],
    )
    rule.remove_selectors_from_string(row["remove_selectors"])
    return rule


class NovelRepository(RecordStore):
    """SQLite record store for novels and their chapters."""

    def __init__(self, db_manager: SQLiteDatabaseManager):
        """
        Initialize repository with database manager.

        Args:
            db_manager: SQLite database manager
        """
        self.db_manager = db_manager

    def insert_novel(self, novel: NovelRecord) -> int:
        novel_id = self.db_manager.execute_insert(
            """
            INSERT INTO novels (title, author, description, source_url, total_chapters,
                                discovered_chapters, latest_chapter_title, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            novel_to_row(novel)
        )
        if not novel_id or novel_id <= 0:
            raise DatabaseError("Failed to save novel", {"title": novel.title})

        novel.id = novel_id
        logger.debug("Novel saved", novel_id=novel_id, title=novel.title)
        return novel_id

    def insert_chapters(self, chapters: Sequence[ChapterRecord]) -> None:
        if not chapters:
            return
        self.db_manager.execute_many(
            """
            INSERT OR REPLACE INTO chapters (novel_id, chapter_index, title, content,
                                             source_url, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [chapter_to_row(chapter) for chapter in chapters]
        )
        logger.debug("Chapters saved", novel_id=chapters[0].novel_id, count=len(chapters))

    def update_chapter_info(self, novel_id: int, total_chapters: int,
                            latest_title: Optional[str]) -> None:
        self.db_manager.execute_query(
            """
            UPDATE novels SET total_chapters = ?, latest_chapter_title = ?, updated_at = ?
            WHERE id = ?
            """,
            (total_chapters, latest_title, _to_timestamp(datetime.now()), novel_id),
            fetch=False
        )

    def get_chapter_count_for_novel(self, novel_id: int) -> int:
        rows = self.db_manager.execute_query(
            "SELECT COUNT(*) FROM chapters WHERE novel_id = ?", (novel_id,)
        )
        return rows[0][0] if rows else 0

    def update_discovered_chapters(self, novel_id: int, discovered_chapters: int) -> None:
        self.db_manager.execute_query(
            "UPDATE novels SET discovered_chapters = ?, updated_at = ? WHERE id = ?",
            (discovered_chapters, _to_timestamp(datetime.now()), novel_id),
            fetch=False
        )

    def get_novel(self, novel_id: int) -> Optional[NovelRecord]:
        rows = self.db_manager.execute_query("SELECT * FROM novels WHERE id = ?", (novel_id,))
        return row_to_novel(rows[0]) if rows else None

    def get_novel_by_source_url(self, source_url: str) -> Optional[NovelRecord]:
        rows = self.db_manager.execute_query(
            "SELECT * FROM novels WHERE source_url = ? ORDER BY id LIMIT 1", (source_url,)
        )
        return row_to_novel(rows[0]) if rows else None

    def list_novels(self) -> List[NovelRecord]:
        rows = self.db_manager.execute_query("SELECT * FROM novels ORDER BY created_at DESC, id DESC")
        return [row_to_novel(row) for row in rows or []]

    def get_chapters(self, novel_id: int) -> List[ChapterRecord]:
        rows = self.db_manager.execute_query(
            "SELECT * FROM chapters WHERE novel_id = ? ORDER BY chapter_index", (novel_id,)
        )
        return [row_to_chapter(row) for row in rows or []]


class ParserRuleRepository:
    """SQLite persistence for parser rules."""

    def __init__(self, db_manager: SQLiteDatabaseManager):
        self.db_manager = db_manager

    def insert_rule(self, rule: ParserRule) -> int:
        rule_id = self.db_manager.execute_insert(
            """
            INSERT INTO parser_rules (name, domain, chapter_list_selector, chapter_title_selector,
                                      chapter_link_selector, content_selector, remove_selectors,
                                      create_time)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rule_to_row(rule)
        )
        rule.id = rule_id
        logger.debug("Parser rule saved", rule_id=rule_id, name=rule.name)
        return rule_id

    def update_rule(self, rule: ParserRule) -> None:
        if rule.id is None:
            raise DatabaseError("Cannot update a rule without an id", {"name": rule.name})
        self.db_manager.execute_query(
            """
            UPDATE parser_rules SET name = ?, domain = ?, chapter_list_selector = ?,
                chapter_title_selector = ?, chapter_link_selector = ?, content_selector = ?,
                remove_selectors = ?, create_time = ?
            WHERE id = ?
            """,
            rule_to_row(rule) + (rule.id,),
            fetch=False
        )

    def delete_rule(self, rule_id: int) -> None:
        self.db_manager.execute_query("DELETE FROM parser_rules WHERE id = ?", (rule_id,), fetch=False)

    def get_rule_by_id(self, rule_id: int) -> Optional[ParserRule]:
        rows = self.db_manager.execute_query("SELECT * FROM parser_rules WHERE id = ?", (rule_id,))
        return row_to_rule(rows[0]) if rows else None

    def get_rule_by_name(self, name: str) -> Optional[ParserRule]:
        rows = self.db_manager.execute_query(
            "SELECT * FROM parser_rules WHERE name = ? ORDER BY create_time, id LIMIT 1", (name,)
        )
        return row_to_rule(rows[0]) if rows else None

    def get_rule_by_domain(self, domain: str) -> Optional[ParserRule]:
        """Exact lookup by domain pattern."""
        rows = self.db_manager.execute_query(
            "SELECT * FROM parser_rules WHERE domain = ? ORDER BY create_time, id LIMIT 1", (domain,)
        )
        return row_to_rule(rows[0]) if rows else None

    def get_all_rules(self) -> List[ParserRule]:
        """All rules, oldest first."""
        rows = self.db_manager.execute_query("SELECT * FROM parser_rules ORDER BY create_time, id")
        return [row_to_rule(row) for row in rows or []]

    def get_rule_count(self) -> int:
        rows = self.db_manager.execute_query("SELECT COUNT(*) FROM parser_rules")
        return rows[0][0] if rows else 0
