"""
Data models for parser rules, discovered novels and stored records.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional
from datetime import datetime


WILDCARD_DOMAIN = "*"


def current_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class ParserRule:
    """Declarative selectors telling the extraction service how to read a site."""
    name: str = ""
    domain_pattern: str = ""                  # "*" or a host substring, e.g. "biquge"
    chapter_list_selector: str = ""           # Required
    content_selector: str = ""                # Required
    chapter_title_selector: Optional[str] = None
    chapter_link_selector: Optional[str] = None
    remove_selectors: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=current_millis)  # Epoch milliseconds
    id: Optional[int] = None

    def __post_init__(self):
        self.remove_selectors = _normalize_selectors(self.remove_selectors)

    @property
    def is_wildcard(self) -> bool:
        return (self.domain_pattern or "").strip() == WILDCARD_DOMAIN

    def is_valid(self) -> bool:
        """True when every required field is non-blank."""
        return bool(
            (self.domain_pattern or "").strip()
            and (self.chapter_list_selector or "").strip()
            and (self.content_selector or "").strip()
        )

    def remove_selectors_from_string(self, selectors: Optional[str]) -> None:
        """Set remove selectors from their comma-separated form."""
        self.remove_selectors = _normalize_selectors((selectors or "").split(","))

    def remove_selectors_as_string(self) -> Optional[str]:
        """Comma-separated form of the remove selectors, None when empty."""
        if not self.remove_selectors:
            return None
        return ",".join(self.remove_selectors)


def _normalize_selectors(selectors) -> List[str]:
    # Ordered, stripped, without blanks or duplicates
    seen = set()
    result = []
    for selector in selectors or []:
        selector = (selector or "").strip()
        if selector and selector not in seen:
            seen.add(selector)
            result.append(selector)
    return result


@dataclass(frozen=True)
class ChapterInfo:
    """One entry of a discovered chapter list."""
    title: str
    link_url: str
    index: int  # 0-based position in the discovered list


@dataclass
class NovelMetadata:
    """Landing-page metadata; every field is independently optional."""
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None


@dataclass
class NovelRecord:
    """Novel row exchanged with the record store."""
    title: str
    author: str
    source_url: str
    description: Optional[str] = None
    total_chapters: int = 0  # chapters persisted so far
    discovered_chapters: int = 0  # length of the chapter list last discovered
    latest_chapter_title: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None


@dataclass
class ExistingNovelInfo:
    """An earlier import of the same source URL."""
    novel_id: int
    title: str
    downloaded_count: int
    total_chapters: int

    @property
    def is_complete(self) -> bool:
        return self.total_chapters > 0 and self.downloaded_count >= self.total_chapters


@dataclass
class ChapterRecord:
    """Chapter row exchanged with the record store."""
    novel_id: int
    chapter_index: int
    title: str
    content: str
    source_url: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None


@dataclass
class RuleValidationResult:
    """Outcome of checking a rule's required fields."""
    valid: bool
    missing_fields: List[str] = field(default_factory=list)


@dataclass
class RuleTestResult:
    """Outcome of trying a rule against a live page."""
    success: bool
    title: Optional[str] = None
    author: Optional[str] = None
    chapter_count: int = 0
    sample_content: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def succeeded(cls, title: str, author: str, chapter_count: int,
                  sample_content: str) -> "RuleTestResult":
        return cls(success=True, title=title, author=author,
                   chapter_count=chapter_count, sample_content=sample_content)

    @classmethod
    def failed(cls, error_message: str) -> "RuleTestResult":
        return cls(success=False, error_message=error_message)
