"""
Structured-markup query capability.

Selectors are opaque strings to the import engine; interpreting them is the
job of a MarkupQuery implementation. The default one is backed by
BeautifulSoup with soupsieve CSS selectors.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from soupsieve import SelectorSyntaxError

from novel_importer.utils.errors import ParseError


# Elements whose boundaries become line breaks in extracted text
BLOCK_TAGS = {
    "p", "div", "br", "li", "dd", "dt", "h1", "h2", "h3", "h4", "h5", "h6",
    "section", "article", "blockquote", "pre", "tr", "table", "ul", "ol",
}


class MarkupQuery(ABC):
    """Interface of the markup query capability used by the extraction service."""

    @abstractmethod
    def parse(self, html: str) -> Any:
        """Parse HTML text into a document handle."""

    @abstractmethod
    def select(self, node: Any, selector: str) -> List[Any]:
        """All elements under node matching selector, in document order."""

    @abstractmethod
    def select_first(self, node: Any, selector: str) -> Optional[Any]:
        """First element under node matching selector, or None."""

    @abstractmethod
    def remove(self, document: Any, selector: str) -> int:
        """Remove every element matching selector; returns how many were removed."""

    @abstractmethod
    def text(self, node: Any) -> str:
        """Whitespace-normalized text of an element."""

    @abstractmethod
    def block_text(self, node: Any) -> str:
        """Text of an element with block boundaries kept as line breaks."""

    @abstractmethod
    def own_text(self, node: Any) -> str:
        """Text directly inside an element, excluding descendants."""

    @abstractmethod
    def attr(self, node: Any, name: str) -> Optional[str]:
        """Attribute value of an element, or None."""

    @abstractmethod
    def page_title(self, document: Any) -> str:
        """Content of the document's <title>."""

    @abstractmethod
    def iter_elements(self, document: Any) -> List[Any]:
        """Every element of the document in document order."""


class SoupMarkupQuery(MarkupQuery):
    """MarkupQuery backed by BeautifulSoup."""

    def __init__(self, parser: str = "html.parser"):
        self.parser = parser

    def parse(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html or "", self.parser)

    def select(self, node: Tag, selector: str) -> List[Tag]:
        try:
            return list(node.select(selector))
        except SelectorSyntaxError as e:
            raise ParseError(f"Invalid selector: {selector}",
                             details={"selector": selector, "error": str(e)}) from e

    def select_first(self, node: Tag, selector: str) -> Optional[Tag]:
        try:
            return node.select_one(selector)
        except SelectorSyntaxError as e:
            raise ParseError(f"Invalid selector: {selector}",
                             details={"selector": selector, "error": str(e)}) from e

    def remove(self, document: BeautifulSoup, selector: str) -> int:
        matches = self.select(document, selector)
        for element in matches:
            element.decompose()
        return len(matches)

    def text(self, node: Tag) -> str:
        return " ".join(node.get_text(" ").split())

    def block_text(self, node: Tag) -> str:
        parts: List[str] = []
        self._collect_block_text(node, parts)
        return "".join(parts)

    def _collect_block_text(self, node: Tag, parts: List[str]) -> None:
        for child in node.children:
            if isinstance(child, NavigableString):
                # Skip comments, doctype and other non-text strings
                if type(child) is NavigableString:
                    parts.append(str(child))
            elif isinstance(child, Tag):
                is_block = child.name in BLOCK_TAGS
                if is_block:
                    parts.append("\n")
                self._collect_block_text(child, parts)
                if is_block:
                    parts.append("\n")

    def own_text(self, node: Tag) -> str:
        return "".join(
            str(child) for child in node.children
            if type(child) is NavigableString
        ).strip()

    def attr(self, node: Tag, name: str) -> Optional[str]:
        value = node.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def page_title(self, document: BeautifulSoup) -> str:
        if document.title is None:
            return ""
        return document.title.get_text().strip()

    def iter_elements(self, document: BeautifulSoup) -> List[Tag]:
        return list(document.find_all(True))
