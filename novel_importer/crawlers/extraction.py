"""
Extraction service: turns fetched pages into metadata, chapter lists and clean chapter text.
"""

import re
from typing import Any, List, Optional
from urllib.parse import urljoin

from novel_importer.crawlers.http_client import HTTPClient
from novel_importer.crawlers.markup import MarkupQuery, SoupMarkupQuery
from novel_importer.data.models import ParserRule, ChapterInfo, NovelMetadata
from novel_importer.utils.errors import ParseError
from novel_importer.utils.logging import get_business_logger


TITLE_SELECTORS = [
    "h1", ".title", "#title", ".book-title", "#book-title",
    ".novel-title", "#novel-title", "meta[property='og:title']",
]

AUTHOR_SELECTORS = [
    ".author", "#author", ".book-author", "#book-author",
    ".writer", "#writer", "meta[property='og:author']", "[itemprop='author']",
]

DESCRIPTION_SELECTORS = [
    ".description", "#description", ".intro", "#intro", ".summary", "#summary",
    ".book-intro", "#book-intro", "meta[property='og:description']", "meta[name='description']",
]

DEFAULT_AD_SELECTORS = [
    ".ad", ".ads", ".advertisement", ".advert", "#ad", "#ads", "#advertisement",
    # A class token or id starting with ad- or ads-
    "[class^='ad-']", "[class*=' ad-']", "[class^='ads-']", "[class*=' ads-']",
    "[id^='ad-']", "[id^='ads-']",
    ".banner", "#banner", ".popup", "#popup", ".sponsor", "#sponsor",
    "script", "style", "iframe", ".comment", "#comment", ".comments", "#comments",
]

# Only whole lines are dropped, so prose mentioning these words survives
AD_LINE_PATTERNS = [
    re.compile(pattern)
    for pattern in (
        r"第[一二三四五六七八九十百千万零\d]+章.*",
        r".*Ctrl\s*\+\s*D.*收藏.*",
        r"上一章",
        r"下一章",
        r"目录",
        r"https?://\S+",
        r"www\.\S+",
        r"天蚕土豆",
        r"笔趣阁",
        r"新笔趣阁",
    )
]

FALLBACK_CONTENT_SELECTORS = [
    "#content", "#chaptercontent", "#chapter-content", "#bookcontent", "#book_text",
    "#booktext", "#htmlContent", "#text-content", "#nr", "#nr1", "#nr_title",
    "#BookText", "#TextContent", "#contentbox", "#chapter_content", "#novelcontent",
    ".content", ".chaptercontent", ".chapter-content", ".bookcontent", ".book_text",
    ".booktext", ".novelcontent", ".novel-content", ".readcontent", ".read-content",
    ".article-content", ".txt", ".nr_title", ".chapter_content", ".text_content",
    ".TextContent", ".contentbox", ".book-content", ".main-content", ".post-content",
    "article", ".article", "#article", "[itemprop='articleBody']",
    ".panel-body", ".card-body", ".entry-content", ".post-body",
]

# Minimum text length for a fallback selector match and for the largest block
FALLBACK_MIN_TEXT_LENGTH = 100
TEXT_BLOCK_MIN_LENGTH = 200

TEXT_BLOCK_SELECTOR = "div, article, section, main"
TEXT_BLOCK_SKIP_CLASSES = ("nav", "header", "footer", "sidebar", "menu", "comment")
TEXT_BLOCK_SKIP_IDS = ("nav", "header", "footer", "sidebar")

SITE_SUFFIX_PATTERN = re.compile(r"[-_|].*$")
AUTHOR_PREFIX_PATTERN = re.compile(r"^(作者|作　者|Author)[：:]\s*", re.IGNORECASE)
AUTHOR_INLINE_PATTERN = re.compile(r"作者[：:]\s*(\S+)")
WHITESPACE_PATTERN = re.compile(r"\s+")


def clean_content(text: Optional[str]) -> str:
    """
    Normalize extracted chapter text.

    Whitespace inside each line is collapsed, lines that consist entirely
    of site noise (navigation links, bare URLs, repeated chapter headings,
    bookmark prompts, site names) are dropped along with blank lines, and
    paragraphs are joined with a blank line. Applying it twice gives the
    same result.
    """
    if not text:
        return ""

    paragraphs = []
    for line in text.splitlines():
        line = WHITESPACE_PATTERN.sub(" ", line).strip()
        if line and not _is_ad_line(line):
            paragraphs.append(line)

    return "\n\n".join(paragraphs)


def _is_ad_line(line: str) -> bool:
    return any(pattern.fullmatch(line) for pattern in AD_LINE_PATTERNS)


class ExtractionService:
    """Fetches pages and extracts novel data from them according to a parser rule."""

    def __init__(self, http_client: HTTPClient, markup: Optional[MarkupQuery] = None):
        """
        Initialize extraction service.

        Args:
            http_client: Transport used by fetch_html
            markup: Markup query capability, BeautifulSoup-backed by default
        """
        self.http_client = http_client
        self.markup = markup or SoupMarkupQuery()
        self.logger = get_business_logger('crawler')

    def fetch_html(self, url: str) -> str:
        """
        Fetch a page.

        Raises:
            NetworkError: Classified transport or HTTP failure
        """
        return self.http_client.get_text(url)

    def extract_metadata(self, html: str, rule: Optional[ParserRule] = None) -> NovelMetadata:
        document = self.markup.parse(html)
        metadata = NovelMetadata(
            title=self._extract_title(document),
            author=self._extract_author(document),
            description=self._first_match_text(document, DESCRIPTION_SELECTORS),
        )
        self.logger.debug("Metadata extracted", title=metadata.title, author=metadata.author)
        return metadata

    def _extract_title(self, document: Any) -> Optional[str]:
        title = self._first_match_text(document, TITLE_SELECTORS)
        if title:
            return title

        page_title = SITE_SUFFIX_PATTERN.sub("", self.markup.page_title(document)).strip()
        return page_title or None

    def _extract_author(self, document: Any) -> Optional[str]:
        author = self._first_match_text(document, AUTHOR_SELECTORS)
        if author:
            author = AUTHOR_PREFIX_PATTERN.sub("", author).strip()
            if author:
                return author

        for element in self.markup.iter_elements(document):
            own_text = self.markup.own_text(element)
            if "作者" not in own_text:
                continue
            match = AUTHOR_INLINE_PATTERN.search(own_text)
            if match:
                return match.group(1).strip()

        return None

    def _first_match_text(self, document: Any, selectors: List[str]) -> Optional[str]:
        for selector in selectors:
            element = self.markup.select_first(document, selector)
            if element is None:
                continue
            if selector.startswith("meta"):
                value = self.markup.attr(element, "content")
            else:
                value = self.markup.text(element)
            if value and value.strip():
                return value.strip()
        return None

    def extract_chapter_list(self, html: str, rule: ParserRule,
                             base_url: Optional[str] = None) -> List[ChapterInfo]:
        """
        Extract the ordered chapter list of a landing page.

        Entries without a title or a link are skipped; indices are the
        positions among the entries that were kept.

        Raises:
            ParseError: If a selector of the rule is not valid
        """
        document = self.markup.parse(html)
        chapters: List[ChapterInfo] = []

        for element in self.markup.select(document, rule.chapter_list_selector):
            link = self._chapter_link(element, rule)
            title = self._chapter_title(element, rule)
            if not link or not title:
                continue
            if base_url:
                link = urljoin(base_url, link)
            chapters.append(ChapterInfo(title=title, link_url=link, index=len(chapters)))

        self.logger.debug("Chapter list extracted", rule=rule.name, chapter_count=len(chapters))
        return chapters

    def _chapter_link(self, element: Any, rule: ParserRule) -> Optional[str]:
        if rule.chapter_link_selector:
            target = self.markup.select_first(element, rule.chapter_link_selector) or element
            href = self.markup.attr(target, "href")
        else:
            href = self.markup.attr(element, "href")
            if not href:
                anchor = self.markup.select_first(element, "a[href]")
                href = self.markup.attr(anchor, "href") if anchor is not None else None
        return href.strip() if href else None

    def _chapter_title(self, element: Any, rule: ParserRule) -> Optional[str]:
        target = element
        if rule.chapter_title_selector:
            target = self.markup.select_first(element, rule.chapter_title_selector) or element
        return self.markup.text(target) or None

    def extract_content(self, html: str, rule: ParserRule) -> str:
        """
        Extract the cleaned text of a chapter page.

        The rule's content selector is tried first, then the common content
        containers, then the largest text block of the page.

        Raises:
            ParseError: If no text can be found by any of them
        """
        document = self.markup.parse(html)

        for selector in list(rule.remove_selectors) + DEFAULT_AD_SELECTORS:
            try:
                self.markup.remove(document, selector)
            except ParseError as e:
                self.logger.debug("Skipping invalid remove selector", selector=selector, error=e.message)

        content = self.markup.select_first(document, rule.content_selector)
        if content is not None and self.markup.text(content):
            return clean_content(self.markup.block_text(content))

        content = self._fallback_content(document)
        if content is None:
            content = self._largest_text_block(document)
        if content is None:
            raise ParseError(
                "Chapter content not found",
                details={"rule": rule.name, "content_selector": rule.content_selector}
            )

        self.logger.info("Chapter content found by fallback", rule=rule.name)
        return clean_content(self.markup.block_text(content))

    def _fallback_content(self, document: Any) -> Optional[Any]:
        for selector in FALLBACK_CONTENT_SELECTORS:
            try:
                element = self.markup.select_first(document, selector)
            except ParseError:
                continue
            if element is not None and len(self.markup.text(element)) > FALLBACK_MIN_TEXT_LENGTH:
                return element
        return None

    def _largest_text_block(self, document: Any) -> Optional[Any]:
        best, best_length = None, TEXT_BLOCK_MIN_LENGTH
        for element in self.markup.select(document, TEXT_BLOCK_SELECTOR):
            css_class = (self.markup.attr(element, "class") or "").lower()
            element_id = (self.markup.attr(element, "id") or "").lower()
            if any(word in css_class for word in TEXT_BLOCK_SKIP_CLASSES):
                continue
            if any(word in element_id for word in TEXT_BLOCK_SKIP_IDS):
                continue

            length = len(self.markup.text(element))
            if length > best_length:
                best, best_length = element, length
        return best

    def clean_content(self, text: Optional[str]) -> str:
        return clean_content(text)
