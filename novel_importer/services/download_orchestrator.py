"""
Download orchestrator: drives one novel import from landing page to last chapter.

A session moves IDLE -> DISCOVERING -> IMPORTING and ends COMPLETED,
CANCELLED or FAILED. Chapters are fetched strictly in order and each one is
persisted before the next is requested, so an interrupted import can be
resumed from the number of chapters already stored.
"""

import re
import threading
import time
from contextlib import contextmanager
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from novel_importer.concurrent.dispatcher import RequestDispatcher
from novel_importer.concurrent.thread_safe import ThreadSafeFlag
from novel_importer.crawlers.error_classifier import is_retryable
from novel_importer.crawlers.extraction import ExtractionService
from novel_importer.data.models import ParserRule, ChapterInfo, NovelRecord, ChapterRecord, ExistingNovelInfo
from novel_importer.data.repository import RecordStore
from novel_importer.utils.errors import (
    NovelImporterError,
    NetworkError,
    ParseError,
    ValidationError,
    DatabaseError,
    DownloadInProgressError
)
from novel_importer.utils.logging import get_business_logger


UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"

URL_PATTERN = re.compile(
    r"^(https?://)?"
    r"((([a-zA-Z0-9\-]+\.)+[a-zA-Z]{2,})|localhost|\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"
    r"(:\d+)?"
    r"(/[\w\-.~:/?#\[\]@!$&'()*+,;=%]*)?$"
)

ProgressCallback = Callable[[int, int, str], None]


class DownloadState(Enum):
    """Lifecycle of a download session."""
    IDLE = "idle"
    DISCOVERING = "discovering"
    IMPORTING = "importing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


ACTIVE_STATES = (DownloadState.DISCOVERING, DownloadState.IMPORTING)


@dataclass
class DownloadSession:
    """In-memory state of the import currently running."""
    source_url: str
    rule: ParserRule
    novel_id: Optional[int] = None
    chapter_list: Tuple[ChapterInfo, ...] = ()
    next_pending_index: int = 0
    chapters_downloaded: int = 0
    cancel_requested: ThreadSafeFlag = field(default_factory=ThreadSafeFlag)
    connectivity_verified: bool = False
    state: DownloadState = DownloadState.IDLE


@dataclass
class DownloadResult:
    """Terminal summary of a session that completed or was cancelled."""
    state: DownloadState
    novel_id: int
    chapters_downloaded: int
    next_pending_index: int
    total_chapters: int


def validate_url(url: Optional[str]) -> str:
    """
    Check that a URL looks like a web address.

    Raises:
        ValidationError: With field "url" when it does not
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError("URL must not be empty", field="url")
    if not URL_PATTERN.match(url):
        raise ValidationError(f"Invalid URL: {url}", field="url", details={"url": url})
    return url


class DownloadOrchestrator:
    """Runs at most one download session at a time."""

    def __init__(self,
                 extraction: ExtractionService,
                 dispatcher: RequestDispatcher,
                 store: RecordStore,
                 chapter_retry_limit: int = 1,
                 retry_delay: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize download orchestrator.

        Args:
            extraction: Extraction service for pages
            dispatcher: Dispatcher every fetch goes through
            store: Record store novels and chapters are persisted to
            chapter_retry_limit: Extra attempts for a chapter after a retryable failure
            retry_delay: Seconds to wait before retrying a chapter
            sleep: Sleep function used between retries
        """
        self.extraction = extraction
        self.dispatcher = dispatcher
        self.store = store
        self.chapter_retry_limit = max(0, chapter_retry_limit)
        self.retry_delay = retry_delay
        self._sleep = sleep

        self._session_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._session: Optional[DownloadSession] = None
        self._state = DownloadState.IDLE
        # Chapter list of the last session that did not complete, kept for its resume
        self._chapter_cache: Dict[int, Tuple[ChapterInfo, ...]] = {}

        self._executor: Optional[ThreadPoolExecutor] = None
        self._future: Optional[Future] = None

        self.logger = get_business_logger('downloader')

    @property
    def state(self) -> DownloadState:
        with self._state_lock:
            return self._state

    def is_downloading(self) -> bool:
        return self.state in ACTIVE_STATES

    def check_existing_novel(self, url: str) -> Optional[ExistingNovelInfo]:
        """
        Look up an earlier import of the same landing page.

        Returns:
            Its id, title and chapter counts, or None if the URL was never imported

        Raises:
            ValidationError: If the URL is invalid
        """
        url = validate_url(url)
        novel = self.store.get_novel_by_source_url(url)
        if novel is None:
            return None

        return ExistingNovelInfo(
            novel_id=novel.id,
            title=novel.title,
            downloaded_count=self.store.get_chapter_count_for_novel(novel.id),
            total_chapters=novel.discovered_chapters,
        )

    def cancel_download(self) -> bool:
        """
        Ask the running session to stop after the chapter in progress.

        Returns:
            True if a running session was signalled
        """
        session = self._session
        if session is None:
            self.logger.debug("Cancel requested with no active download")
            return False

        session.cancel_requested.set()
        self.logger.info("Download cancellation requested", novel_id=session.novel_id)
        return True

    def download_novel(self, url: str, rule: ParserRule,
                       progress_callback: Optional[ProgressCallback] = None) -> DownloadResult:
        """
        Import a novel from its landing page.

        Raises:
            ValidationError: If the URL is invalid
            DownloadInProgressError: If another session is running
            ParseError: If no chapters are found or a chapter cannot be parsed
            NetworkError: On a non-retryable or exhausted network failure
            DatabaseError: If persisting fails
        """
        url = validate_url(url)
        with self._exclusive_session(url, rule) as session:
            return self._run(session, self._download, progress_callback)

    def resume_download(self, novel_id: int, url: str, rule: ParserRule,
                        progress_callback: Optional[ProgressCallback] = None) -> DownloadResult:
        """
        Continue an import from the first chapter not yet persisted.

        Raises:
            DatabaseError: If no novel with novel_id exists, before anything is fetched
            Otherwise the same as download_novel
        """
        url = validate_url(url)
        with self._exclusive_session(url, rule) as session:
            session.novel_id = novel_id
            return self._run(session, self._resume, progress_callback)

    def start_download(self, url: str, rule: ParserRule,
                       progress_callback: Optional[ProgressCallback] = None) -> "Future[DownloadResult]":
        """Run download_novel on the background worker."""
        return self._submit(self.download_novel, url, rule, progress_callback)

    def start_resume(self, novel_id: int, url: str, rule: ParserRule,
                     progress_callback: Optional[ProgressCallback] = None) -> "Future[DownloadResult]":
        """Run resume_download on the background worker."""
        return self._submit(self.resume_download, novel_id, url, rule, progress_callback)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel any running session and stop the background worker."""
        self.cancel_download()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _submit(self, operation: Callable[..., DownloadResult], *args: Any) -> "Future[DownloadResult]":
        with self._state_lock:
            if self._future is not None and not self._future.done():
                raise DownloadInProgressError("A download is already in progress")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="novel-download")
            self._future = self._executor.submit(operation, *args)
            return self._future

    @contextmanager
    def _exclusive_session(self, url: str, rule: ParserRule):
        if not self._session_lock.acquire(blocking=False):
            raise DownloadInProgressError("A download is already in progress", {"url": url})
        session = DownloadSession(source_url=url, rule=rule)
        self._session = session
        try:
            yield session
        finally:
            self._session = None
            self._session_lock.release()

    def _set_state(self, session: DownloadSession, state: DownloadState) -> None:
        with self._state_lock:
            session.state = state
            self._state = state
        self.logger.debug("Download state changed", novel_id=session.novel_id, state=state.value)

    def _run(self, session: DownloadSession,
             body: Callable[[DownloadSession, Optional[ProgressCallback]], DownloadResult],
             progress_callback: Optional[ProgressCallback]) -> DownloadResult:
        try:
            return body(session, progress_callback)
        except NovelImporterError as e:
            self._fail(session, e)
            e.details.setdefault("novel_id", session.novel_id)
            e.details["next_pending_index"] = session.next_pending_index
            raise
        except Exception as e:
            self._fail(session, e)
            raise

    def _fail(self, session: DownloadSession, error: Exception) -> None:
        self._set_state(session, DownloadState.FAILED)
        self.logger.error("Download failed",
                          novel_id=session.novel_id,
                          next_pending_index=session.next_pending_index,
                          chapters_downloaded=session.chapters_downloaded,
                          error_type=type(error).__name__,
                          error=str(error))

    def _download(self, session: DownloadSession,
                  progress_callback: Optional[ProgressCallback]) -> DownloadResult:
        self._set_state(session, DownloadState.DISCOVERING)
        self.logger.info("Download started", url=session.source_url, rule=session.rule.name)

        html = self._dispatch(session, self.extraction.fetch_html, session.source_url)
        metadata = self.extraction.extract_metadata(html, session.rule)
        chapters = self._extract_chapters(session, html)

        novel = NovelRecord(
            title=metadata.title or UNKNOWN_TITLE,
            author=metadata.author or UNKNOWN_AUTHOR,
            description=metadata.description,
            source_url=session.source_url,
            discovered_chapters=len(chapters),
        )
        session.novel_id = self.store.insert_novel(novel)
        session.chapter_list = chapters
        self._cache_chapters(session.novel_id, chapters)

        self.logger.info("Novel discovered", novel_id=session.novel_id, title=novel.title,
                         author=novel.author, total_chapters=len(chapters))
        return self._import_chapters(session, progress_callback)

    def _resume(self, session: DownloadSession,
                progress_callback: Optional[ProgressCallback]) -> DownloadResult:
        if self.store.get_novel(session.novel_id) is None:
            raise DatabaseError("Novel not found", {"novel_id": session.novel_id})
        session.next_pending_index = self.store.get_chapter_count_for_novel(session.novel_id)

        chapters = self._chapter_cache.get(session.novel_id)
        if chapters is None:
            self._set_state(session, DownloadState.DISCOVERING)
            html = self._dispatch(session, self.extraction.fetch_html, session.source_url)
            chapters = self._extract_chapters(session, html)
            self.store.update_discovered_chapters(session.novel_id, len(chapters))
            self._cache_chapters(session.novel_id, chapters)

        session.chapter_list = chapters
        self.logger.info("Download resumed", novel_id=session.novel_id,
                         next_pending_index=session.next_pending_index, total_chapters=len(chapters))
        return self._import_chapters(session, progress_callback)

    def _cache_chapters(self, novel_id: int, chapters: Tuple[ChapterInfo, ...]) -> None:
        # Holds at most one chapter list
        self._chapter_cache.clear()
        self._chapter_cache[novel_id] = chapters

    def _extract_chapters(self, session: DownloadSession, html: str) -> Tuple[ChapterInfo, ...]:
        chapters = tuple(self.extraction.extract_chapter_list(html, session.rule,
                                                              base_url=session.source_url))
        if not chapters:
            raise ParseError("No chapters found on the novel page", url=session.source_url,
                             details={"rule": session.rule.name})
        return chapters

    def _import_chapters(self, session: DownloadSession,
                         progress_callback: Optional[ProgressCallback]) -> DownloadResult:
        self._set_state(session, DownloadState.IMPORTING)
        total = len(session.chapter_list)

        for chapter in session.chapter_list[session.next_pending_index:]:
            if session.cancel_requested.is_set():
                self._set_state(session, DownloadState.CANCELLED)
                self.logger.info("Download cancelled", novel_id=session.novel_id,
                                 next_pending_index=session.next_pending_index)
                return self._result(session)

            self._import_chapter(session, chapter)
            session.next_pending_index = chapter.index + 1
            session.chapters_downloaded += 1

            if progress_callback is not None:
                progress_callback(chapter.index + 1, total, chapter.title)

        self._set_state(session, DownloadState.COMPLETED)
        self._chapter_cache.pop(session.novel_id, None)
        self.logger.info("Download completed", novel_id=session.novel_id,
                         chapters_downloaded=session.chapters_downloaded, total_chapters=total)
        return self._result(session)

    def _import_chapter(self, session: DownloadSession, chapter: ChapterInfo) -> None:
        html = self._fetch_chapter(session, chapter)
        content = self.extraction.extract_content(html, session.rule)

        self.store.insert_chapters([ChapterRecord(
            novel_id=session.novel_id,
            chapter_index=chapter.index,
            title=chapter.title,
            content=content,
            source_url=chapter.link_url,
        )])
        self.store.update_chapter_info(session.novel_id, chapter.index + 1, chapter.title)
        self.logger.debug("Chapter saved", novel_id=session.novel_id,
                          chapter_index=chapter.index, title=chapter.title)

    def _fetch_chapter(self, session: DownloadSession, chapter: ChapterInfo) -> str:
        attempt = 0
        while True:
            try:
                return self._dispatch(session, self.extraction.fetch_html, chapter.link_url)
            except NetworkError as e:
                if attempt >= self.chapter_retry_limit or not is_retryable(e):
                    raise
                attempt += 1
                self.logger.warning("Retrying chapter fetch", novel_id=session.novel_id,
                                    chapter_index=chapter.index, attempt=attempt,
                                    status_code=e.status_code, error=e.message)
                self._sleep(self.retry_delay)

    def _dispatch(self, session: DownloadSession, operation: Callable[..., str], *args: Any) -> str:
        # Connectivity is probed once per session, on its first network operation
        if session.connectivity_verified:
            return self.dispatcher.execute_request_without_check(operation, *args)
        result = self.dispatcher.execute_request(operation, *args)
        session.connectivity_verified = True
        return result

    def _result(self, session: DownloadSession) -> DownloadResult:
        return DownloadResult(
            state=session.state,
            novel_id=session.novel_id,
            chapters_downloaded=session.chapters_downloaded,
            next_pending_index=session.next_pending_index,
            total_chapters=len(session.chapter_list),
        )

    def get_cached_chapter_list(self, novel_id: int) -> List[ChapterInfo]:
        return list(self._chapter_cache.get(novel_id, ()))

