"""
Parser rule management: validation, live testing, persistence and URL matching.
"""

from typing import List, Optional

from novel_importer.concurrent.dispatcher import RequestDispatcher
from novel_importer.crawlers.extraction import ExtractionService
from novel_importer.data.models import ParserRule, RuleValidationResult, RuleTestResult
from novel_importer.data.repository import ParserRuleRepository
from novel_importer.rules.matcher import RuleMatcher
from novel_importer.utils.errors import NovelImporterError, ValidationError
from novel_importer.utils.logging import get_business_logger


logger = get_business_logger('rules')

TITLE_NOT_FOUND = "Title not found"
AUTHOR_NOT_FOUND = "Author not found"


def validate_rule(rule: Optional[ParserRule]) -> RuleValidationResult:
    """
    Check the required fields of a rule.

    Missing fields are reported as ``domain``, ``chapterListSelector`` and
    ``contentSelector``, in that order; a missing rule is reported as ``rule``.
    """
    if rule is None:
        return RuleValidationResult(valid=False, missing_fields=["rule"])

    missing_fields = []
    if not (rule.domain_pattern or "").strip():
        missing_fields.append("domain")
    if not (rule.chapter_list_selector or "").strip():
        missing_fields.append("chapterListSelector")
    if not (rule.content_selector or "").strip():
        missing_fields.append("contentSelector")

    return RuleValidationResult(valid=not missing_fields, missing_fields=missing_fields)


def _missing_fields_message(missing_fields: List[str]) -> str:
    return "Rule is incomplete, missing fields: " + ", ".join(missing_fields)


class RuleService:
    """Front door for everything the application does with parser rules."""

    def __init__(self,
                 repository: ParserRuleRepository,
                 extraction: ExtractionService,
                 dispatcher: RequestDispatcher,
                 matcher: Optional[RuleMatcher] = None,
                 sample_content_length: int = 200):
        """
        Initialize rule service.

        Args:
            repository: Rule persistence
            extraction: Extraction service used by test_rule
            dispatcher: Dispatcher every test fetch goes through
            matcher: Rule matcher, specificity-based by default
            sample_content_length: Characters of sample content kept by test_rule
        """
        self.repository = repository
        self.extraction = extraction
        self.dispatcher = dispatcher
        self.matcher = matcher or RuleMatcher()
        self.sample_content_length = sample_content_length

    def validate_rule(self, rule: Optional[ParserRule]) -> RuleValidationResult:
        return validate_rule(rule)

    def test_rule(self, rule: Optional[ParserRule], test_url: Optional[str]) -> RuleTestResult:
        """
        Try a rule against a live page.

        Never raises; every failure is reported in the result.
        """
        validation = validate_rule(rule)
        if not validation.valid:
            return RuleTestResult.failed(_missing_fields_message(validation.missing_fields))

        if not (test_url or "").strip():
            return RuleTestResult.failed("Test URL must not be empty")

        try:
            html = self.dispatcher.execute_request(self.extraction.fetch_html, test_url)
        except NovelImporterError as e:
            logger.info("Rule test fetch failed", rule=rule.name, url=test_url, error=e.message)
            return RuleTestResult.failed(f"Network request failed: {e.message}")
        except Exception as e:
            logger.warning("Rule test fetch raised unexpectedly", rule=rule.name, url=test_url, error=str(e))
            return RuleTestResult.failed(f"Network request failed: {e}")

        try:
            metadata = self.extraction.extract_metadata(html, rule)
            chapters = self.extraction.extract_chapter_list(html, rule, base_url=test_url)
        except Exception as e:
            logger.info("Rule test parse failed", rule=rule.name, url=test_url, error=str(e))
            return RuleTestResult.failed(f"Parsing failed: {e}")

        sample_content = ""
        if chapters:
            sample_content = self._sample_content(rule, chapters[0].link_url)

        logger.info("Rule test succeeded", rule=rule.name, url=test_url, chapter_count=len(chapters))
        return RuleTestResult.succeeded(
            title=metadata.title or TITLE_NOT_FOUND,
            author=metadata.author or AUTHOR_NOT_FOUND,
            chapter_count=len(chapters),
            sample_content=sample_content,
        )

    def _sample_content(self, rule: ParserRule, chapter_url: str) -> str:
        try:
            chapter_html = self.dispatcher.execute_request_without_check(
                self.extraction.fetch_html, chapter_url
            )
            content = self.extraction.extract_content(chapter_html, rule)
        except Exception as e:
            return f"[Could not fetch chapter content: {e}]"

        if len(content) > self.sample_content_length:
            content = content[:self.sample_content_length] + "..."
        return content

    def _check_valid(self, rule: ParserRule) -> None:
        validation = validate_rule(rule)
        if not validation.valid:
            raise ValidationError(
                _missing_fields_message(validation.missing_fields),
                field=", ".join(validation.missing_fields),
                missing_fields=validation.missing_fields
            )

    def insert_rule(self, rule: ParserRule) -> int:
        """
        Validate and persist a rule.

        Raises:
            ValidationError: If a required field is blank
        """
        self._check_valid(rule)
        if not (rule.name or "").strip():
            rule.name = rule.domain_pattern.strip()

        rule_id = self.repository.insert_rule(rule)
        logger.info("Parser rule added", rule_id=rule_id, name=rule.name, domain=rule.domain_pattern)
        return rule_id

    def update_rule(self, rule: ParserRule) -> None:
        """
        Validate and persist changes to a stored rule.

        Raises:
            ValidationError: If a required field is blank
        """
        self._check_valid(rule)
        if not (rule.name or "").strip():
            rule.name = rule.domain_pattern.strip()

        self.repository.update_rule(rule)
        logger.info("Parser rule updated", rule_id=rule.id, name=rule.name)

    def delete_rule(self, rule_id: int) -> None:
        self.repository.delete_rule(rule_id)
        logger.info("Parser rule deleted", rule_id=rule_id)

    def get_rule_by_id(self, rule_id: int) -> Optional[ParserRule]:
        return self.repository.get_rule_by_id(rule_id)

    def get_rule_by_domain(self, domain: str) -> Optional[ParserRule]:
        return self.repository.get_rule_by_domain(domain)

    def get_all_rules(self) -> List[ParserRule]:
        return self.repository.get_all_rules()

    def match(self, url: str) -> ParserRule:
        """
        Select the stored rule that applies to a URL.

        Raises:
            RuleNotFoundError: If no stored rule applies
        """
        return self.matcher.match(url, self.repository.get_all_rules())
