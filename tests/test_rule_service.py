"""
Unit tests for rule validation, live rule testing and rule persistence.
"""

from unittest.mock import Mock

import pytest

from novel_importer.concurrent import ConnectivityChecker, RequestDispatcher, RequestGate
from novel_importer.data.models import ParserRule, ChapterInfo, NovelMetadata
from novel_importer.rules.service import RuleService, validate_rule
from novel_importer.utils.errors import NetworkError, ParseError, ValidationError, RuleNotFoundError


def _rule(**overrides):
    values = dict(
        name="Biquge Sites",
        domain_pattern="biquge",
        chapter_list_selector="#list dd a",
        content_selector="#content",
    )
    values.update(overrides)
    return ParserRule(**values)


def _dispatcher(online=True):
    return RequestDispatcher(ConnectivityChecker(probe=lambda: online), RequestGate(2))


class TestValidateRule:

    def test_complete_rule_is_valid(self):
        result = validate_rule(_rule())
        assert result.valid is True
        assert result.missing_fields == []

    def test_missing_fields_reported_in_fixed_order(self):
        rule = _rule(domain_pattern=" ", chapter_list_selector="", content_selector=None)
        result = validate_rule(rule)

        assert result.valid is False
        assert result.missing_fields == ["domain", "chapterListSelector", "contentSelector"]

    def test_single_missing_field(self):
        result = validate_rule(_rule(content_selector="\t"))
        assert result.missing_fields == ["contentSelector"]

    def test_none_rule(self):
        result = validate_rule(None)
        assert result.valid is False
        assert result.missing_fields == ["rule"]


class TestTestRule:

    def setup_method(self):
        self.extraction = Mock()
        self.extraction.fetch_html.side_effect = lambda url: f"<html>{url}</html>"
        self.extraction.extract_metadata.return_value = NovelMetadata(title="Sword Saint", author="Li Bai")
        self.extraction.extract_chapter_list.return_value = [
            ChapterInfo("Chapter 1", "http://www.biquge.com/1.html", 0),
            ChapterInfo("Chapter 2", "http://www.biquge.com/2.html", 1),
        ]
        self.extraction.extract_content.return_value = "x" * 250
        self.service = RuleService(Mock(), self.extraction, _dispatcher())

    def test_success_with_truncated_sample(self):
        result = self.service.test_rule(_rule(), "http://www.biquge.com/book/1/")

        assert result.success is True
        assert result.title == "Sword Saint"
        assert result.author == "Li Bai"
        assert result.chapter_count == 2
        assert result.sample_content == "x" * 200 + "..."
        self.extraction.fetch_html.assert_any_call("http://www.biquge.com/1.html")

    def test_short_sample_not_truncated(self):
        self.extraction.extract_content.return_value = "short text"
        result = self.service.test_rule(_rule(), "http://www.biquge.com/book/1/")
        assert result.sample_content == "short text"

    def test_invalid_rule_fails_without_fetching(self):
        result = self.service.test_rule(_rule(content_selector=""), "http://www.biquge.com/")

        assert result.success is False
        assert "contentSelector" in result.error_message
        self.extraction.fetch_html.assert_not_called()

    def test_empty_url_fails(self):
        result = self.service.test_rule(_rule(), "  ")
        assert result.success is False

    def test_network_failure_reported(self):
        service = RuleService(Mock(), self.extraction, _dispatcher(online=False))
        result = service.test_rule(_rule(), "http://www.biquge.com/")

        assert result.success is False
        assert result.error_message.startswith("Network request failed")

    def test_parse_failure_reported(self):
        self.extraction.extract_chapter_list.side_effect = ParseError("Invalid selector: [[")
        result = self.service.test_rule(_rule(), "http://www.biquge.com/")

        assert result.success is False
        assert result.error_message.startswith("Parsing failed")

    def test_first_chapter_failure_reported_in_sample(self):
        self.extraction.extract_content.side_effect = ParseError("Chapter content not found")
        result = self.service.test_rule(_rule(), "http://www.biquge.com/")

        assert result.success is True
        assert result.sample_content.startswith("[Could not fetch chapter content")

    def test_missing_metadata_placeholders(self):
        self.extraction.extract_metadata.return_value = NovelMetadata()
        result = self.service.test_rule(_rule(), "http://www.biquge.com/")

        assert result.title == "Title not found"
        assert result.author == "Author not found"

    def test_no_chapters_gives_empty_sample(self):
        self.extraction.extract_chapter_list.return_value = []
        result = self.service.test_rule(_rule(), "http://www.biquge.com/")

        assert result.success is True
        assert result.chapter_count == 0
        assert result.sample_content == ""


class TestRulePersistence:

    def test_insert_validates(self, rule_repository):
        service = RuleService(rule_repository, Mock(), _dispatcher())

        with pytest.raises(ValidationError) as exc_info:
            service.insert_rule(_rule(chapter_list_selector=""))

        assert exc_info.value.missing_fields == ["chapterListSelector"]
        assert rule_repository.get_rule_count() == 0

    def test_insert_defaults_name_to_domain(self, rule_repository):
        service = RuleService(rule_repository, Mock(), _dispatcher())
        rule_id = service.insert_rule(_rule(name=""))

        assert service.get_rule_by_id(rule_id).name == "biquge"

    def test_update_and_delete(self, rule_repository):
        service = RuleService(rule_repository, Mock(), _dispatcher())
        rule = _rule()
        service.insert_rule(rule)

        rule.content_selector = "#chaptercontent"
        service.update_rule(rule)
        assert service.get_rule_by_id(rule.id).content_selector == "#chaptercontent"

        service.delete_rule(rule.id)
        assert service.get_rule_by_id(rule.id) is None

    def test_update_validates(self, rule_repository):
        service = RuleService(rule_repository, Mock(), _dispatcher())
        rule = _rule()
        service.insert_rule(rule)

        rule.domain_pattern = "  "
        rule.content_selector = ""
        with pytest.raises(ValidationError) as exc_info:
            service.update_rule(rule)

        assert exc_info.value.missing_fields == ["domain", "contentSelector"]
        stored = service.get_rule_by_id(rule.id)
        assert stored.domain_pattern == "biquge"
        assert stored.content_selector == "#content"

    def test_match_uses_stored_rules(self, rule_repository):
        service = RuleService(rule_repository, Mock(), _dispatcher())
        service.insert_rule(_rule(name="Generic", domain_pattern="*", created_at=1))
        service.insert_rule(_rule(name="Biquge", domain_pattern="biquge", created_at=2))

        assert service.match("https://www.biquge.com/book/1/").name == "Biquge"
        assert service.match("https://another.net/").name == "Generic"

    def test_match_without_rules_raises(self, rule_repository):
        service = RuleService(rule_repository, Mock(), _dispatcher())
        with pytest.raises(RuleNotFoundError):
            service.match("https://www.biquge.com/")
