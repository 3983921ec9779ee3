"""
Selection of the parser rule that applies to a URL.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from novel_importer.data.models import ParserRule
from novel_importer.utils.errors import RuleNotFoundError
from novel_importer.utils.logging import get_business_logger


logger = get_business_logger('rules')


def extract_host(url: str) -> str:
    """Lower-cased host of a URL without port; scheme-less URLs are read as http."""
    url = (url or "").strip()
    if "://" not in url:
        url = "http://" + url
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


class MatchStrategy(ABC):
    """Scores how well a rule fits a host."""

    @abstractmethod
    def score(self, rule: ParserRule, host: str) -> Optional[int]:
        """Score of the rule for host, or None when the rule does not apply."""


class SpecificityMatchStrategy(MatchStrategy):
    """
    Longer matching domain patterns win.

    A non-wildcard pattern contained in the host (case-insensitive) scores its
    own length; the wildcard scores zero.
    """

    def score(self, rule: ParserRule, host: str) -> Optional[int]:
        if rule.is_wildcard:
            return 0
        pattern = rule.domain_pattern.strip().lower()
        if pattern and pattern in host:
            return len(pattern)
        return None


class RuleMatcher:
    """Picks the best rule for a URL using a pluggable strategy."""

    def __init__(self, strategy: Optional[MatchStrategy] = None):
        self.strategy = strategy or SpecificityMatchStrategy()

    def match(self, url: str, rules: Iterable[ParserRule]) -> ParserRule:
        """
        Select the rule for a URL.

        Ties on score go to the earliest created rule, then the lowest id.

        Raises:
            RuleNotFoundError: If no valid rule applies
        """
        host = extract_host(url)
        candidates: List[Tuple[int, ParserRule]] = []

        for rule in rules:
            if not rule.is_valid():
                continue
            score = self.strategy.score(rule, host)
            if score is not None:
                candidates.append((score, rule))

        if not candidates:
            logger.info("No parser rule matched", url=url, host=host)
            raise RuleNotFoundError(f"No parser rule matches {url}", {"url": url, "host": host})

        best_score, best_rule = min(candidates, key=_candidate_order)
        logger.debug("Parser rule matched", url=url, rule=best_rule.name, score=best_score)
        return best_rule


def _candidate_order(candidate: Tuple[int, ParserRule]):
    score, rule = candidate
    rule_id = rule.id if rule.id is not None else float("inf")
    return (-score, rule.created_at, rule_id)
