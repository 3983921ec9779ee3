"""
Built-in parser rules seeded into an empty rule store.
"""

from typing import List, Optional

from novel_importer.data.models import ParserRule, WILDCARD_DOMAIN, current_millis
from novel_importer.data.repository import ParserRuleRepository
from novel_importer.utils.logging import get_business_logger


logger = get_business_logger('rules')

SMART_GENERIC_RULE_NAME = "Smart Generic Rule"

# Offset putting a late-added smart generic rule ahead of every existing rule
SMART_RULE_BACKDATE_MS = 1000000

DEFAULT_RULES = [
    {
        'name': SMART_GENERIC_RULE_NAME,
        'domain_pattern': WILDCARD_DOMAIN,
        'chapter_list_selector': (
            "#list dd a, .listmain dd a, #chapterlist a, .chapter-list a, "
            ".mulu a, .catalog a, .volume a, ul.list a, .chapters a, "
            "#catalog a, .booklist a, .ml_list a, .zjlist a, "
            ".dirlist a, #dir a, .chapterlist a"
        ),
        'content_selector': (
            "#content, #chaptercontent, #booktxt, #booktext, #htmlContent, "
            "#nr, #nr1, .content, .chapter-content, .booktxt, .booktext, "
            ".read-content, .novelcontent, .article-content, .txt, "
            ".yd_text2, .txtnav, .contentbox"
        ),
        'remove_selectors': (
            "script,style,.ad,.ads,.advertisement,#ad,#ads,.banner,.popup,.comment,.comments,"
            "iframe,.copy,.bottem,.bottem2,.txtinfo,.review-wrap"
        ),
    },
    {
        'name': "Generic Rule A",
        'domain_pattern': WILDCARD_DOMAIN,
        'chapter_list_selector': "#list dd a, .listmain dd a, .chapter-list a, .mulu a, #chapterlist a",
        'content_selector': "#content, .content, #chaptercontent, .chapter-content, #booktxt, .booktxt",
        'remove_selectors': "script,style,.ad,.ads,.banner,.popup",
    },
    {
        'name': "Generic Rule B",
        'domain_pattern': WILDCARD_DOMAIN,
        'chapter_list_selector': ".chapter a, .chapters a, .catalog a, ul.list a, .volume a, .zjlist a",
        'content_selector': "#content, .content, .article, .text, .read-content, #chaptercontent, .novelcontent",
        'remove_selectors': "script,style,.ad,.ads,.copy,.banner",
    },
    {
        'name': "Biquge Sites",
        'domain_pattern': "biquge",
        'chapter_list_selector': "#list dd a, .listmain dd a, #chapterlist a",
        'content_selector': "#content, #chaptercontent, .content",
        'remove_selectors': "script,style,.bottem,.bottem2,.ad",
    },
    {
        'name': "Qidian Sites",
        'domain_pattern': "qidian",
        'chapter_list_selector': ".volume-wrap .cf li a, .chapter-list a, .catalog a",
        'content_selector': ".read-content, .chapter-content, .content, #content",
        'remove_selectors': "script,style,.review-wrap,.chapter-review,.ad",
    },
    {
        'name': "69shu Sites",
        'domain_pattern': "69shu",
        'chapter_list_selector': ".mu_contain li a, .mulu a, #catalog a",
        'content_selector': ".yd_text2, .txtnav, #content, .content",
        'remove_selectors': "script,style,.txtinfo,.ad",
    },
]


def build_default_rule(definition: dict, created_at: int) -> ParserRule:
    rule = ParserRule(
        name=definition['name'],
        domain_pattern=definition['domain_pattern'],
        chapter_list_selector=definition['chapter_list_selector'],
        content_selector=definition['content_selector'],
        created_at=created_at,
    )
    rule.remove_selectors_from_string(definition['remove_selectors'])
    return rule


def build_default_rules(now: Optional[int] = None) -> List[ParserRule]:
    """The default rules, timestamped one millisecond apart in priority order."""
    now = current_millis() if now is None else now
    return [build_default_rule(definition, now + offset) for offset, definition in enumerate(DEFAULT_RULES)]


def seed_default_rules(repository: ParserRuleRepository, now: Optional[int] = None) -> int:
    """
    Seed the rule store.

    An empty store receives every default rule. A non-empty store only
    receives the smart generic rule, and only when it is missing; it is
    timestamped ahead of every existing rule.

    Returns:
        Number of rules inserted
    """
    now = current_millis() if now is None else now
    rule_count = repository.get_rule_count()
    logger.debug("Checking default parser rules", rule_count=rule_count)

    if rule_count == 0:
        for rule in build_default_rules(now):
            repository.insert_rule(rule)
        logger.info("Default parser rules added", count=len(DEFAULT_RULES))
        return len(DEFAULT_RULES)

    if repository.get_rule_by_name(SMART_GENERIC_RULE_NAME) is not None:
        return 0

    earliest = min([now] + [rule.created_at for rule in repository.get_all_rules()])
    rule = build_default_rule(DEFAULT_RULES[0], earliest - SMART_RULE_BACKDATE_MS)
    repository.insert_rule(rule)
    logger.info("Smart generic parser rule added", rule_id=rule.id)
    return 1
