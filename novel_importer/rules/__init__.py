"""
Parser rule matching, management and default seed.
"""

from .matcher import MatchStrategy, SpecificityMatchStrategy, RuleMatcher, extract_host
from .service import RuleService, validate_rule
from .defaults import DEFAULT_RULES, SMART_GENERIC_RULE_NAME, build_default_rules, seed_default_rules

__all__ = [
    'MatchStrategy',
    'SpecificityMatchStrategy',
    'RuleMatcher',
    'extract_host',
    'RuleService',
    'validate_rule',
    'DEFAULT_RULES',
    'SMART_GENERIC_RULE_NAME',
    'build_default_rules',
    'seed_default_rules'
]
