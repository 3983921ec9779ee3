"""
Data models and persistence components.
"""

from .models import (
    ParserRule,
    ChapterInfo,
    NovelMetadata,
    NovelRecord,
    ExistingNovelInfo,
    ChapterRecord,
    RuleValidationResult,
    RuleTestResult
)
from .repository import RecordStore, NovelRepository, ParserRuleRepository
from .sqlite_database import SQLiteDatabaseManager

__all__ = [
    'ParserRule',
    'ChapterInfo',
    'NovelMetadata',
    'NovelRecord',
    'ExistingNovelInfo',
    'ChapterRecord',
    'RuleValidationResult',
    'RuleTestResult',
    'RecordStore',
    'NovelRepository',
    'ParserRuleRepository',
    'SQLiteDatabaseManager'
]
