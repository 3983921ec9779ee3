"""
Service layer components for importing novels.
"""

from .download_orchestrator import (
    DownloadOrchestrator,
    DownloadState,
    DownloadSession,
    DownloadResult,
    validate_url
)

__all__ = [
    'DownloadOrchestrator',
    'DownloadState',
    'DownloadSession',
    'DownloadResult',
    'validate_url'
]
