"""
Services for bka business logic.

Operations that read and write across collections of the document store.
"""

from .merge_service import MergeService
from .backup_service import BackupService, ExportResult, ImportResult
from .health_service import HealthService, HealthReport
from .lookup_service import LookupService, LookupResult

__all__ = [
    'MergeService',
    'BackupService',
    'ExportResult',
    'ImportResult',
    'HealthService',
    'HealthReport',
    'LookupService',
    'LookupResult',
]
