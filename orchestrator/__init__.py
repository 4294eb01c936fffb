"""
Orchestration package for coordinating catalog migration runs.

This package provides the session that wires clients, stores, importers and
deleters together for one export/import site pair, plus end-of-run reports.
"""

from .migration_session import MigrationSession
from .migration_report import MigrationReport

__all__ = [
    'MigrationSession',
    'MigrationReport'
]
