"""
Migration report generator for import, delete and export runs.

Reports are plain dictionaries built from the run statistics, rendered for
console display and optionally exported as JSON.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from exporters.snapshot_inspector import SnapshotInspector, format_inspection
from logger import format_duration
from models import DeleteStats, DeleteStatus, ExportSnapshot, ImportStats, MediaCleanupStats

logger = logging.getLogger(__name__)


class MigrationReport:
    """Builds and formats end-of-run reports."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize migration report generator.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)

    def build_import_report(
        self,
        stats: ImportStats,
        source: str,
        target: str,
        duration: float
    ) -> Dict[str, Any]:
        """
        Build the report for an import run.

        Args:
            stats: Statistics returned by the importer
            source: Snapshot path the import read from
            target: Base URL of the import site
            duration: Run duration in seconds

        Returns:
            Report dictionary
        """
        report = {
            'operation': 'import',
            'source': source,
            'target': target,
            'duration_seconds': duration,
            'duration_formatted': format_duration(duration),
            'timestamp': datetime.now().isoformat(),
        }
        report.update(stats.to_dict())
        return report

    def build_delete_report(self, stats: DeleteStats, target: str, duration: float) -> Dict[str, Any]:
        report = {
            'operation': 'delete',
            'target': target,
            'duration_seconds': duration,
            'duration_formatted': format_duration(duration),
            'timestamp': datetime.now().isoformat(),
        }
        report.update(stats.to_dict())
        return report

    def build_media_cleanup_report(self, stats: MediaCleanupStats, target: str, duration: float) -> Dict[str, Any]:
        report = {
            'operation': 'cleanup-media',
            'target': target,
            'duration_seconds': duration,
            'duration_formatted': format_duration(duration),
            'timestamp': datetime.now().isoformat(),
        }
        report.update(stats.to_dict())
        return report

    def build_export_report(self, snapshot: ExportSnapshot, path: str, duration: float) -> Dict[str, Any]:
        return {
            'operation': 'export',
            'kind': snapshot.meta.kind,
            'output': path,
            'source': snapshot.meta.source_url,
            'counts': {lang: len(snapshot.entities(lang)) for lang in snapshot.languages},
            'total': snapshot.total_entities,
            'translation_groups': len(snapshot.translations),
            'duration_seconds': duration,
            'duration_formatted': format_duration(duration),
            'timestamp': datetime.now().isoformat(),
        }

    def format_import_report(self, report: Dict[str, Any]) -> str:
        """
        Format an import report for console display.

        The per-language tally is always present, even when every entity failed.
        """
        sections = self._header(f"IMPORT SUMMARY ({report.get('kind') or 'entities'})")
        sections.append(f"  Source:   {report.get('source', '')}")
        sections.append(f"  Target:   {report.get('target', '')}")
        sections.append(f"  Duration: {report.get('duration_formatted', '0s')}")
        sections.append("")

        sections.append("By Language:")
        sections.append("-" * 60)
        for lang, counts in report.get('languages', {}).items():
            sections.append(
                f"  {lang}: Total: {counts['total']}, Created: {counts['created']}, "
                f"Skipped: {counts['skipped']}, Failed: {counts['failed']}"
            )
        totals = report.get('totals', {})
        sections.append(
            f"  all: Total: {totals.get('total', 0)}, Created: {totals.get('created', 0)}, "
            f"Skipped: {totals.get('skipped', 0)}, Failed: {totals.get('failed', 0)}"
        )
        sections.append("")

        connections = report.get('translation_connections', {})
        sections.append("Translation Connections:")
        sections.append(
            f"  Attempted: {connections.get('attempted', 0)}, "
            f"Succeeded: {connections.get('succeeded', 0)}, "
            f"Failed: {connections.get('failed', 0)}"
        )
        sections.append("")

        images = report.get('images', {})
        sections.append("Images:")
        sections.append(
            f"  Downloaded: {images.get('downloaded', 0)}, Uploaded: {images.get('uploaded', 0)}, "
            f"Reused: {images.get('reused', 0)}, Skipped: {images.get('skipped', 0)}, "
            f"Failed: {images.get('failed', 0)}"
        )

        errors = report.get('errors') or []
        if errors:
            sections.append("")
            sections.append(f"Errors ({len(errors)}):")
            for error in errors[:20]:
                sections.append(f"  [{error['lang']}] {error['slug']}: {error['error']}")
            if len(errors) > 20:
                sections.append(f"  ... and {len(errors) - 20} more")

        sections.append("=" * 60)
        return "\n".join(sections)

    def format_delete_report(self, report: Dict[str, Any]) -> str:
        sections = self._header(f"DELETE SUMMARY ({report.get('kind') or 'entities'})")
        sections.append(f"  Target:   {report.get('target', '')}")
        sections.append(f"  Duration: {report.get('duration_formatted', '0s')}")
        sections.append("")

        sections.append("By Language:")
        sections.append("-" * 60)
        for lang, counts in report.get('languages', {}).items():
            sections.append(
                f"  {lang}: Deleted: {counts.get('deleted', 0)}, "
                f"Skipped: {counts.get('skipped', 0)}, Failed: {counts.get('failed', 0)}"
            )
        totals = report.get('totals', {})
        sections.append(
            "  all: " + ", ".join(
                f"{status.value.capitalize()}: {totals.get(status.value, 0)}" for status in DeleteStatus
            )
        )

        if report.get('images_deleted') or report.get('images_failed'):
            sections.append("")
            sections.append(
                f"Images: {report.get('images_deleted', 0)} deleted, "
                f"{report.get('images_failed', 0)} failed"
            )

        sections.append("=" * 60)
        return "\n".join(sections)

    def format_media_cleanup_report(self, report: Dict[str, Any]) -> str:
        sections = self._header(f"MEDIA CLEANUP SUMMARY ({report.get('slug', '')})")
        sections.append(f"  Target:    {report.get('target', '')}")
        sections.append(f"  File stem: {report.get('stem', '')}")
        sections.append(f"  Duration:  {report.get('duration_formatted', '0s')}")
        sections.append("")
        sections.append(
            f"  Matched: {report.get('matched', 0)}, Deleted: {report.get('deleted', 0)}, "
            f"Already gone: {report.get('missing', 0)}, Failed: {report.get('failed', 0)}"
        )
        sections.append("=" * 60)
        return "\n".join(sections)

    def format_export_report(self, report: Dict[str, Any]) -> str:
        sections = self._header(f"EXPORT SUMMARY ({report.get('kind') or 'entities'})")
        sections.append(f"  Source:   {report.get('source', '')}")
        sections.append(f"  Output:   {report.get('output', '')}")
        sections.append(f"  Duration: {report.get('duration_formatted', '0s')}")
        sections.append("")
        for lang, count in report.get('counts', {}).items():
            sections.append(f"  {lang}: {count}")
        sections.append(f"  total: {report.get('total', 0)}")
        sections.append(f"  Translation groups: {report.get('translation_groups', 0)}")
        sections.append("=" * 60)
        return "\n".join(sections)

    def format_snapshot_summary(self, inspector: SnapshotInspector, search: Optional[str] = None) -> str:
        """Snapshot summary table for the ``test`` command."""
        return "\n".join(self._header("SNAPSHOT SUMMARY") + [format_inspection(inspector, search)])

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Report dictionary
            filepath: Output file path
        """
        try:
            path = Path(filepath)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)

            self.logger.info(f"JSON report exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")

    @staticmethod
    def _header(title: str) -> list:
        return ["=" * 60, title, "=" * 60]


__all__ = ['MigrationReport']
