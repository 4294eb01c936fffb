"""
Migration session coordinating export, import, delete and inspection runs.

A session owns the HTTP client for the current export/import site pair and
creates fresh run-scoped state (ID mappings, statistics) for every import,
so nothing is shared between runs through module globals.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from config_loader import get_nested
from errors import ValidationError
from exporters import CatalogExporter, SnapshotInspector, load_snapshot, snapshot_path
from importers import CatalogDeleter, CatalogImporter, IdMappingTracker, ImagePipeline
from logger import log_section
from models import DeleteStats, EntityKind, ExportSnapshot, ImportStats, MediaCleanupStats
from site_registry import SiteRegistry
from store_api import StoreApi
from wp_client import WooClient

logger = logging.getLogger(__name__)


class MigrationSession:
    """Entry point for every catalog operation against the selected site pair."""

    def __init__(
        self,
        config: Dict[str, Any],
        registry: SiteRegistry,
        client: Optional[WooClient] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the session.

        Args:
            config: Validated configuration dictionary
            registry: Site registry holding the export/import selection
            client: Optional pre-built client (a new one is built from config otherwise)
            logger: Optional logger instance
        """
        self.config = config
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)

        self.export_site = registry.get_export_site()
        self.import_site = registry.get_import_site()
        self.client = client or WooClient.from_config(config, self.export_site, self.import_site)

        self.export_store = StoreApi(self.client, self.export_site)
        self.import_store = StoreApi(self.client, self.import_site)

        # State of the most recent import, kept for reporting
        self.id_mapper: Optional[IdMappingTracker] = None

        self.logger.info(
            f"Session: export from {self.export_site.name} ({self.export_site.base_url}), "
            f"import to {self.import_site.name} ({self.import_site.base_url})"
        )

    def run_export(self, kind: EntityKind) -> Tuple[ExportSnapshot, Path]:
        """Export ``kind`` from the export site and write the snapshot."""
        log_section(f"Export {kind.value} from {self.export_site.name}")
        exporter = CatalogExporter(self.config, self.export_store, logger=self.logger)
        return exporter.export(kind)

    def snapshot_file(self, kind: EntityKind, input_file: Optional[str] = None) -> Path:
        """Snapshot to read: ``input_file`` or the export site's default path."""
        if input_file:
            return Path(input_file)
        output_dir = get_nested(self.config, 'migration.output_directory', './export')
        return snapshot_path(output_dir, self.export_site, kind)

    def load(self, kind: EntityKind, input_file: Optional[str] = None) -> ExportSnapshot:
        """
        Load and check a snapshot for ``kind``.

        Raises:
            ValidationError: If the file is missing, malformed or holds another kind
        """
        path = self.snapshot_file(kind, input_file)
        self.logger.info(f"Reading snapshot {path}")
        snapshot = load_snapshot(path)
        if snapshot.meta.kind and snapshot.meta.kind != kind.value:
            raise ValidationError(
                f"Snapshot {path} contains {snapshot.meta.kind}, not {kind.value}"
            )
        return snapshot

    def run_import(
        self,
        kind: EntityKind,
        input_file: Optional[str] = None,
        limit: Optional[int] = None,
        languages: Optional[Iterable[str]] = None,
        skip_image_download: bool = False,
        download_images: bool = False,
        force_upload: bool = False
    ) -> ImportStats:
        """
        Import a snapshot into the import site.

        Args:
            kind: Entity kind to import
            input_file: Snapshot path (defaults to the export site's snapshot)
            limit: Only import the first N main-language entities and their translations
            languages: Restrict the import to these languages
            skip_image_download: Only use images already present locally
            download_images: Re-download images even when a local copy exists
            force_upload: Upload images even when matching media exists

        Returns:
            Statistics for the run

        Raises:
            ValidationError: If the snapshot cannot be loaded
        """
        snapshot = self.load(kind, input_file)
        log_section(f"Import {kind.value} into {self.import_site.name}")

        site_languages = set(self.import_site.languages)
        missing = [lang for lang in snapshot.languages if lang not in site_languages]
        if missing:
            self.logger.warning(
                f"Snapshot languages {missing} are not configured for {self.import_site.name}"
            )

        self.id_mapper = IdMappingTracker(logger=self.logger)
        stats = ImportStats(kind=kind.value)
        pipeline = ImagePipeline(
            self.config,
            self.import_store,
            self.id_mapper,
            stats.images,
            skip_download=skip_image_download,
            force_download=download_images,
            force_upload=force_upload,
            logger=self.logger,
        )
        importer = CatalogImporter(
            self.config,
            self.import_store,
            kind,
            image_pipeline=pipeline,
            id_mapper=self.id_mapper,
            stats=stats,
            logger=self.logger,
        )
        return importer.import_snapshot(snapshot, limit=limit, languages=languages)

    def run_delete(
        self,
        kind: EntityKind,
        languages: Optional[Iterable[str]] = None,
        delete_images: bool = False
    ) -> DeleteStats:
        """Delete every entity of ``kind`` from the import site."""
        log_section(f"Delete {kind.value} from {self.import_site.name}")
        deleter = CatalogDeleter(
            self.config, self.import_store, kind, delete_images=delete_images, logger=self.logger
        )
        return deleter.delete_all(languages)

    def run_cleanup_media(
        self,
        slug: str,
        thorough: bool = False,
        max_retries: Optional[int] = None
    ) -> MediaCleanupStats:
        """Delete the media items named after one product slug on the import site."""
        log_section(f"Clean up media for {slug} on {self.import_site.name}")
        deleter = CatalogDeleter(self.config, self.import_store, EntityKind.PRODUCTS, logger=self.logger)
        return deleter.cleanup_media(slug, thorough=thorough, max_retries=max_retries)

    def inspect(self, kind: EntityKind, input_file: Optional[str] = None) -> SnapshotInspector:
        """Load a snapshot for the ``test`` command."""
        return SnapshotInspector(self.load(kind, input_file))


__all__ = ['MigrationSession']
