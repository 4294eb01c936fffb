"""Export package for WooCommerce catalog snapshots.

This package fetches product categories or products from the export site and
writes them to a versioned JSON snapshot.

Package Structure:
- catalog_exporter: Fetches entities, partitions them by language, writes the snapshot
- translation_map: Builds and queries the cross-language translation map
- snapshot_store: Snapshot file paths, atomic writes and validated loads
- snapshot_inspector: Summaries and consistency checks for the ``test`` command

Configuration Referenced:
- migration.output_directory: Base path for snapshot files
- export.strip_fields: Fields removed from every exported entity
- export.translation_key: Join key for translation groups (``slug`` by default)
"""

from .catalog_exporter import CatalogExporter
from .snapshot_inspector import SnapshotInspector, format_inspection
from .snapshot_store import load_snapshot, snapshot_path, write_snapshot
from .translation_map import (
    FieldKeyStrategy,
    SlugKeyStrategy,
    TranslationKeyStrategy,
    TranslationMap,
    TranslationMapBuilder,
    strategy_for,
)

__all__ = [
    'CatalogExporter',
    'SnapshotInspector',
    'format_inspection',
    'load_snapshot',
    'snapshot_path',
    'write_snapshot',
    'TranslationKeyStrategy',
    'SlugKeyStrategy',
    'FieldKeyStrategy',
    'TranslationMap',
    'TranslationMapBuilder',
    'strategy_for',
]
