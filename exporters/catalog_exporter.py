"""Catalog exporter: fetches a site's categories or products into a snapshot."""

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config_loader import get_nested
from models import EntityKind, ExportMeta, ExportSnapshot, SiteProfile
from store_api import StoreApi
from .snapshot_store import snapshot_path, write_snapshot
from .translation_map import TranslationKeyStrategy, TranslationMapBuilder, strategy_for


class CatalogExporter:
    """
    Exports one entity kind from the export site.

    The exporter:
    1. Reads the site display name (best effort)
    2. Fetches every entity with ``lang=all``
    3. Partitions entities by language and strips noisy fields
    4. Builds the translation map
    5. Writes the snapshot atomically under the site's domain directory
    """

    def __init__(
        self,
        config: Dict[str, Any],
        store: StoreApi,
        strategy: Optional[TranslationKeyStrategy] = None,
        output_dir: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the exporter.

        Args:
            config: Configuration dictionary
            store: StoreApi bound to the export site
            strategy: Translation key strategy (defaults to ``export.translation_key``)
            output_dir: Optional output directory override
            logger: Logger instance
        """
        self.config = config
        self.store = store
        self.site: SiteProfile = store.site
        self.logger = logger or logging.getLogger(__name__)
        self.strategy = strategy or strategy_for(get_nested(config, 'export.translation_key', 'slug'))
        self.output_dir = output_dir or get_nested(config, 'migration.output_directory', './export')
        self.strip_fields: List[str] = list(
            get_nested(config, 'export.strip_fields', ['yoast_head', 'yoast_head_json'])
        )

    def export(self, kind: EntityKind) -> Tuple[ExportSnapshot, Path]:
        """
        Export every entity of ``kind``.

        Args:
            kind: Entity kind to export

        Returns:
            Tuple of (snapshot, written file path)

        Raises:
            HttpError, TransientConnectionError: If fetching fails; nothing is written
        """
        site_name = self.store.client.get_site_name(self.site.base_url)
        self.logger.info(f"Exporting {kind.value} from '{site_name}' ({self.site.base_url})")

        entities = self.store.list_all(kind, lang='all')
        self.logger.info(f"Fetched {len(entities)} {kind.value}")

        seen_languages = Counter(entity.get('lang') or self.site.main_language for entity in entities)
        self.logger.info(
            "Languages found in API response: "
            + ", ".join(f"{lang} ({count})" for lang, count in sorted(seen_languages.items()))
        )

        snapshot = self.build_snapshot(kind, entities, site_name)

        for lang, items in snapshot.data.items():
            self.logger.info(f"  {lang}: {len(items)} {kind.value}")
        self.logger.info(f"Translation relationships: {len(snapshot.translations)}")

        path = write_snapshot(snapshot, snapshot_path(self.output_dir, self.site, kind))
        self.logger.info(f"Exported {snapshot.total_entities} {kind.value} to {path}")
        return snapshot, path

    def build_snapshot(self, kind: EntityKind, entities: List[Dict[str, Any]], site_name: str) -> ExportSnapshot:
        """Partition fetched entities by language and build the translation map."""
        data: Dict[str, List[Dict[str, Any]]] = {lang: [] for lang in self.site.languages}
        builder = TranslationMapBuilder(self.strategy)

        for entity in entities:
            lang = entity.get('lang') or self.site.main_language
            if lang not in data:
                self.logger.debug(
                    f"Dropping {kind.label} {entity.get('id')} in unconfigured language '{lang}'"
                )
                continue

            cleaned = self.strip(entity)
            data[lang].append(cleaned)
            builder.add(cleaned, lang)

        return ExportSnapshot(
            meta=ExportMeta.now(self.site, site_name, kind),
            translations=builder.build(),
            data=data,
        )

    def strip(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in entity.items() if key not in self.strip_fields}


__all__ = ['CatalogExporter']
