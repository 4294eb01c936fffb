"""
Catalog importer for replaying an export snapshot against a target site.

Entities are created language by language (main language first) and,
within a language, parents before children. Source IDs are remapped to
target IDs through the run's IdMappingTracker so that parents and
translations created earlier can be referenced by later entities.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import requests
from tqdm import tqdm

from config_loader import get_nested
from errors import HttpError, MigrationError
from exporters.translation_map import TranslationMap
from models import EntityKind, ExportSnapshot, ImportStats
from store_api import StoreApi
from .hierarchy_mapper import order_parents_first, parent_id_of
from .id_mapping_tracker import IdMappingTracker
from .image_pipeline import ImagePipeline
from .import_limiter import limit_import_data, restrict_languages

# Fields the product endpoint computes itself or that reference source-site IDs
PRODUCT_READ_ONLY_FIELDS = (
    'id', '_links', 'lang', 'translations', 'permalink',
    'date_created', 'date_created_gmt', 'date_modified', 'date_modified_gmt',
    'date_on_sale_from_gmt', 'date_on_sale_to_gmt',
    'price', 'price_html', 'on_sale', 'purchasable', 'total_sales',
    'average_rating', 'rating_count', 'related_ids', 'upsell_ids', 'cross_sell_ids',
    'variations', 'grouped_products', 'parent_id', 'has_options',
    'yoast_head', 'yoast_head_json',
)

CATEGORY_COPY_FIELDS = ('name', 'slug', 'description', 'display', 'menu_order')

CREATED = 'created'
SKIPPED = 'skipped'
FAILED = 'failed'


class CatalogImporter:
    """Imports one entity kind from a snapshot into the target site."""

    def __init__(
        self,
        config: Dict[str, Any],
        store: StoreApi,
        kind: EntityKind,
        image_pipeline: Optional[ImagePipeline] = None,
        id_mapper: Optional[IdMappingTracker] = None,
        stats: Optional[ImportStats] = None,
        skip_existing: Optional[bool] = None,
        throttle_delay: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the importer.

        Args:
            config: Configuration dictionary
            store: StoreApi bound to the import site
            kind: Entity kind being imported
            image_pipeline: Pipeline used for entity images (None disables images)
            id_mapper: Run-scoped ID tracker
            stats: Run-scoped statistics
            skip_existing: Skip entities already present (defaults to config)
            throttle_delay: Seconds to wait after each create (defaults to config)
            logger: Optional logger instance
        """
        self.config = config
        self.store = store
        self.kind = kind
        self.id_mapper = id_mapper or IdMappingTracker()
        self.stats = stats or ImportStats(kind=kind.value)
        self.image_pipeline = image_pipeline
        self.logger = logger or logging.getLogger(__name__)

        if skip_existing is None:
            skip_existing = get_nested(config, 'migration.skip_existing', True)
        self.skip_existing = skip_existing

        if throttle_delay is None:
            throttle_delay = get_nested(config, 'migration.throttle_delay', 0.1)
        self.throttle_delay = throttle_delay

        self.show_progress = get_nested(config, 'export.progress_bars', True)

        # (lang, original_id) pairs whose translation link to the main
        # language is established on the target
        self._linked: Set[Tuple[str, int]] = set()
        self._category_cache: Dict[Tuple[str, str], int] = {}
        # main-language original ID -> slug, rebuilt for every snapshot
        self._main_slugs: Optional[Dict[int, str]] = None

    def import_snapshot(
        self,
        snapshot: ExportSnapshot,
        limit: Optional[int] = None,
        languages: Optional[Iterable[str]] = None
    ) -> ImportStats:
        """
        Replay a snapshot.

        Args:
            snapshot: Loaded export snapshot
            limit: Only import the first N main-language entities and their translations
            languages: Restrict the import to these language codes

        Returns:
            Statistics for the run
        """
        meta = snapshot.meta
        translation_map = TranslationMap(snapshot.translations)
        self._main_slugs = index_slugs(snapshot.entities(meta.main_language))

        data = limit_import_data(
            snapshot.data, translation_map, meta.main_language, meta.other_languages, limit
        )
        data = restrict_languages(data, languages)

        self.logger.info(f"First pass: importing {self.kind.value}")
        for lang in snapshot.languages:
            entities = data.get(lang) or []
            if entities:
                self._import_language(snapshot, translation_map, lang, entities)

        if self.kind is EntityKind.PRODUCTS:
            self.logger.info("Second pass: connecting product translations")
            self._connect_product_translations(translation_map)
        else:
            self._count_category_links(snapshot, translation_map)

        return self.stats

    def _import_language(
        self,
        snapshot: ExportSnapshot,
        translation_map: TranslationMap,
        lang: str,
        entities: List[Dict[str, Any]]
    ) -> None:
        if self.kind is EntityKind.CATEGORIES:
            entities = order_parents_first(entities)

        lang_stats = self.stats.for_language(lang)
        lang_stats.total += len(entities)
        self.logger.info(f"Importing {len(entities)} {self.kind.value} in language: {lang}")

        iterable = entities
        if self.show_progress:
            iterable = tqdm(entities, desc=f"{self.kind.value} [{lang}]", unit=self.kind.label)

        for entity in iterable:
            outcome = self.import_entity(snapshot, translation_map, entity, lang)
            if outcome == CREATED:
                lang_stats.created += 1
            elif outcome == SKIPPED:
                lang_stats.skipped += 1
            else:
                lang_stats.failed += 1

    def import_entity(
        self,
        snapshot: ExportSnapshot,
        translation_map: TranslationMap,
        entity: Dict[str, Any],
        lang: str
    ) -> str:
        """
        Import a single entity.

        Returns:
            ``created``, ``skipped`` or ``failed``
        """
        original_id = int(entity['id'])
        slug = entity.get('slug', '')
        self.logger.debug(f"Processing {self.kind.label} '{entity.get('name')}' ({slug}) [{lang}]")

        existing = self.find_existing(entity, lang)
        if existing is not None and self.skip_existing:
            self.id_mapper.add_entity_mapping(lang, original_id, existing['id'])
            self._linked.add((lang, original_id))
            self.logger.info(f"SKIPPED {lang}/{slug} (already exists with ID: {existing['id']})")
            return SKIPPED

        try:
            payload, linked = self.build_payload(snapshot, translation_map, entity, lang)
            response = self.store.create_entity(self.kind, payload, lang)
        except HttpError as e:
            resource_id = _existing_resource_id(e)
            if resource_id and self.skip_existing:
                self.id_mapper.add_entity_mapping(lang, original_id, resource_id)
                self._linked.add((lang, original_id))
                self.logger.info(f"SKIPPED {lang}/{slug} (server reports existing ID: {resource_id})")
                return SKIPPED
            return self._fail(lang, slug, e)
        except (MigrationError, requests.RequestException, ValueError) as e:
            return self._fail(lang, slug, e)
        finally:
            self._throttle()

        new_id = response.get('id') if isinstance(response, dict) else None
        if not new_id:
            return self._fail(lang, slug, MigrationError(f"Create response had no id: {response!r}"))

        self.id_mapper.add_entity_mapping(lang, original_id, new_id)
        if linked:
            self._linked.add((lang, original_id))
        self.logger.info(f"CREATED {lang}/{slug} (ID: {new_id})")
        return CREATED

    def find_existing(self, entity: Dict[str, Any], lang: str) -> Optional[Dict[str, Any]]:
        """Existing target entity: by SKU then slug for products, by slug otherwise."""
        if self.kind is EntityKind.PRODUCTS and entity.get('sku'):
            found = self.store.find_product_by_sku(entity['sku'], lang)
            if found is not None:
                return found
        return self.store.find_by_slug(self.kind, entity.get('slug', ''), lang)

    def build_payload(
        self,
        snapshot: ExportSnapshot,
        translation_map: TranslationMap,
        entity: Dict[str, Any],
        lang: str
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Build the create payload for an entity.

        Returns:
            Tuple of (payload, whether a translation link to the main language is included)
        """
        naming_slug = self._naming_slug(snapshot, translation_map, entity, lang)
        if self.kind is EntityKind.CATEGORIES:
            return self._category_payload(snapshot, translation_map, entity, lang, naming_slug)
        return self._product_payload(entity, lang, naming_slug), False

    def _category_payload(
        self,
        snapshot: ExportSnapshot,
        translation_map: TranslationMap,
        entity: Dict[str, Any],
        lang: str,
        naming_slug: str
    ) -> Tuple[Dict[str, Any], bool]:
        payload = {field: entity[field] for field in CATEGORY_COPY_FIELDS if field in entity}
        payload.setdefault('description', '')

        parent = parent_id_of(entity)
        new_parent = self.id_mapper.get_new_id(lang, parent) if parent else None
        if parent and new_parent is None:
            self.logger.debug(f"Parent {parent} of '{entity.get('slug')}' not mapped; creating at top level")
        payload['parent'] = new_parent or 0

        if entity.get('image') and self.image_pipeline is not None:
            image_id = self.image_pipeline.process_image(entity['image'], naming_slug)
            if image_id:
                payload['image'] = {'id': image_id}

        linked = False
        main = snapshot.meta.main_language
        if lang != main:
            main_original = translation_map.counterpart(lang, entity['id'], main)
            main_new = self.id_mapper.get_new_id(main, main_original)
            if main_new is not None:
                payload['translation_of'] = main_new
                linked = True
            else:
                self.logger.debug(f"No main-language counterpart mapped for {lang}/{entity.get('slug')}")

        return payload, linked

    def _product_payload(self, entity: Dict[str, Any], lang: str, naming_slug: str) -> Dict[str, Any]:
        payload = {key: value for key, value in entity.items() if key not in PRODUCT_READ_ONLY_FIELDS}

        if isinstance(payload.get('meta_data'), list):
            payload['meta_data'] = [
                {k: v for k, v in meta.items() if k != 'id'}
                for meta in payload['meta_data'] if isinstance(meta, dict)
            ]

        images = payload.pop('images', None) or []
        if images and self.image_pipeline is not None:
            new_images = []
            for index, image in enumerate(images):
                image_id = self.image_pipeline.process_image(image, naming_slug, index)
                if image_id:
                    new_images.append({'id': image_id})
            if new_images:
                payload['images'] = new_images

        if isinstance(payload.get('categories'), list):
            payload['categories'] = self._remap_categories(payload['categories'], lang)

        return payload

    def _remap_categories(self, categories: List[Dict[str, Any]], lang: str) -> List[Dict[str, int]]:
        remapped = []
        for category in categories:
            slug = category.get('slug')
            if not slug:
                continue
            cache_key = (lang, slug)
            target_id = self._category_cache.get(cache_key)
            if target_id is None:
                found = self.store.find_by_slug(EntityKind.CATEGORIES, slug, lang)
                if found:
                    target_id = int(found['id'])
                    self._category_cache[cache_key] = target_id
            if target_id is None:
                self.logger.warning(f"Category '{slug}' not found on target in {lang}; dropping it")
                continue
            remapped.append({'id': target_id})
        return remapped

    def _naming_slug(
        self,
        snapshot: ExportSnapshot,
        translation_map: TranslationMap,
        entity: Dict[str, Any],
        lang: str
    ) -> str:
        """Slug images are named after: the main-language counterpart's when known."""
        main = snapshot.meta.main_language
        slug = entity.get('slug', '')
        if lang == main:
            return slug

        main_id = translation_map.counterpart(lang, entity['id'], main)
        if main_id is None and isinstance(entity.get('translations'), dict):
            main_id = entity['translations'].get(main)
        if main_id is None:
            return slug

        if self._main_slugs is None:
            self._main_slugs = index_slugs(snapshot.entities(main))
        return self._main_slugs.get(int(main_id)) or slug

    def _connect_product_translations(self, translation_map: TranslationMap) -> None:
        connections = self.stats.translation_connections
        for key, _ in translation_map.groups():
            mapped = translation_map.mapped_languages(key, self.id_mapper)
            if len(mapped) < 2:
                continue

            connections.attempted += 1
            try:
                self.store.connect_translations(mapped)
            except (MigrationError, requests.RequestException) as e:
                connections.failed += 1
                self.logger.error(f"Error setting up translation for group {key}: {e}")
                continue

            connections.succeeded += 1
            self.logger.debug(f"Connected translations for {key}: {mapped}")

        self.logger.info(
            f"Translations: {connections.attempted} attempted, "
            f"{connections.succeeded} succeeded, {connections.failed} failed"
        )

    def _count_category_links(self, snapshot: ExportSnapshot, translation_map: TranslationMap) -> None:
        """Record the translation links established inline through ``translation_of``."""
        connections = self.stats.translation_connections
        main = snapshot.meta.main_language
        for key, lang_map in translation_map.groups():
            mapped = translation_map.mapped_languages(key, self.id_mapper)
            if len(mapped) < 2:
                continue

            connections.attempted += 1
            members = [
                (lang, int(lang_map[lang])) for lang in mapped if lang != main
            ]
            if main in mapped and all(member in self._linked for member in members):
                connections.succeeded += 1
            else:
                connections.failed += 1
                self.logger.warning(f"Translation group '{key}' is only partially linked: {mapped}")

        self.logger.info(
            f"Translations: {connections.succeeded} of {connections.attempted} groups "
            f"connected via translation_of"
        )

    def _fail(self, lang: str, slug: str, error: Exception) -> str:
        self.logger.error(f"FAILED {lang}/{slug}: {error}")
        self.stats.record_error(lang, slug, error)
        return FAILED

    def _throttle(self) -> None:
        if self.throttle_delay > 0:
            time.sleep(self.throttle_delay)


def _existing_resource_id(error: HttpError) -> Optional[int]:
    """Target ID carried by a ``term_exists`` error, if any."""
    if error.error_code != 'term_exists' or not isinstance(error.body, dict):
        return None
    data = error.body.get('data') or {}
    resource_id = data.get('resource_id') if isinstance(data, dict) else None
    try:
        return int(resource_id) if resource_id else None
    except (TypeError, ValueError):
        return None


def index_slugs(entities: Iterable[Dict[str, Any]]) -> Dict[int, str]:
    """Map original entity IDs to their slugs."""
    index: Dict[int, str] = {}
    for entity in entities:
        try:
            index[int(entity['id'])] = entity.get('slug') or ''
        except (KeyError, TypeError, ValueError):
            continue
    return index


__all__ = ['CatalogImporter', 'CREATED', 'SKIPPED', 'FAILED', 'index_slugs']
