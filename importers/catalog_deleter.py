"""
Bulk deletion of catalog entities on the target site.

Used to clear a site before a fresh import. Every entity yields a typed
``DeleteOutcome``; protected default categories are skipped rather than
reported as failures. Also removes the media library items named after a
single product slug.
"""

import logging
import os
import posixpath
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from urllib.parse import urlparse

import requests

from config_loader import get_nested
from errors import DefaultEntityError, HttpError, MigrationError, TransientConnectionError
from logger import ProgressTracker
from models import DeleteOutcome, DeleteStats, DeleteStatus, EntityKind, MediaCleanupStats
from store_api import StoreApi
from .hierarchy_mapper import order_children_first
from .image_pipeline import sanitize_slug

DEFAULT_SLUGS = ('uncategorized', 'uncategorised', 'default')

# Structured error codes meaning "this term is protected"
PROTECTED_ERROR_CODES = (
    'woocommerce_rest_cannot_delete',
    'woocommerce_rest_term_is_shared',
    'term_is_shared',
    'cannot_delete',
)

# Message fragments used when the server gives no usable code
PROTECTED_MESSAGE_MARKERS = (
    'term is shared',
    'cannot delete',
    'default category',
    'uncategorized',
    'uncategorised',
)

# Below this many results a lang=all listing is assumed to be incomplete
LANG_ALL_MIN_RESULTS = 5


def check_deletable(entity: Dict[str, Any]) -> None:
    """
    Refuse built-in default categories before any request is made.

    Raises:
        DefaultEntityError: If the entity is a default category
    """
    slug = str(entity.get('slug') or '').lower()
    meta = entity.get('meta')
    if slug in DEFAULT_SLUGS:
        raise DefaultEntityError(slug, 'default')
    if isinstance(meta, dict) and meta.get('is_default'):
        raise DefaultEntityError(slug, 'default')


def classify_delete_error(error: HttpError, slug: str = '') -> Optional[DefaultEntityError]:
    """
    Map a failed DELETE to a protected-entity error when it is one.

    The structured ``code`` field is consulted first; message text is only
    matched when no known code is present.
    """
    code = (error.error_code or '').lower()
    if code in PROTECTED_ERROR_CODES:
        reason = 'shared' if 'shared' in code else 'default'
        return DefaultEntityError(slug, reason)

    message = error.error_message.lower()
    if 'term is shared' in message:
        return DefaultEntityError(slug, 'shared')
    if any(marker in message for marker in PROTECTED_MESSAGE_MARKERS):
        return DefaultEntityError(slug, 'default')
    return None


def media_basename(media: Dict[str, Any]) -> str:
    return posixpath.basename(urlparse(media.get('source_url') or media.get('src') or '').path)


def media_stem_matches(name: str, stem: str) -> bool:
    """True for ``stem.ext`` and ``stem-*.ext`` file names, ignoring case."""
    base = os.path.splitext(name)[0].lower()
    stem = stem.lower()
    return base == stem or base.startswith(f"{stem}-")


class CatalogDeleter:
    """Deletes every entity of one kind from the import site."""

    def __init__(
        self,
        config: Dict[str, Any],
        store: StoreApi,
        kind: EntityKind,
        delete_images: bool = False,
        throttle_delay: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self.store = store
        self.kind = kind
        self.delete_images = delete_images
        self.main_language = store.site.main_language
        self.logger = logger or logging.getLogger(__name__)
        if throttle_delay is None:
            throttle_delay = get_nested(config, 'migration.throttle_delay', 0.1)
        self.throttle_delay = throttle_delay
        self.stats = DeleteStats(kind=kind.value)

    def fetch_all(self, languages: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """
        Fetch every entity on the target, tagged with its language.

        A ``lang=all`` listing is tried first; if it fails or looks
        incomplete, each language is fetched separately and merged,
        de-duplicating by ID.
        """
        try:
            entities = [dict(item) for item in self.store.list_all(self.kind, 'all')]
        except (MigrationError, requests.RequestException) as e:
            self.logger.warning(f"Fetching {self.kind.value} with lang=all failed: {e}")
            entities = []

        if len(entities) < LANG_ALL_MIN_RESULTS:
            if languages:
                fallback_languages = list(languages)
            else:
                fallback_languages = self.store.active_languages() or self.store.site.languages
            self.logger.info(
                f"Only found {len(entities)} {self.kind.value} with lang=all; "
                f"trying individual languages: {', '.join(fallback_languages)}"
            )

            seen = {int(item['id']) for item in entities}
            for lang in fallback_languages:
                try:
                    batch = self.store.list_all(self.kind, lang)
                except (MigrationError, requests.RequestException) as e:
                    self.logger.warning(f"Could not fetch {self.kind.value} for language {lang}: {e}")
                    continue

                added = 0
                for item in batch:
                    if int(item['id']) in seen:
                        continue
                    seen.add(int(item['id']))
                    tagged = dict(item)
                    tagged.setdefault('lang', lang)
                    entities.append(tagged)
                    added += 1
                self.logger.debug(f"{lang}: {len(batch)} fetched, {added} new")

        for item in entities:
            if not item.get('lang'):
                item['lang'] = self.main_language

        self.logger.info(f"Found {len(entities)} {self.kind.value} on {self.store.base_url}")
        return entities

    def delete_entity(self, entity: Dict[str, Any], lang: str) -> DeleteOutcome:
        """
        Delete one entity.

        Returns:
            DELETED (also when the entity was already gone), SKIPPED for
            protected defaults, FAILED otherwise
        """
        entity_id = int(entity['id'])
        slug = entity.get('slug', '')

        try:
            if self.kind is EntityKind.CATEGORIES:
                check_deletable(entity)

            if self.delete_images and lang == self.main_language:
                self.delete_entity_images(entity)

            self.store.delete_entity(self.kind, entity_id, lang)
        except DefaultEntityError as e:
            self.logger.warning(f"Skipping default {self.kind.label}: {slug} (ID: {entity_id}, Lang: {lang})")
            return DeleteOutcome.skipped(entity_id, e.reason)
        except HttpError as e:
            if e.status_code == 404:
                self.logger.info(f"{self.kind.label} {entity_id} ({lang}) not found; already deleted")
                return DeleteOutcome.deleted(entity_id, reason='not found')

            protected = classify_delete_error(e, slug)
            if protected is not None:
                self.logger.warning(
                    f"Skipping {self.kind.label} {entity_id} ({lang}): cannot be deleted ({protected.reason})"
                )
                return DeleteOutcome.skipped(entity_id, protected.reason)

            self.logger.error(f"Failed to delete {self.kind.label} {entity_id} ({lang}): {e}")
            return DeleteOutcome.failed(entity_id, e)
        except (MigrationError, requests.RequestException) as e:
            self.logger.error(f"Failed to delete {self.kind.label} {entity_id} ({lang}): {e}")
            return DeleteOutcome.failed(entity_id, e)

        self.logger.info(f"Deleted {self.kind.label}: {entity.get('name', slug)} (ID: {entity_id}, Lang: {lang})")
        return DeleteOutcome.deleted(entity_id)

    def delete_entity_images(self, entity: Dict[str, Any]) -> None:
        """Delete the entity's images whose filename was derived from its slug."""
        stem = sanitize_slug(entity.get('slug', ''))
        if self.kind is EntityKind.CATEGORIES:
            images = [entity['image']] if entity.get('image') else []
        else:
            images = entity.get('images') or []

        for image in images:
            media_id = image.get('id')
            name = media_basename(image)
            image_stem, ext = os.path.splitext(name)
            if not media_id or not media_stem_matches(name, stem):
                self.logger.debug(f"Keeping image {name}: does not match slug '{stem}'")
                continue

            self._delete_media(int(media_id), name)
            self._delete_thumbnails(image_stem, ext)

    def delete_all(self, languages: Optional[Iterable[str]] = None) -> DeleteStats:
        """
        Delete every entity of the configured kind.

        Args:
            languages: Only delete entities in these languages

        Returns:
            Per-language deletion statistics
        """
        languages = list(languages) if languages else None
        by_lang: Dict[str, List[Dict[str, Any]]] = {}
        for entity in self.fetch_all(languages):
            by_lang.setdefault(entity['lang'], []).append(entity)

        for lang in sorted(by_lang):
            if languages and lang not in languages:
                continue

            items = by_lang[lang]
            if self.kind is EntityKind.CATEGORIES:
                items = order_children_first(items)

            with ProgressTracker(len(items), f"{self.kind.value} ({lang})") as tracker:
                for entity in items:
                    outcome = self.delete_entity(entity, lang)
                    self.stats.record(lang, outcome)
                    tracker.increment(outcome.status is not DeleteStatus.FAILED)
                    if self.throttle_delay > 0:
                        time.sleep(self.throttle_delay)

        return self.stats

    def cleanup_media(
        self,
        slug: str,
        thorough: bool = False,
        max_retries: Optional[int] = None,
        languages: Optional[Iterable[str]] = None
    ) -> MediaCleanupStats:
        """
        Remove every media item named after a product slug.

        Files are matched on the sanitized slug stem: ``stem.ext`` and any
        ``stem-*`` variant, which covers gallery suffixes, ``-scaled``
        copies and ``-WxH`` thumbnails. Each match is force-deleted
        without a language first and then in each site language, since
        WPML hides attachments of other languages from an unscoped
        request.

        Args:
            slug: Product slug (URL-encoded slugs are accepted)
            thorough: Also search with ``lang=all`` and in each language
            max_retries: Extra attempts for a failing delete (defaults to config)
            languages: Languages to try deletes in (defaults to the site's)

        Returns:
            Counters for matched, deleted, missing and failed media
        """
        stem = sanitize_slug(slug)
        stats = MediaCleanupStats(slug=slug, stem=stem)
        if max_retries is None:
            max_retries = get_nested(self.config, 'advanced.max_retries', 3)

        if languages:
            languages = list(languages)
        else:
            languages = self.store.active_languages() or self.store.site.languages

        search_scopes: List[Optional[str]] = [None]
        if thorough:
            search_scopes += ['all'] + [lang for lang in languages if lang != self.main_language]

        self.logger.info(f"Cleaning up media for product '{slug}' (file stem: {stem})")
        handled: Set[int] = set()
        for scope in search_scopes:
            for media in self.store.search_media(stem, lang=scope):
                name = media_basename(media)
                if not media.get('id') or not media_stem_matches(name, stem):
                    continue
                media_id = int(media['id'])
                if media_id in handled:
                    continue
                handled.add(media_id)
                stats.matched += 1
                self._cleanup_media_item(media_id, name, languages, max_retries, stats)

        self.logger.info(
            f"Media cleanup for '{slug}': {stats.deleted} deleted, "
            f"{stats.missing} already gone, {stats.failed} failed"
        )
        return stats

    def _cleanup_media_item(
        self,
        media_id: int,
        name: str,
        languages: List[str],
        max_retries: int,
        stats: MediaCleanupStats
    ) -> None:
        last_error: Optional[Exception] = None
        for lang in [None] + list(languages):
            try:
                self._with_retries(
                    lambda: self.store.delete_media(media_id, lang=lang),
                    f"delete media {media_id}{f' in {lang}' if lang else ''}",
                    max_retries,
                )
            except HttpError as e:
                if e.status_code != 404:
                    last_error = e
                continue
            except (MigrationError, requests.RequestException) as e:
                last_error = e
                continue

            stats.deleted += 1
            stats.deleted_ids.append(media_id)
            self.logger.info(f"Deleted media {name} (ID: {media_id}{f', Lang: {lang}' if lang else ''})")
            return

        if last_error is None:
            stats.missing += 1
            self.logger.info(f"Media {name} (ID: {media_id}) not found in any language")
        else:
            stats.failed += 1
            self.logger.error(f"Failed to delete media {name} (ID: {media_id}): {last_error}")

    def _with_retries(self, operation: Callable[[], Any], description: str, max_retries: int) -> Any:
        """Run a write, retrying server-side failures with capped exponential backoff."""
        backoff = get_nested(self.config, 'advanced.retry_backoff_factor', 1.0)
        max_backoff = get_nested(self.config, 'advanced.max_backoff', 15)
        attempt = 0
        while True:
            try:
                return operation()
            except HttpError as e:
                if e.status_code < 500 and e.status_code != 429:
                    raise
                if attempt >= max_retries:
                    raise
                error: Exception = e
            except (TransientConnectionError, requests.RequestException) as e:
                if attempt >= max_retries:
                    raise
                error = e

            attempt += 1
            delay = min(backoff * (2 ** (attempt - 1)), max_backoff)
            self.logger.warning(f"{description} failed ({error}); retry {attempt}/{max_retries} in {delay:.1f}s")
            if delay > 0:
                time.sleep(delay)

    def _delete_media(self, media_id: int, name: str) -> None:
        try:
            self.store.delete_media(media_id)
        except HttpError as e:
            if e.status_code == 404:
                return
            self.logger.warning(f"Failed to delete image {name} (ID: {media_id}): {e}")
            self.stats.images_failed += 1
            return
        except (MigrationError, requests.RequestException) as e:
            self.logger.warning(f"Failed to delete image {name} (ID: {media_id}): {e}")
            self.stats.images_failed += 1
            return

        self.stats.images_deleted += 1
        self.logger.info(f"Deleted image {name} (ID: {media_id})")

    def _delete_thumbnails(self, stem: str, ext: str) -> None:
        pattern = re.compile(rf"^{re.escape(stem)}-\d+x\d+{re.escape(ext)}$", re.IGNORECASE)
        for media in self.store.search_media(stem):
            name = media_basename(media)
            if media.get('id') and pattern.match(name):
                self._delete_media(int(media['id']), name)


__all__ = [
    'CatalogDeleter',
    'check_deletable',
    'classify_delete_error',
    'media_stem_matches',
    'DEFAULT_SLUGS',
]
