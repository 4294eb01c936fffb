"""Data models for the WooCommerce catalog migration pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from errors import ValidationError

logger = logging.getLogger('woo_catalog_migrator')

SNAPSHOT_FORMAT_VERSION = 1


class EntityKind(Enum):
    """Catalog entity kinds that can be exported, imported and deleted."""
    CATEGORIES = "categories"
    PRODUCTS = "products"

    @property
    def snapshot_filename(self) -> str:
        return f"exported-{self.value}.json"

    @property
    def rest_path(self) -> str:
        if self is EntityKind.CATEGORIES:
            return '/wp-json/wc/v3/products/categories'
        return '/wp-json/wc/v3/products'

    @property
    def label(self) -> str:
        """Singular label used in log messages."""
        return 'category' if self is EntityKind.CATEGORIES else 'product'


@dataclass(frozen=True)
class SiteProfile:
    """Named WordPress site with credentials and language settings."""

    name: str
    base_url: str
    username: str
    password: str
    main_language: str
    other_languages: tuple = ()
    description: str = ''

    def __post_init__(self) -> None:
        object.__setattr__(self, 'base_url', self.base_url.rstrip('/'))
        object.__setattr__(self, 'other_languages', tuple(self.other_languages))

    @property
    def languages(self) -> List[str]:
        """Main language followed by the other languages in configured order."""
        return [self.main_language] + [
            lang for lang in self.other_languages if lang != self.main_language
        ]

    @property
    def domain(self) -> str:
        """Host part of the base URL, used to namespace local exports."""
        return urlparse(self.base_url).netloc or self.base_url

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SiteProfile':
        return cls(
            name=data['name'],
            base_url=data['base_url'],
            username=data.get('username', ''),
            password=data.get('password', ''),
            main_language=data.get('main_language', 'en'),
            other_languages=tuple(data.get('other_languages') or ()),
            description=data.get('description', ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize profile without the password."""
        return {
            'name': self.name,
            'base_url': self.base_url,
            'username': self.username,
            'main_language': self.main_language,
            'other_languages': list(self.other_languages),
            'description': self.description,
        }


@dataclass
class ExportMeta:
    """Snapshot metadata block."""

    exported_at: str
    main_language: str
    other_languages: List[str] = field(default_factory=list)
    source_site: str = "Unknown Site"
    source_url: str = ''
    kind: Optional[str] = None
    format_version: int = SNAPSHOT_FORMAT_VERSION

    @property
    def languages(self) -> List[str]:
        return [self.main_language] + [
            lang for lang in self.other_languages if lang != self.main_language
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exported_at': self.exported_at,
            'main_language': self.main_language,
            'other_languages': list(self.other_languages),
            'source_site': self.source_site,
            'source_url': self.source_url,
            'kind': self.kind,
            'format_version': self.format_version,
        }

    @classmethod
    def now(cls, site: SiteProfile, site_name: str, kind: 'EntityKind') -> 'ExportMeta':
        return cls(
            exported_at=datetime.now(timezone.utc).isoformat(),
            main_language=site.main_language,
            other_languages=list(site.other_languages),
            source_site=site_name,
            source_url=site.base_url,
            kind=kind.value,
        )


@dataclass
class ExportSnapshot:
    """Versioned, language-partitioned export of one entity kind.

    ``translations`` maps a translation key (the slug by default) to a
    ``{language: original_id}`` dict. ``data`` maps a language code to the
    list of raw entity dicts exported for that language.
    """

    meta: ExportMeta
    translations: Dict[str, Dict[str, int]] = field(default_factory=dict)
    data: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @property
    def languages(self) -> List[str]:
        """Configured languages followed by any extra languages present in data."""
        ordered = self.meta.languages
        extra = [lang for lang in self.data if lang not in ordered]
        return ordered + extra

    @property
    def total_entities(self) -> int:
        return sum(len(items) for items in self.data.values())

    def entities(self, lang: str) -> List[Dict[str, Any]]:
        return self.data.get(lang, [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'meta': self.meta.to_dict(),
            'translations': {'wpml': self.translations},
            'data': self.data,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> 'ExportSnapshot':
        """
        Build a snapshot from its JSON form.

        Args:
            payload: Decoded JSON document

        Returns:
            ExportSnapshot instance

        Raises:
            ValidationError: If required sections or fields are missing
        """
        if not isinstance(payload, dict):
            raise ValidationError("Snapshot must be a JSON object")

        for section in ('meta', 'data'):
            if section not in payload:
                raise ValidationError(f"Snapshot is missing required section '{section}'")

        meta_data = payload['meta']
        if not isinstance(meta_data, dict) or not meta_data.get('main_language'):
            raise ValidationError("Snapshot meta.main_language is required")

        data = payload['data']
        if not isinstance(data, dict):
            raise ValidationError("Snapshot data must map language codes to entity lists")
        for lang, items in data.items():
            if not isinstance(items, list):
                raise ValidationError(f"Snapshot data for language '{lang}' must be a list")
            for item in items:
                if not isinstance(item, dict) or 'id' not in item:
                    raise ValidationError(f"Snapshot entity in '{lang}' is missing 'id'")

        wpml = (payload.get('translations') or {}).get('wpml') or {}
        translations: Dict[str, Dict[str, int]] = {}
        for key, lang_map in wpml.items():
            try:
                translations[key] = {lang: int(entity_id) for lang, entity_id in lang_map.items()}
            except (TypeError, ValueError, AttributeError):
                raise ValidationError(f"Invalid translation group '{key}' in snapshot")

        meta = ExportMeta(
            exported_at=meta_data.get('exported_at', ''),
            main_language=meta_data['main_language'],
            other_languages=list(meta_data.get('other_languages') or []),
            source_site=meta_data.get('source_site', 'Unknown Site'),
            source_url=meta_data.get('source_url', ''),
            kind=meta_data.get('kind'),
            format_version=meta_data.get('format_version', SNAPSHOT_FORMAT_VERSION),
        )
        return cls(meta=meta, translations=translations, data=data)


@dataclass
class LanguageStats:
    """Per-language creation counters."""
    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'total': self.total,
            'created': self.created,
            'skipped': self.skipped,
            'failed': self.failed,
        }


@dataclass
class ImageStats:
    downloaded: int = 0
    uploaded: int = 0
    reused: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'downloaded': self.downloaded,
            'uploaded': self.uploaded,
            'reused': self.reused,
            'skipped': self.skipped,
            'failed': self.failed,
        }


@dataclass
class TranslationConnectionStats:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'attempted': self.attempted,
            'succeeded': self.succeeded,
            'failed': self.failed,
        }


@dataclass
class ImportStats:
    """Counters accumulated over one import run."""

    kind: Optional[str] = None
    languages: Dict[str, LanguageStats] = field(default_factory=dict)
    images: ImageStats = field(default_factory=ImageStats)
    translation_connections: TranslationConnectionStats = field(
        default_factory=TranslationConnectionStats
    )
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def for_language(self, lang: str) -> LanguageStats:
        if lang not in self.languages:
            self.languages[lang] = LanguageStats()
        return self.languages[lang]

    def record_error(self, lang: str, slug: str, error: Exception) -> None:
        self.errors.append({'lang': lang, 'slug': slug, 'error': str(error)})

    def totals(self) -> LanguageStats:
        total = LanguageStats()
        for stats in self.languages.values():
            total.total += stats.total
            total.created += stats.created
            total.skipped += stats.skipped
            total.failed += stats.failed
        return total

    @property
    def has_failures(self) -> bool:
        return (
            self.totals().failed > 0
            or self.images.failed > 0
            or self.translation_connections.failed > 0
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'languages': {lang: stats.to_dict() for lang, stats in self.languages.items()},
            'totals': self.totals().to_dict(),
            'images': self.images.to_dict(),
            'translation_connections': self.translation_connections.to_dict(),
            'errors': list(self.errors),
        }


class DeleteStatus(Enum):
    DELETED = "deleted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class DeleteOutcome:
    """Result of deleting a single remote entity."""

    status: DeleteStatus
    entity_id: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def deleted(cls, entity_id: int, reason: Optional[str] = None) -> 'DeleteOutcome':
        return cls(DeleteStatus.DELETED, entity_id, reason=reason)

    @classmethod
    def skipped(cls, entity_id: int, reason: str) -> 'DeleteOutcome':
        return cls(DeleteStatus.SKIPPED, entity_id, reason=reason)

    @classmethod
    def failed(cls, entity_id: int, error: Exception) -> 'DeleteOutcome':
        return cls(DeleteStatus.FAILED, entity_id, reason=str(error), error=error)


@dataclass
class DeleteStats:
    """Per-language deletion counters."""

    kind: Optional[str] = None
    languages: Dict[str, Dict[str, int]] = field(default_factory=dict)
    images_deleted: int = 0
    images_failed: int = 0

    def record(self, lang: str, outcome: DeleteOutcome) -> None:
        counters = self.languages.setdefault(
            lang, {'deleted': 0, 'skipped': 0, 'failed': 0}
        )
        counters[outcome.status.value] += 1

    def total(self, status: DeleteStatus) -> int:
        return sum(counters.get(status.value, 0) for counters in self.languages.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'languages': self.languages,
            'totals': {status.value: self.total(status) for status in DeleteStatus},
            'images_deleted': self.images_deleted,
            'images_failed': self.images_failed,
        }


@dataclass
class MediaCleanupStats:
    """Counters for removing the media named after one product slug."""

    slug: str
    stem: str = ''
    matched: int = 0
    deleted: int = 0
    missing: int = 0
    failed: int = 0
    deleted_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'slug': self.slug,
            'stem': self.stem,
            'matched': self.matched,
            'deleted': self.deleted,
            'missing': self.missing,
            'failed': self.failed,
            'deleted_ids': list(self.deleted_ids),
        }


__all__ = [
    'EntityKind',
    'SiteProfile',
    'ExportMeta',
    'ExportSnapshot',
    'LanguageStats',
    'ImageStats',
    'TranslationConnectionStats',
    'ImportStats',
    'DeleteStatus',
    'DeleteOutcome',
    'DeleteStats',
    'MediaCleanupStats',
    'SNAPSHOT_FORMAT_VERSION',
]
