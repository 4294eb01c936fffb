"""
Translation map construction and lookup.

A translation map groups the same logical entity across languages:
``{key: {lang: original_id}}``. The key comes from a pluggable
``TranslationKeyStrategy``; the slug is used by default.
"""

import logging
from typing import Any, Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)


class TranslationKeyStrategy:
    """Derives the cross-language join key for an entity."""

    name = 'base'

    def key_for(self, entity: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError


class SlugKeyStrategy(TranslationKeyStrategy):
    """Joins translations on the entity slug."""

    name = 'slug'

    def key_for(self, entity: Dict[str, Any]) -> Optional[str]:
        slug = entity.get('slug')
        return str(slug) if slug else None


class FieldKeyStrategy(TranslationKeyStrategy):
    """Joins translations on an arbitrary field (e.g. a WPML ``trid``)."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        self.name = field_name

    def key_for(self, entity: Dict[str, Any]) -> Optional[str]:
        value = entity.get(self.field_name)
        return str(value) if value not in (None, '') else None


def strategy_for(name: Optional[str]) -> TranslationKeyStrategy:
    """Resolve a strategy from its configured name (``slug`` or a field name)."""
    if not name or name == 'slug':
        return SlugKeyStrategy()
    return FieldKeyStrategy(name)


class TranslationMapBuilder:
    """Accumulates translation groups while entities are exported."""

    def __init__(self, strategy: Optional[TranslationKeyStrategy] = None):
        self.strategy = strategy or SlugKeyStrategy()
        self._groups: Dict[str, Dict[str, int]] = {}

    def add(self, entity: Dict[str, Any], lang: str) -> None:
        """
        Record an entity and its declared translations.

        Only entities carrying a ``translations`` map take part. The
        entity's own ID is stored under ``lang`` and every entry of its
        ``translations`` map is copied into the same group.
        """
        translations = entity.get('translations')
        if not translations or not isinstance(translations, dict):
            return

        key = self.strategy.key_for(entity)
        if key is None:
            logger.debug(f"Entity {entity.get('id')} has no translation key; skipping")
            return

        group = self._groups.setdefault(key, {})
        group[lang] = int(entity['id'])
        for other_lang, other_id in translations.items():
            try:
                group[other_lang] = int(other_id)
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-numeric translation id {other_id!r} for '{key}'")

    def build(self) -> Dict[str, Dict[str, int]]:
        return {key: dict(group) for key, group in self._groups.items()}

    def __len__(self) -> int:
        return len(self._groups)


class TranslationMap:
    """Read side of a translation map, with a reverse index by (lang, id)."""

    def __init__(self, groups: Dict[str, Dict[str, int]]):
        self._groups = groups
        self._by_member: Dict[Tuple[str, int], str] = {}
        for key, lang_map in groups.items():
            for lang, entity_id in lang_map.items():
                self._by_member.setdefault((lang, int(entity_id)), key)

    def __len__(self) -> int:
        return len(self._groups)

    def groups(self) -> Iterator[Tuple[str, Dict[str, int]]]:
        return iter(self._groups.items())

    def group_of(self, lang: str, original_id: int) -> Optional[Tuple[str, Dict[str, int]]]:
        """Find the group that lists ``original_id`` for ``lang``."""
        key = self._by_member.get((lang, int(original_id)))
        if key is None:
            return None
        return key, self._groups[key]

    def counterpart(self, lang: str, original_id: int, target_lang: str) -> Optional[int]:
        """Original ID of the same entity in ``target_lang``, if known."""
        found = self.group_of(lang, original_id)
        if found is None:
            return None
        return found[1].get(target_lang)

    def mapped_languages(self, key: str, id_mapper) -> Dict[str, int]:
        """
        Compose a group with the import ID map.

        Args:
            key: Translation group key
            id_mapper: IdMappingTracker for the current import

        Returns:
            ``{lang: new_id}`` for every member that has been mapped
        """
        mapped: Dict[str, int] = {}
        for lang, original_id in self._groups.get(key, {}).items():
            new_id = id_mapper.get_new_id(lang, original_id)
            if new_id is not None:
                mapped[lang] = new_id
        return mapped


__all__ = [
    'TranslationKeyStrategy',
    'SlugKeyStrategy',
    'FieldKeyStrategy',
    'strategy_for',
    'TranslationMapBuilder',
    'TranslationMap',
]
