"""Trimming of snapshot data for partial imports (``--limit`` / ``--lang``)."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from exporters.translation_map import TranslationMap

logger = logging.getLogger(__name__)


def limit_import_data(
    data: Dict[str, List[Dict[str, Any]]],
    translation_map: TranslationMap,
    main_language: str,
    other_languages: Iterable[str],
    limit: Optional[int]
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Keep the first ``limit`` main-language entities and only their translations.

    Args:
        data: Snapshot data keyed by language
        translation_map: Translation groups of the snapshot
        main_language: Main language code
        other_languages: Other language codes
        limit: Number of main-language entities to keep; falsy keeps everything

    Returns:
        Filtered copy of ``data``
    """
    main_items = data.get(main_language) or []
    if not limit or limit <= 0 or not main_items:
        return data

    selected = main_items[:limit]
    selected_ids = {int(item['id']) for item in selected}
    filtered: Dict[str, List[Dict[str, Any]]] = {main_language: list(selected)}

    for lang in other_languages:
        filtered[lang] = [
            item for item in data.get(lang) or []
            if translation_map.counterpart(lang, item['id'], main_language) in selected_ids
        ]

    logger.info(
        f"Limiting import to {len(selected)} items from main language and their translations"
    )
    for lang, items in filtered.items():
        logger.info(f"  {lang}: {len(items)} items")
    return filtered


def restrict_languages(
    data: Dict[str, List[Dict[str, Any]]],
    languages: Optional[Iterable[str]]
) -> Dict[str, List[Dict[str, Any]]]:
    """Drop every language not listed in ``languages`` (None keeps all)."""
    if not languages:
        return data
    wanted = set(languages)
    return {lang: items for lang, items in data.items() if lang in wanted}


__all__ = ['limit_import_data', 'restrict_languages']
