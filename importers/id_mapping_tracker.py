"""
ID mapping tracker for catalog imports.

This module tracks the mapping between source-site IDs and the IDs created
on the target site during one import run, per language, plus the mapping
between source and target media IDs.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class IdMappingTracker:
    """Write-once maps of source IDs to target IDs for one import run."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize ID mapping tracker.

        Args:
            logger: Optional logger instance (defaults to module logger)
        """
        self.logger = logger or logging.getLogger(__name__)

        # lang -> original entity ID -> new entity ID
        self._entities: Dict[str, Dict[int, int]] = {}

        # original image ID -> new media ID
        self._images: Dict[int, int] = {}

        self.logger.debug("Initialized IdMappingTracker")

    def add_entity_mapping(self, lang: str, original_id: int, new_id: int) -> bool:
        """
        Record the target ID created for a source entity.

        A mapping is never overwritten; a conflicting second write is ignored.

        Args:
            lang: Language code
            original_id: Source-site entity ID
            new_id: Target-site entity ID

        Returns:
            True if the mapping was stored (or already identical)
        """
        original_id = int(original_id)
        new_id = int(new_id)
        by_lang = self._entities.setdefault(lang, {})

        existing = by_lang.get(original_id)
        if existing is not None:
            if existing != new_id:
                self.logger.warning(
                    f"Ignoring remap of {lang}:{original_id} to {new_id}; already mapped to {existing}"
                )
                return False
            return True

        by_lang[original_id] = new_id
        self.logger.debug(f"Entity mapping added: {lang}:{original_id} -> {new_id}")
        return True

    def get_new_id(self, lang: str, original_id: Optional[int]) -> Optional[int]:
        """
        Get the target ID for a source entity.

        Returns:
            Target ID or None if not mapped
        """
        if original_id is None:
            return None
        return self._entities.get(lang, {}).get(int(original_id))

    def has_mapping(self, lang: str, original_id: int) -> bool:
        return self.get_new_id(lang, original_id) is not None

    def add_image_mapping(self, original_image_id: int, new_image_id: int) -> bool:
        original_image_id = int(original_image_id)
        existing = self._images.get(original_image_id)
        if existing is not None:
            if existing != int(new_image_id):
                self.logger.warning(
                    f"Ignoring remap of image {original_image_id} to {new_image_id}; "
                    f"already mapped to {existing}"
                )
                return False
            return True

        self._images[original_image_id] = int(new_image_id)
        self.logger.debug(f"Image mapping added: {original_image_id} -> {new_image_id}")
        return True

    def get_image_id(self, original_image_id: Optional[int]) -> Optional[int]:
        if original_image_id is None:
            return None
        return self._images.get(int(original_image_id))

    def language_mappings(self, lang: str) -> Dict[int, int]:
        return dict(self._entities.get(lang, {}))

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get mapping statistics.

        Returns:
            Dict with per-language entity counts and the image mapping count
        """
        return {
            'entities': {lang: len(mapping) for lang, mapping in self._entities.items()},
            'total_entities': sum(len(mapping) for mapping in self._entities.values()),
            'images': len(self._images),
        }

    def clear(self) -> None:
        self._entities.clear()
        self._images.clear()
        self.logger.debug("Cleared all mappings")


__all__ = ['IdMappingTracker']
