"""
Site registry for resolving export and import site profiles.

The last selected export/import site names are persisted in a small JSON
settings file so that consecutive invocations keep working against the
same pair of sites.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Union

from config_loader import get_nested
from errors import ValidationError
from models import SiteProfile

logger = logging.getLogger(__name__)

EXPORT_KEY = 'lastExportSite'
IMPORT_KEY = 'lastImportSite'


class SiteRegistry:
    """Named site profiles plus the persisted export/import selection."""

    def __init__(self, sites: List[SiteProfile], settings_path: str = '.wpp-settings.json'):
        """
        Initialize the registry.

        Args:
            sites: Configured site profiles, in configuration order
            settings_path: JSON file holding the last selected sites

        Raises:
            ValidationError: If no site profiles are configured
        """
        if not sites:
            raise ValidationError("No site profiles configured")
        self.sites = list(sites)
        self.settings_path = settings_path
        self._settings = self._load_settings()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'SiteRegistry':
        profiles = [SiteProfile.from_dict(site) for site in config.get('sites') or []]
        settings_path = get_nested(config, 'migration.settings_file', '.wpp-settings.json')
        return cls(profiles, settings_path)

    def list_sites(self) -> List[Dict[str, Any]]:
        return [
            {'index': index, 'name': site.name, 'description': site.description, 'base_url': site.base_url}
            for index, site in enumerate(self.sites)
        ]

    def get_site(self, name_or_index: Union[str, int, None]) -> Optional[SiteProfile]:
        """
        Resolve a profile by case-insensitive name or by position.

        Returns None when nothing matches.
        """
        if name_or_index is None:
            return None

        if isinstance(name_or_index, int) or str(name_or_index).isdigit():
            index = int(name_or_index)
            if 0 <= index < len(self.sites):
                return self.sites[index]
            if isinstance(name_or_index, int):
                return None

        wanted = str(name_or_index).lower()
        for site in self.sites:
            if site.name.lower() == wanted:
                return site
        return None

    def get_export_site(self) -> SiteProfile:
        return self._resolve(EXPORT_KEY)

    def get_import_site(self) -> SiteProfile:
        return self._resolve(IMPORT_KEY)

    def set_export_site(self, name_or_index: Union[str, int]) -> Optional[SiteProfile]:
        return self._select(EXPORT_KEY, name_or_index)

    def set_import_site(self, name_or_index: Union[str, int]) -> Optional[SiteProfile]:
        return self._select(IMPORT_KEY, name_or_index)

    def _resolve(self, key: str) -> SiteProfile:
        # Profiles may have been renamed since the settings were written;
        # fall back to the first profile silently.
        site = self.get_site(self._settings.get(key))
        return site or self.sites[0]

    def _select(self, key: str, name_or_index: Union[str, int]) -> Optional[SiteProfile]:
        site = self.get_site(name_or_index)
        if site is None:
            logger.warning(f"No site profile matches '{name_or_index}'")
            return None

        self._settings[key] = site.name
        self._save_settings()
        logger.info(f"{'Export' if key == EXPORT_KEY else 'Import'} site set to '{site.name}'")
        return site

    def _load_settings(self) -> Dict[str, Any]:
        defaults = {EXPORT_KEY: self.sites[0].name, IMPORT_KEY: self.sites[0].name}
        if not os.path.exists(self.settings_path):
            return defaults

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read settings file {self.settings_path}: {e}")
            return defaults

        if not isinstance(stored, dict):
            logger.warning(f"Ignoring malformed settings file {self.settings_path}")
            return defaults

        defaults.update({k: v for k, v in stored.items() if k in (EXPORT_KEY, IMPORT_KEY)})
        return defaults

    def _save_settings(self) -> None:
        directory = os.path.dirname(self.settings_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.settings_path, 'w', encoding='utf-8') as f:
            json.dump(self._settings, f, indent=2)


__all__ = ['SiteRegistry', 'SiteProfile']
