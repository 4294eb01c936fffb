"""In-memory stand-ins for the WordPress site and the HTTP session."""

import json
import posixpath
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from config_loader import ConfigLoader
from errors import HttpError, UnsupportedFileTypeError
from models import EntityKind, SiteProfile


def make_site(
    name: str = 'source',
    base_url: str = 'https://source.example',
    main_language: str = 'lt',
    other_languages=('en',)
) -> SiteProfile:
    return SiteProfile(
        name=name,
        base_url=base_url,
        username='admin',
        password='secret',
        main_language=main_language,
        other_languages=tuple(other_languages),
    )


def make_config(tmp_dir=None, **overrides) -> Dict[str, Any]:
    """Defaults with throttling and progress bars disabled."""
    config = {
        'sites': [make_site().to_dict()],
        'migration': {'throttle_delay': 0},
        'export': {'progress_bars': False},
    }
    if tmp_dir is not None:
        config['migration']['output_directory'] = str(tmp_dir / 'export')
        config['migration']['settings_file'] = str(tmp_dir / 'settings.json')
        config['images'] = {
            'temp_directory': str(tmp_dir / 'temp_images'),
            'webp_directory': str(tmp_dir / 'webp_images'),
        }
    for section, values in overrides.items():
        config.setdefault(section, {}).update(values)
    return ConfigLoader.apply_defaults(config)


class FakeClient:
    """Serves image downloads from a dict of URL -> bytes."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None, site_name: str = 'Test Shop'):
        self.files = dict(files or {})
        self.site_name = site_name
        self.downloads: List[str] = []
        self.upload_timeout = 60

    def download(self, url: str, timeout: Optional[float] = None) -> bytes:
        self.downloads.append(url)
        if url in self.files:
            return self.files[url]
        raise HttpError(404, url, 'Not Found')

    def get_site_name(self, base_url: str) -> str:
        return self.site_name


class FakeStore:
    """A WooCommerce site held in memory, exposing the StoreApi surface."""

    def __init__(self, site: Optional[SiteProfile] = None, client: Optional[FakeClient] = None):
        self.site = site or make_site('target', 'https://target.example')
        self.base_url = self.site.base_url
        self.client = client or FakeClient()
        self.entities: Dict[EntityKind, List[Dict[str, Any]]] = {kind: [] for kind in EntityKind}
        self.media: Dict[int, Dict[str, Any]] = {}
        self.languages: Optional[List[str]] = None

        self.created: List[Any] = []
        self.connected: List[Dict[str, int]] = []
        self.deleted: List[Any] = []
        self.deleted_media: List[int] = []
        self.uploads: List[str] = []

        self.fail_create_slugs = set()
        self.create_errors: Dict[str, HttpError] = {}
        self.delete_errors: Dict[int, HttpError] = {}
        self.list_all_error: Optional[Exception] = None
        self.unsupported_multipart = False
        self.upload_error: Optional[Exception] = None
        self.media_delete_errors: Dict[int, List[Exception]] = {}
        self._next_id = 1000
        self._next_media_id = 5000

    # Test helpers

    def add(self, kind: EntityKind, entity: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(entity)
        if 'id' not in stored:
            stored['id'] = self._new_id()
        self.entities[kind].append(stored)
        return stored

    def add_media(self, filename: str, lang: Optional[str] = None) -> int:
        media_id = self._next_media_id
        self._next_media_id += 1
        self.media[media_id] = {
            'id': media_id,
            'source_url': f"{self.base_url}/wp-content/uploads/2024/01/{filename}",
            'media_details': {'file': f"2024/01/{filename}"},
        }
        if lang:
            self.media[media_id]['lang'] = lang
        return media_id

    def get(self, kind: EntityKind, slug: str, lang: str) -> Optional[Dict[str, Any]]:
        return self.find_by_slug(kind, slug, lang)

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    # StoreApi surface

    def list_all(self, kind: EntityKind, lang: str = 'all') -> List[Dict[str, Any]]:
        if lang == 'all' and self.list_all_error is not None:
            raise self.list_all_error
        items = self.entities[kind]
        if lang != 'all':
            items = [item for item in items if item.get('lang') == lang]
        return [dict(item) for item in items]

    def find_by_slug(self, kind: EntityKind, slug: str, lang: str) -> Optional[Dict[str, Any]]:
        for item in self.entities[kind]:
            if item.get('slug') == slug and item.get('lang') == lang:
                return dict(item)
        return None

    def find_product_by_sku(self, sku: str, lang: str) -> Optional[Dict[str, Any]]:
        for item in self.entities[EntityKind.PRODUCTS]:
            if item.get('sku') == sku and item.get('lang') == lang:
                return dict(item)
        return None

    def create_entity(self, kind: EntityKind, payload: Dict[str, Any], lang: str) -> Dict[str, Any]:
        slug = payload.get('slug')
        if slug in self.create_errors:
            raise self.create_errors[slug]
        if slug in self.fail_create_slugs:
            raise HttpError(400, f"{self.base_url}{kind.rest_path}", {
                'code': 'rest_invalid_param', 'message': 'Invalid parameter(s)'
            })
        self.created.append((kind, dict(payload), lang))
        stored = dict(payload)
        stored['id'] = self._new_id()
        stored['lang'] = lang
        self.entities[kind].append(stored)
        return dict(stored)

    def delete_entity(self, kind: EntityKind, entity_id: int, lang: Optional[str] = None) -> Any:
        self.deleted.append((kind, entity_id, lang))
        if entity_id in self.delete_errors:
            raise self.delete_errors[entity_id]
        self.entities[kind] = [item for item in self.entities[kind] if item['id'] != entity_id]
        return {'id': entity_id, 'deleted': True}

    def connect_translations(self, lang_to_id: Dict[str, int]) -> Any:
        self.connected.append(dict(lang_to_id))
        return {'success': True}

    def active_languages(self) -> Optional[List[str]]:
        return self.languages

    def upload_media(self, file_path: str, filename: str) -> Dict[str, Any]:
        if self.unsupported_multipart:
            raise UnsupportedFileTypeError(filename, 'Sorry, this file type is not permitted', 500)
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append(filename)
        return dict(self.media[self.add_media(filename)])

    def upload_media_base64(self, file_path: str, filename: str) -> Dict[str, Any]:
        self.uploads.append(f"base64:{filename}")
        return dict(self.media[self.add_media(filename)])

    def search_media(self, term: str, per_page: int = 100, lang: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            dict(media) for media in self.media.values()
            if self._media_visible(media, lang)
            and term.lower() in posixpath.basename(urlparse(media['source_url']).path).lower()
        ][:per_page]

    def get_media(self, media_id: int, lang: Optional[str] = None) -> Dict[str, Any]:
        if media_id not in self.media or not self._media_visible(self.media[media_id], lang):
            raise HttpError(404, f"{self.base_url}/wp-json/wp/v2/media/{media_id}", {
                'code': 'rest_post_invalid_id', 'message': 'Invalid post ID.'
            })
        return dict(self.media[media_id])

    def delete_media(self, media_id: int, lang: Optional[str] = None) -> Any:
        errors = self.media_delete_errors.get(media_id)
        if errors:
            raise errors.pop(0)
        self.get_media(media_id, lang)
        self.deleted_media.append(media_id)
        del self.media[media_id]
        return {'deleted': True}

    def _media_visible(self, media: Dict[str, Any], lang: Optional[str]) -> bool:
        # Without a lang parameter WPML only shows the default language
        media_lang = media.get('lang')
        if media_lang is None or lang == 'all':
            return True
        return media_lang == (lang or self.site.main_language)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None, content: Optional[bytes] = None):
        self.status_code = status_code
        self.headers = headers or {}
        self._payload = payload
        if content is not None:
            self.content = content
        elif payload is not None:
            self.content = json.dumps(payload).encode('utf-8')
        else:
            self.content = (text or '').encode('utf-8')
        self.text = text if text is not None else self.content.decode('utf-8', errors='replace')

    def json(self) -> Any:
        if self._payload is not None:
            return self._payload
        return json.loads(self.text)


class FakeSession:
    """Replays scripted responses (or raises scripted exceptions) in order."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.headers: Dict[str, str] = {}

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append({'method': method, 'url': url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
