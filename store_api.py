"""
WooCommerce/WPML REST surface for one site.

``StoreApi`` turns catalog operations (list, lookup, create, delete,
translation linking and media management) into calls on a shared
``WooClient``.
"""

import base64
import logging
import os
import unicodedata
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from errors import HttpError, ImageUploadError, MigrationError, UnsupportedFileTypeError
from models import EntityKind, SiteProfile
from wp_client import WooClient

logger = logging.getLogger(__name__)

MEDIA_PATH = '/wp-json/wp/v2/media'
TRANSLATION_CONNECT_PATH = '/wp-json/wpml/v1/products/connect'
WPML_LANGUAGES_PATH = '/wp-json/wpml/v1/active_languages'
POLYLANG_LANGUAGES_PATH = '/wp-json/pll/v1/languages'

# Server messages (English and Lithuanian WordPress locales) that mean the
# multipart upload was refused for its file type.
UNSUPPORTED_FILE_TYPE_MARKERS = (
    'cannot upload this file type',
    'negalite įkelti tokio tipo failų',
)

MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}


def mime_type_for(filename: str) -> str:
    return MIME_TYPES.get(os.path.splitext(filename)[1].lower(), 'image/jpeg')


def content_disposition(filename: str) -> str:
    """
    Build an attachment header that survives non-ASCII file names.

    Header values go out as Latin-1, so the plain ``filename`` parameter
    carries an ASCII fold and ``filename*`` carries the UTF-8 name.
    """
    folded = unicodedata.normalize('NFKD', filename).encode('ascii', 'ignore').decode('ascii')
    folded = folded.replace('"', '').replace('\\', '') or 'upload'
    if folded == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{folded}\"; filename*=UTF-8''{quote(filename, safe='')}"


def is_unsupported_file_type(error: HttpError) -> bool:
    """Check whether an upload error is the server's file-type refusal."""
    if error.status_code != 500:
        return False
    message = error.error_message.lower()
    return any(marker in message for marker in UNSUPPORTED_FILE_TYPE_MARKERS)


class StoreApi:
    """Catalog and media endpoints of a single WordPress site."""

    def __init__(self, client: WooClient, site: SiteProfile):
        self.client = client
        self.site = site
        self.base_url = site.base_url

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def entity_url(self, kind: EntityKind, entity_id: Optional[int] = None) -> str:
        url = self._url(kind.rest_path)
        if entity_id is not None:
            url += f"/{entity_id}"
        return url

    # Catalog entities

    def list_all(self, kind: EntityKind, lang: str = 'all') -> List[Dict[str, Any]]:
        """Fetch every entity of ``kind`` for ``lang`` (``all`` for every language)."""
        return self.client.fetch_all_pages(self.entity_url(kind), params={'lang': lang})

    def find_by_slug(self, kind: EntityKind, slug: str, lang: str) -> Optional[Dict[str, Any]]:
        """
        Look up an entity by slug in one language.

        Returns None when nothing matches or the lookup itself fails.
        """
        if not slug:
            return None
        try:
            results = self.client.fetch_json(
                self.entity_url(kind), params={'slug': slug, 'lang': lang}
            )
        except (MigrationError, requests.RequestException) as e:
            logger.warning(f"Error checking if {kind.label} '{slug}' exists in {lang}: {e}")
            return None

        if isinstance(results, list):
            for item in results:
                if item.get('lang', lang) == lang:
                    return item
        return None

    def find_product_by_sku(self, sku: str, lang: str) -> Optional[Dict[str, Any]]:
        """Look up a product by SKU in one language; None when absent or on error."""
        if not sku:
            return None
        try:
            results = self.client.fetch_json(
                self.entity_url(EntityKind.PRODUCTS), params={'sku': sku, 'lang': lang}
            )
        except (MigrationError, requests.RequestException) as e:
            logger.warning(f"Error checking product SKU '{sku}' in {lang}: {e}")
            return None

        if isinstance(results, list):
            for item in results:
                if item.get('lang', lang) == lang:
                    return item
        return None

    def create_entity(self, kind: EntityKind, payload: Dict[str, Any], lang: str) -> Dict[str, Any]:
        return self.client.fetch_json(
            self.entity_url(kind), method='POST', json=payload, params={'lang': lang}
        )

    def delete_entity(self, kind: EntityKind, entity_id: int, lang: Optional[str] = None) -> Any:
        params: Dict[str, Any] = {'force': 'true'}
        if lang:
            params['lang'] = lang
        return self.client.fetch_json(
            self.entity_url(kind, entity_id), method='DELETE', params=params
        )

    def connect_translations(self, lang_to_id: Dict[str, int]) -> Any:
        """Link target-side product IDs as translations of each other."""
        return self.client.fetch_json(
            self._url(TRANSLATION_CONNECT_PATH), method='POST', json=dict(lang_to_id)
        )

    def active_languages(self) -> Optional[List[str]]:
        """
        Discover active language codes from WPML, then Polylang.

        Returns None when neither endpoint answers with something usable.
        """
        for path in (WPML_LANGUAGES_PATH, POLYLANG_LANGUAGES_PATH):
            try:
                response = self.client.fetch_json(self._url(path))
            except (MigrationError, requests.RequestException) as e:
                logger.debug(f"Language discovery via {path} failed: {e}")
                continue

            codes = _language_codes(response)
            if codes:
                logger.debug(f"Active languages via {path}: {codes}")
                return codes
        return None

    # Media library

    def upload_media(self, file_path: str, filename: str) -> Dict[str, Any]:
        """
        Upload a file as multipart form data.

        Raises:
            UnsupportedFileTypeError: If the server refuses the file type
            ImageUploadError: For any other upload failure
        """
        mime_type = mime_type_for(filename)
        with open(file_path, 'rb') as f:
            content = f.read()

        files = {'file': (filename, content, mime_type)}
        try:
            response = self.client.fetch_json(
                self._url(MEDIA_PATH),
                method='POST',
                files=files,
                headers={'Content-Disposition': content_disposition(filename)},
                timeout=self.client.upload_timeout,
            )
        except HttpError as e:
            if is_unsupported_file_type(e):
                raise UnsupportedFileTypeError(filename, e.error_message, e.status_code)
            raise ImageUploadError(filename, e.error_message or str(e), e.status_code)
        except MigrationError as e:
            raise ImageUploadError(filename, str(e))

        return self._require_media_id(response, filename)

    def upload_media_base64(self, file_path: str, filename: str) -> Dict[str, Any]:
        """Upload a file as a base64 JSON document (fallback path)."""
        with open(file_path, 'rb') as f:
            encoded = base64.b64encode(f.read()).decode('ascii')

        payload = {
            'file': {
                'filename': filename,
                'data': encoded,
                'mime_type': mime_type_for(filename),
            },
            'title': filename,
            'alt_text': filename,
        }
        try:
            response = self.client.fetch_json(
                self._url(MEDIA_PATH),
                method='POST',
                json=payload,
                timeout=self.client.upload_timeout,
            )
        except HttpError as e:
            raise ImageUploadError(filename, e.error_message or str(e), e.status_code)
        except MigrationError as e:
            raise ImageUploadError(filename, str(e))

        return self._require_media_id(response, filename)

    def search_media(self, term: str, per_page: int = 100, lang: Optional[str] = None) -> List[Dict[str, Any]]:
        """Search the media library; returns an empty list on error."""
        params: Dict[str, Any] = {'search': term, 'per_page': per_page}
        if lang:
            params['lang'] = lang
        try:
            results = self.client.fetch_json(self._url(MEDIA_PATH), params=params)
        except (MigrationError, requests.RequestException) as e:
            logger.warning(f"Media search for '{term}' failed: {e}")
            return []
        return results if isinstance(results, list) else []

    def get_media(self, media_id: int) -> Dict[str, Any]:
        return self.client.fetch_json(self._url(f"{MEDIA_PATH}/{media_id}"))

    def delete_media(self, media_id: int, lang: Optional[str] = None) -> Any:
        params: Dict[str, Any] = {'force': 'true'}
        if lang:
            params['lang'] = lang
        return self.client.fetch_json(
            self._url(f"{MEDIA_PATH}/{media_id}"), method='DELETE', params=params
        )

    @staticmethod
    def _require_media_id(response: Any, filename: str) -> Dict[str, Any]:
        if not isinstance(response, dict) or not response.get('id'):
            raise ImageUploadError(filename, 'response did not include a media id')
        return response


def _language_codes(response: Any) -> List[str]:
    """Extract language codes from WPML or Polylang language listings."""
    # WPML keys the listing by language code
    if isinstance(response, dict):
        return [str(key) for key in response]
    if not isinstance(response, list):
        return []

    codes: List[str] = []
    for entry in response:
        if isinstance(entry, dict):
            code = entry.get('code') or entry.get('slug') or entry.get('language_code')
            if code:
                codes.append(code)
        elif isinstance(entry, str):
            codes.append(entry)
    return codes


__all__ = [
    'StoreApi',
    'mime_type_for',
    'content_disposition',
    'is_unsupported_file_type',
    'UNSUPPORTED_FILE_TYPE_MARKERS',
]
