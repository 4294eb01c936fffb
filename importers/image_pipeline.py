"""
Image pipeline for catalog imports.

Mirrors an entity image from the source site to the target media library:
local files are reused when present, downloads fall back to WordPress
thumbnail variants, optional WebP conversion is done with Pillow, and
uploads fall back to a base64 JSON payload when the server refuses the
multipart file type.
"""

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse, urlunparse

import requests
from PIL import Image

from config_loader import get_nested
from errors import (
    HttpError,
    ImageDownloadError,
    MigrationError,
    TransientConnectionError,
    UnsupportedFileTypeError,
)
from models import ImageStats
from store_api import StoreApi
from .id_mapping_tracker import IdMappingTracker

logger = logging.getLogger(__name__)

THUMBNAIL_SUFFIXES = ('-1152x1536', '-768x1024', '-300x300')
KNOWN_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp')
DEFAULT_EXTENSION = '.jpg'


def sanitize_slug(slug: str) -> str:
    """Filesystem-safe stem derived from a (possibly URL-encoded) slug."""
    decoded = unquote(slug or '')
    cleaned = re.sub(r'[^\w.-]+', '-', decoded, flags=re.UNICODE).strip('-.')
    return cleaned or 'image'


def extension_for(src: str) -> str:
    ext = posixpath.splitext(urlparse(src).path)[1].lower()
    return ext if ext in KNOWN_EXTENSIONS else DEFAULT_EXTENSION


def image_filename(src: str, slug: str, index: int = 0) -> str:
    """
    Deterministic local/upload filename for an entity image.

    Args:
        src: Source image URL (only its extension is used)
        slug: Slug the file is named after
        index: Position in a product gallery; 0 for the first image

    Returns:
        ``<slug>[-<n>]<ext>``
    """
    stem = sanitize_slug(slug)
    if index > 0:
        stem = f"{stem}-{index + 1}"
    return f"{stem}{extension_for(src)}"


def download_candidates(url: str) -> List[str]:
    """Original URL followed by the thumbnail-suffix variants."""
    parsed = urlparse(url)
    root, ext = posixpath.splitext(parsed.path)
    if not ext:
        return [url]
    return [url] + [
        urlunparse(parsed._replace(path=f"{root}{suffix}{ext}")) for suffix in THUMBNAIL_SUFFIXES
    ]


def media_filename(media: Dict[str, Any]) -> str:
    details = media.get('media_details') or {}
    source = details.get('file') or media.get('source_url') or ''
    return posixpath.basename(urlparse(source).path)


class ImagePipeline:
    """Resolves source image references to target media IDs."""

    def __init__(
        self,
        config: Dict[str, Any],
        store: StoreApi,
        id_mapper: IdMappingTracker,
        stats: ImageStats,
        skip_download: bool = False,
        force_download: bool = False,
        force_upload: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the pipeline.

        Args:
            config: Configuration dictionary (``images`` section)
            store: StoreApi bound to the import site
            id_mapper: Run-scoped tracker holding the image mapping
            stats: Image counters to update
            skip_download: Never download; only use local files
            force_download: Download even when a local file exists
            force_upload: Upload even when matching media already exists
            logger: Optional logger instance
        """
        self.store = store
        self.id_mapper = id_mapper
        self.stats = stats
        self.skip_download = skip_download
        self.force_download = force_download
        self.force_upload = force_upload
        self.logger = logger or logging.getLogger(__name__)

        self.temp_dir = Path(get_nested(config, 'images.temp_directory', './temp_images'))
        self.webp_dir = Path(get_nested(config, 'images.webp_directory', './webp_images'))
        self.convert_to_webp = get_nested(config, 'images.convert_to_webp', False)
        self.webp_quality = get_nested(config, 'images.webp_quality', 80)
        self.reuse_existing = get_nested(config, 'images.reuse_existing_media', True)
        self.min_bytes = get_nested(config, 'images.min_bytes', 100)
        self.download_timeout = get_nested(config, 'images.download_timeout', 30)

    def process_image(self, image_ref: Optional[Dict[str, Any]], slug: str, index: int = 0) -> Optional[int]:
        """
        Resolve one image reference to a target media ID.

        Failures are counted and logged, never raised.

        Args:
            image_ref: ``{id, src}`` from the exported entity
            slug: Slug used to name the file
            index: Gallery position (products)

        Returns:
            Target media ID, or None if the image could not be mirrored
        """
        if not image_ref or not image_ref.get('src'):
            return None

        original_id = image_ref.get('id')
        mapped = self.id_mapper.get_image_id(original_id)
        if mapped is not None:
            self.logger.debug(f"Image already processed (ID: {original_id} -> {mapped})")
            self.stats.skipped += 1
            return mapped

        src = str(image_ref['src'])
        if not src.startswith(('http://', 'https://')):
            self.logger.warning(f"Unsupported image source: {src}")
            self.stats.failed += 1
            return None

        filename = image_filename(src, slug, index)
        try:
            local_path = self.resolve_local_file(src, filename)
            if local_path is None:
                self.logger.info(f"Skipping image (downloads disabled, no local copy): {filename}")
                self.stats.skipped += 1
                return None

            upload_name = local_path.name
            new_id = None
            if self.reuse_existing and not self.force_upload:
                new_id = self.find_existing_media(upload_name)
                if new_id is not None:
                    self.stats.reused += 1
                    self.logger.info(f"Reusing existing media {new_id} for {upload_name}")

            if new_id is None:
                new_id = self.upload(local_path, upload_name)
                self.stats.uploaded += 1
                self.logger.info(f"Uploaded {upload_name} as media {new_id}")
        except (MigrationError, OSError, ValueError, requests.RequestException) as e:
            self.logger.error(f"Error processing image {filename}: {e}")
            self.stats.failed += 1
            return None

        if original_id:
            self.id_mapper.add_image_mapping(original_id, new_id)
        return new_id

    def resolve_local_file(self, src: str, filename: str) -> Optional[Path]:
        """
        Find or fetch the file to upload.

        Lookup order: converted WebP copy, previously downloaded file, fresh
        download. Returns None when nothing is local and downloads are off.
        """
        stem = os.path.splitext(filename)[0]
        webp_path = self.webp_dir / f"{stem}.webp"
        raw_path = self.temp_dir / filename

        if not self.force_download:
            if webp_path.is_file():
                self.logger.debug(f"Using converted image {webp_path}")
                return webp_path
            if raw_path.is_file():
                self.logger.debug(f"Using downloaded image {raw_path}")
                return self._maybe_convert(raw_path, webp_path)

        if self.skip_download:
            return None

        self.download(src, raw_path)
        self.stats.downloaded += 1
        return self._maybe_convert(raw_path, webp_path)

    def download(self, src: str, dest: Path) -> Path:
        """
        Download ``src`` (or a thumbnail variant) to ``dest``.

        Raises:
            ImageDownloadError: If every candidate failed or was too small
        """
        tried = []
        for candidate in download_candidates(src):
            tried.append(candidate)
            try:
                content = self.store.client.download(candidate, timeout=self.download_timeout)
            except (HttpError, TransientConnectionError) as e:
                self.logger.debug(f"Download candidate failed {candidate}: {e}")
                continue

            if len(content) < self.min_bytes:
                self.logger.debug(f"Download candidate too small ({len(content)} bytes): {candidate}")
                continue

            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(content)
            if candidate != src:
                self.logger.info(f"Downloaded thumbnail variant {candidate}")
            return dest

        raise ImageDownloadError(src, tried)

    def find_existing_media(self, filename: str) -> Optional[int]:
        """
        Look for media on the target already carrying ``filename``.

        Exact filename matches are preferred over matches that ignore the
        extension. Each candidate is re-fetched to confirm it is accessible.
        """
        stem = os.path.splitext(filename)[0]
        results = self.store.search_media(stem)

        exact = [m for m in results if media_filename(m) == filename]
        loose = [
            m for m in results
            if m not in exact and os.path.splitext(media_filename(m))[0] == stem
        ]

        for media in exact + loose:
            media_id = media.get('id')
            if not media_id:
                continue
            try:
                self.store.get_media(media_id)
            except MigrationError as e:
                self.logger.debug(f"Media {media_id} matched {filename} but is not accessible: {e}")
                continue
            return int(media_id)
        return None

    def upload(self, path: Path, filename: str) -> int:
        try:
            response = self.store.upload_media(str(path), filename)
        except UnsupportedFileTypeError:
            self.logger.warning(f"File type refused for {filename}; retrying with base64 upload")
            response = self.store.upload_media_base64(str(path), filename)
        return int(response['id'])

    def _maybe_convert(self, raw_path: Path, webp_path: Path) -> Path:
        if not self.convert_to_webp or raw_path.suffix.lower() == '.webp':
            return raw_path

        try:
            webp_path.parent.mkdir(parents=True, exist_ok=True)
            with Image.open(raw_path) as img:
                if img.mode not in ('RGB', 'RGBA'):
                    img = img.convert('RGBA' if 'A' in img.getbands() else 'RGB')
                img.save(webp_path, 'WEBP', quality=self.webp_quality)
        except OSError as e:
            self.logger.warning(f"WebP conversion failed for {raw_path}: {e}; using original")
            return raw_path

        self.logger.debug(f"Converted {raw_path} to {webp_path}")
        return webp_path


__all__ = [
    'ImagePipeline',
    'image_filename',
    'sanitize_slug',
    'download_candidates',
    'THUMBNAIL_SUFFIXES',
]
