"""Exception hierarchy for the WooCommerce catalog migrator."""

from typing import Any, List, Optional


class MigrationError(Exception):
    """Base class for all migrator errors."""


class HttpError(MigrationError):
    """Non-2xx response from a remote endpoint."""

    def __init__(self, status_code: int, url: str, body: Any = None):
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(self._format_message())

    @property
    def error_code(self) -> Optional[str]:
        """WordPress error code (``code`` field) if the body carries one."""
        if isinstance(self.body, dict):
            return self.body.get('code')
        return None

    @property
    def error_message(self) -> str:
        """Human readable message from the body, falling back to the raw text."""
        if isinstance(self.body, dict):
            return str(self.body.get('message', ''))
        return str(self.body or '')

    def _format_message(self) -> str:
        message = f"HTTP {self.status_code} - {self.url}"
        detail = self.error_message
        if detail:
            message += f"\n{detail}"
        return message


class TransientConnectionError(MigrationError):
    """Network failure that persisted after every retry attempt."""

    def __init__(self, url: str, attempts: int, last_error: Exception):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Request to {url} failed after {attempts} attempts: {last_error}"
        )


class ImageDownloadError(MigrationError):
    """Every candidate URL for an image failed to download."""

    def __init__(self, url: str, tried: Optional[List[str]] = None):
        self.url = url
        self.tried = tried or [url]
        super().__init__(
            f"Failed to download image {url} (tried {len(self.tried)} variants)"
        )


class ImageUploadError(MigrationError):
    """Upload to the target media library failed."""

    def __init__(self, filename: str, reason: str = '', status_code: Optional[int] = None):
        self.filename = filename
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to upload {filename}: {reason}")


class UnsupportedFileTypeError(ImageUploadError):
    """Server refused the multipart upload because of the file type."""


class ValidationError(MigrationError):
    """Malformed snapshot, missing input file or unusable configuration."""


class DefaultEntityError(MigrationError):
    """Attempt to delete a built-in category that the store protects."""

    def __init__(self, slug: str, reason: str = 'default'):
        self.slug = slug
        self.reason = reason
        super().__init__(f"Cannot delete default entity '{slug}': {reason}")


__all__ = [
    'MigrationError',
    'HttpError',
    'TransientConnectionError',
    'ImageDownloadError',
    'ImageUploadError',
    'UnsupportedFileTypeError',
    'ValidationError',
    'DefaultEntityError',
]
