"""Reading and writing export snapshot files."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from errors import ValidationError
from models import EntityKind, ExportSnapshot, SiteProfile

logger = logging.getLogger(__name__)


def snapshot_path(output_dir: Union[str, Path], site: SiteProfile, kind: EntityKind) -> Path:
    """Location of a site's snapshot: ``<output_dir>/<domain>/exported-<kind>.json``."""
    return Path(output_dir) / site.domain / kind.snapshot_filename


def write_snapshot(snapshot: ExportSnapshot, path: Union[str, Path]) -> Path:
    """
    Write a snapshot atomically.

    The document is written to a temporary file in the target directory and
    moved into place, so a failed write never leaves a truncated snapshot.

    Args:
        snapshot: Snapshot to serialize
        path: Destination file

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.debug(f"Snapshot written to {path}")
    return path


def load_snapshot(path: Union[str, Path]) -> ExportSnapshot:
    """
    Load and validate a snapshot file.

    Raises:
        ValidationError: If the file is missing, not JSON, or structurally invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Snapshot file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
    except ValueError as e:
        raise ValidationError(f"Snapshot file {path} is not valid JSON: {e}")

    snapshot = ExportSnapshot.from_dict(payload)
    logger.info(
        f"Loaded snapshot {path}: {snapshot.total_entities} entities, "
        f"{len(snapshot.translations)} translation groups"
    )
    return snapshot


__all__ = ['snapshot_path', 'write_snapshot', 'load_snapshot']
