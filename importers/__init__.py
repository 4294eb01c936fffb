"""Import package for replaying catalog snapshots against a target site.

Package Structure:
- catalog_importer: Two-pass import of categories or products
- catalog_deleter: Bulk deletion with typed per-entity outcomes
- image_pipeline: Download, optional WebP conversion, reuse and upload of images
- id_mapping_tracker: Source ID to target ID mappings for one run
- hierarchy_mapper: Parent-first and children-first category ordering
- import_limiter: ``--limit`` and ``--lang`` filtering of snapshot data

Configuration Referenced:
- migration.*: skip_existing, throttle_delay
- images.*: Local directories, WebP conversion, media reuse
"""

from .catalog_deleter import CatalogDeleter, check_deletable, classify_delete_error
from .catalog_importer import CatalogImporter
from .hierarchy_mapper import order_children_first, order_parents_first
from .id_mapping_tracker import IdMappingTracker
from .image_pipeline import ImagePipeline
from .import_limiter import limit_import_data, restrict_languages

__all__ = [
    'CatalogImporter',
    'CatalogDeleter',
    'check_deletable',
    'classify_delete_error',
    'ImagePipeline',
    'IdMappingTracker',
    'order_parents_first',
    'order_children_first',
    'limit_import_data',
    'restrict_languages',
]
