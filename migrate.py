#!/usr/bin/env python3
"""
WooCommerce Catalog Migration Tool - Main CLI Entry Point

Exports product categories or products (with WPML translations and images)
from one WordPress site and replays them on another.
"""

import argparse
import logging
import sys
import time
from typing import Callable, List, Optional

import yaml

from config_loader import ConfigLoader, get_nested
from errors import MigrationError, ValidationError
from logger import log_config, log_section, setup_logging
from models import EntityKind
from orchestrator import MigrationReport, MigrationSession
from site_registry import SiteRegistry

# Version
__version__ = "1.0.0"

KIND_CHOICES = [kind.value for kind in EntityKind]


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Migrate WooCommerce categories and products between WordPress sites",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export categories from the selected export site
  python migrate.py export categories

  # Import the first 5 products (and their translations) without prompting
  python migrate.py import products --limit 5 --yes

  # Import only English categories using local images only
  python migrate.py import categories --lang en --skip-image-download

  # Remove all products and their images from the import site
  python migrate.py delete products --delete-images --confirm

  # Remove every media item named after one product, in all languages
  python migrate.py cleanup-media liepu-medus-1kg --thorough --confirm

  # Inspect an export snapshot
  python migrate.py test categories --search medus

  # Select sites
  python migrate.py sites --set-export shop-lt --set-import staging
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help='Directory for export snapshots (overrides migration.output_directory)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Write logs to this file as well'
    )

    parser.add_argument(
        '--report',
        type=str,
        help='Write a JSON report to this path (overrides migration.report_path)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    export_parser = subparsers.add_parser('export', help='Export entities from the export site')
    export_parser.add_argument('kind', choices=KIND_CHOICES)

    import_parser = subparsers.add_parser('import', help='Import a snapshot into the import site')
    import_parser.add_argument('kind', choices=KIND_CHOICES)
    import_parser.add_argument('--input', type=str, help='Snapshot file (default: export site snapshot)')
    import_parser.add_argument(
        '--force-import', '--yes', '--confirm',
        dest='confirmed',
        action='store_true',
        help='Do not ask for confirmation'
    )
    import_parser.add_argument(
        '--skip-image-download',
        action='store_true',
        help='Only use images already present in the local image directories'
    )
    import_parser.add_argument(
        '--download-images',
        action='store_true',
        help='Download images again even when a local copy exists'
    )
    import_parser.add_argument(
        '--force-upload',
        action='store_true',
        help='Upload images even when matching media already exists'
    )
    import_parser.add_argument(
        '--limit',
        type=int,
        help='Only import the first N main-language entities and their translations'
    )
    import_parser.add_argument('--lang', type=str, help='Comma-separated language codes to import')
    import_parser.add_argument(
        '--no-skip-existing',
        action='store_true',
        help='Create entities even when a matching slug exists'
    )
    import_parser.add_argument(
        '--webp',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Convert images to WebP before upload'
    )

    delete_parser = subparsers.add_parser('delete', help='Delete entities from the import site')
    delete_parser.add_argument('kind', choices=KIND_CHOICES)
    delete_parser.add_argument(
        '--confirm', '--yes',
        dest='confirmed',
        action='store_true',
        help='Do not ask for confirmation'
    )
    delete_parser.add_argument(
        '--delete-images',
        action='store_true',
        help='Also delete media named after the main-language slug'
    )
    delete_parser.add_argument('--lang', type=str, help='Comma-separated language codes to delete')

    cleanup_parser = subparsers.add_parser(
        'cleanup-media', help='Delete every media item named after a product slug'
    )
    cleanup_parser.add_argument('slug', help='Product slug the media files are named after')
    cleanup_parser.add_argument(
        '--confirm', '--yes',
        dest='confirmed',
        action='store_true',
        help='Do not ask for confirmation'
    )
    cleanup_parser.add_argument(
        '--thorough',
        action='store_true',
        help='Also search every language for leftover media'
    )
    cleanup_parser.add_argument(
        '--max-retries',
        type=positive_int,
        default=None,
        help='Extra attempts for a failing delete (default: advanced.max_retries)'
    )

    test_parser = subparsers.add_parser('test', help='Inspect an export snapshot')
    test_parser.add_argument('kind', choices=KIND_CHOICES)
    test_parser.add_argument('--input', type=str, help='Snapshot file (default: export site snapshot)')
    test_parser.add_argument('--search', type=str, help='Show entities whose slug or name contains TERM')

    sites_parser = subparsers.add_parser('sites', help='List sites or select the export/import site')
    sites_parser.add_argument('--set-export', type=str, help='Site name or index to export from')
    sites_parser.add_argument('--set-import', type=str, help='Site name or index to import into')

    return parser


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got '{value}'")
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got '{value}'")
    return number


def parse_languages(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    languages = [code.strip() for code in value.split(',') if code.strip()]
    return languages or None


def confirm(prompt: str, input_func: Callable[[str], str] = input) -> bool:
    """Ask a y/n question on stdin; anything but yes declines."""
    try:
        answer = input_func(f"{prompt} (y/n): ")
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def run_sites(registry: SiteRegistry, args: argparse.Namespace) -> int:
    """List configured sites and update the persisted selection."""
    if args.set_export and registry.set_export_site(args.set_export) is None:
        print(f"ERROR: No site matches '{args.set_export}'", file=sys.stderr)
        return 2
    if args.set_import and registry.set_import_site(args.set_import) is None:
        print(f"ERROR: No site matches '{args.set_import}'", file=sys.stderr)
        return 2

    export_site = registry.get_export_site()
    import_site = registry.get_import_site()
    print("Configured sites:")
    for site in registry.list_sites():
        markers = []
        if site['name'] == export_site.name:
            markers.append('export')
        if site['name'] == import_site.name:
            markers.append('import')
        suffix = f"  [{', '.join(markers)}]" if markers else ""
        description = f" - {site['description']}" if site['description'] else ""
        print(f"  {site['index']}: {site['name']} ({site['base_url']}){description}{suffix}")
    return 0


def run_command(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the selected subcommand."""
    registry = SiteRegistry.from_config(config)
    if args.command == 'sites':
        return run_sites(registry, args)

    session = MigrationSession(config, registry, logger=logger)
    report_generator = MigrationReport(logger)
    report_path = get_nested(config, 'migration.report_path')
    start_time = time.time()

    if args.command == 'cleanup-media':
        if not args.confirmed and not confirm(
            f"Delete ALL media named after '{args.slug}' from {session.import_site.name} "
            f"({session.import_site.base_url}). Proceed?"
        ):
            logger.warning("Media cleanup cancelled")
            return 0

        stats = session.run_cleanup_media(args.slug, thorough=args.thorough, max_retries=args.max_retries)
        report = report_generator.build_media_cleanup_report(
            stats, session.import_site.base_url, time.time() - start_time
        )
        print("\n" + report_generator.format_media_cleanup_report(report))
        if report_path:
            report_generator.export_json_report(report, report_path)

        if stats.failed > 0:
            logger.warning("Media cleanup completed with failures")
            return 1
        return 0

    kind = EntityKind(args.kind)

    if args.command == 'export':
        snapshot, path = session.run_export(kind)
        report = report_generator.build_export_report(snapshot, str(path), time.time() - start_time)
        print("\n" + report_generator.format_export_report(report))
        if report_path:
            report_generator.export_json_report(report, report_path)
        return 0

    if args.command == 'test':
        inspector = session.inspect(kind, args.input)
        print(report_generator.format_snapshot_summary(inspector, args.search))
        return 0

    languages = parse_languages(args.lang)

    if args.command == 'import':
        source = session.snapshot_file(kind, args.input)
        if not args.confirmed and not confirm(
            f"Import {kind.value} from {source} into {session.import_site.name} "
            f"({session.import_site.base_url}). Proceed?"
        ):
            logger.warning("Import cancelled")
            return 0

        stats = session.run_import(
            kind,
            input_file=args.input,
            limit=args.limit,
            languages=languages,
            skip_image_download=args.skip_image_download,
            download_images=args.download_images,
            force_upload=args.force_upload,
        )
        report = report_generator.build_import_report(
            stats, str(source), session.import_site.base_url, time.time() - start_time
        )
        print("\n" + report_generator.format_import_report(report))
        if report_path:
            report_generator.export_json_report(report, report_path)

        if stats.has_failures:
            logger.warning("Import completed with failures")
            return 1
        logger.info("Import completed successfully")
        return 0

    if args.command == 'delete':
        scope = f" ({', '.join(languages)})" if languages else ""
        if not args.confirmed and not confirm(
            f"Delete ALL {kind.value}{scope} from {session.import_site.name} "
            f"({session.import_site.base_url}). Proceed?"
        ):
            logger.warning("Delete cancelled")
            return 0

        stats = session.run_delete(kind, languages=languages, delete_images=args.delete_images)
        report = report_generator.build_delete_report(
            stats, session.import_site.base_url, time.time() - start_time
        )
        print("\n" + report_generator.format_delete_report(report))
        if report_path:
            report_generator.export_json_report(report, report_path)

        if report['totals']['failed'] > 0:
            logger.warning("Delete completed with failures")
            return 1
        return 0

    logger.error(f"Unknown command: {args.command}")
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        # Minimal logging until the config file has been read
        logger = setup_logging(verbosity=args.verbose)

        log_section("WooCommerce Catalog Migration Tool")
        logger.info(f"Version: {__version__}")

        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)
        config = ConfigLoader.merge_with_args(config, args)
        if args.report:
            config['migration']['report_path'] = args.report
        ConfigLoader.validate(config)

        # Reconfigure logging with config file settings
        logger = setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level'),
        )
        log_config(config)

        return run_command(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except (ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nMigration interrupted by user", file=sys.stderr)
        return 130
    except MigrationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logging.getLogger(__name__).error(f"Unexpected error: {e}", exc_info=True)
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
