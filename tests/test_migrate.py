"""End-to-end tests for the command line interface."""

import json

import pytest
import yaml

import migrate
from errors import HttpError
from exporters import write_snapshot
from models import EntityKind, ExportMeta, ExportSnapshot
from orchestrator import MigrationSession
from tests.fakes import FakeStore


@pytest.fixture
def config_file(tmp_path):
    config = {
        'sites': [
            {
                'name': 'shop-lt',
                'base_url': 'https://shop.example',
                'username': 'admin',
                'password': 'secret',
                'main_language': 'lt',
                'other_languages': ['en'],
                'description': 'Production shop',
            },
            {
                'name': 'staging',
                'base_url': 'https://staging.example',
                'username': 'admin',
                'password': 'secret',
                'main_language': 'lt',
                'other_languages': ['en'],
            },
        ],
        'migration': {
            'throttle_delay': 0,
            'output_directory': str(tmp_path / 'export'),
            'settings_file': str(tmp_path / 'settings.json'),
        },
        'images': {
            'temp_directory': str(tmp_path / 'temp_images'),
            'webp_directory': str(tmp_path / 'webp_images'),
        },
        'export': {'progress_bars': False},
    }
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump(config), encoding='utf-8')
    return str(path)


@pytest.fixture
def snapshot_file(tmp_path):
    snapshot = ExportSnapshot(
        meta=ExportMeta(
            exported_at='2024-01-01T00:00:00+00:00',
            main_language='lt',
            other_languages=['en'],
            source_site='Medaus Namai',
            source_url='https://shop.example',
            kind='categories',
        ),
        translations={'medus': {'lt': 10, 'en': 20}},
        data={
            'lt': [{'id': 10, 'slug': 'medus', 'name': 'Medus', 'parent': 0}],
            'en': [{'id': 20, 'slug': 'medus', 'name': 'Honey', 'parent': 0}],
        },
    )
    return str(write_snapshot(snapshot, tmp_path / 'export' / 'shop.example' / 'exported-categories.json'))


@pytest.fixture
def target(monkeypatch):
    """Replace the session's remote stores with an in-memory import site."""
    store = FakeStore()

    def build_session(config, registry, logger=None):
        session = MigrationSession(config, registry, logger=logger)
        session.export_store = FakeStore(session.export_site)
        session.import_store = store
        return session

    monkeypatch.setattr(migrate, 'MigrationSession', build_session)
    return store


class TestHelpers:
    def test_parse_languages(self):
        assert migrate.parse_languages('lt, en,,') == ['lt', 'en']
        assert migrate.parse_languages('') is None
        assert migrate.parse_languages(None) is None

    def test_confirm(self):
        assert migrate.confirm('Proceed?', input_func=lambda prompt: 'Y')
        assert migrate.confirm('Proceed?', input_func=lambda prompt: 'yes ')
        assert not migrate.confirm('Proceed?', input_func=lambda prompt: '')

        def closed_stdin(prompt):
            raise EOFError

        assert not migrate.confirm('Proceed?', input_func=closed_stdin)


class TestConfigurationErrors:
    def test_missing_config_file(self, tmp_path, capsys):
        assert migrate.main(['--config', str(tmp_path / 'missing.yaml'), 'sites']) == 2
        assert 'Configuration file not found' in capsys.readouterr().err

    def test_invalid_config(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('sites: []\n', encoding='utf-8')
        assert migrate.main(['--config', str(path), 'sites']) == 2

    def test_unknown_kind_is_rejected_by_parser(self, config_file):
        with pytest.raises(SystemExit):
            migrate.main(['--config', config_file, 'export', 'orders'])


class TestSitesCommand:
    def test_lists_sites(self, config_file, capsys):
        assert migrate.main(['--config', config_file, 'sites']) == 0
        out = capsys.readouterr().out
        assert '0: shop-lt (https://shop.example) - Production shop  [export, import]' in out
        assert '1: staging (https://staging.example)' in out

    def test_selection_is_persisted(self, config_file, tmp_path, capsys):
        assert migrate.main(['--config', config_file, 'sites', '--set-import', '1']) == 0
        settings = json.loads((tmp_path / 'settings.json').read_text(encoding='utf-8'))
        assert settings['lastImportSite'] == 'staging'
        assert '1: staging (https://staging.example)  [import]' in capsys.readouterr().out

    def test_unknown_site(self, config_file):
        assert migrate.main(['--config', config_file, 'sites', '--set-export', 'nope']) == 2


class TestTestCommand:
    def test_prints_summary(self, config_file, snapshot_file, capsys):
        assert migrate.main(['--config', config_file, 'test', 'categories', '--search', 'honey']) == 0
        out = capsys.readouterr().out
        assert 'SNAPSHOT SUMMARY' in out
        assert 'Source site: Medaus Namai' in out
        assert "Matches for 'honey': 1" in out

    def test_missing_snapshot(self, config_file, tmp_path, capsys):
        code = migrate.main([
            '--config', config_file, 'test', 'categories', '--input', str(tmp_path / 'none.json')
        ])
        assert code == 2
        assert 'Snapshot file not found' in capsys.readouterr().err

    def test_kind_mismatch(self, config_file, snapshot_file):
        assert migrate.main(['--config', config_file, 'test', 'products', '--input', snapshot_file]) == 2


class TestImportCommand:
    def test_declined_confirmation(self, config_file, snapshot_file, target, monkeypatch):
        monkeypatch.setattr(migrate, 'confirm', lambda prompt: False)
        assert migrate.main(['--config', config_file, 'import', 'categories']) == 0
        assert target.created == []

    def test_import_with_report(self, config_file, snapshot_file, target, tmp_path, capsys):
        report_path = tmp_path / 'reports' / 'import.json'
        code = migrate.main([
            '--config', config_file, '--report', str(report_path),
            'import', 'categories', '--input', snapshot_file, '--yes',
        ])

        assert code == 0
        store = target
        assert [(kind, payload['slug'], lang) for kind, payload, lang in store.created] == [
            (EntityKind.CATEGORIES, 'medus', 'lt'),
            (EntityKind.CATEGORIES, 'medus', 'en'),
        ]
        assert 'lt: Total: 1, Created: 1, Skipped: 0, Failed: 0' in capsys.readouterr().out
        report = json.loads(report_path.read_text(encoding='utf-8'))
        assert report['operation'] == 'import'
        assert report['totals']['created'] == 2

    def test_failures_exit_with_one(self, config_file, snapshot_file, target):
        target.fail_create_slugs.add('medus')
        assert migrate.main(['--config', config_file, 'import', 'categories', '--yes']) == 1

    def test_language_filter(self, config_file, snapshot_file, target):
        code = migrate.main(['--config', config_file, 'import', 'categories', '--yes', '--lang', 'lt'])
        assert code == 0
        assert [lang for _, _, lang in target.created] == ['lt']


class TestDeleteCommand:
    def test_deletes_after_confirmation(self, config_file, target, capsys):
        store = target
        store.add(EntityKind.CATEGORIES, {'id': 1, 'slug': 'uncategorized', 'parent': 0, 'lang': 'lt'})
        store.add(EntityKind.CATEGORIES, {'id': 10, 'slug': 'medus', 'parent': 0, 'lang': 'lt'})

        assert migrate.main(['--config', config_file, 'delete', 'categories', '--confirm']) == 0

        assert [entity_id for _, entity_id, _ in store.deleted] == [10]
        assert 'DELETE SUMMARY (categories)' in capsys.readouterr().out

    def test_failed_delete_exits_with_one(self, config_file, target):
        store = target
        store.add(EntityKind.PRODUCTS, {'id': 5, 'slug': 'medus', 'lang': 'lt'})
        store.delete_errors[5] = HttpError(500, 'https://shop.example', {'code': 'db_error', 'message': 'Boom'})

        assert migrate.main(['--config', config_file, 'delete', 'products', '--yes']) == 1


class TestCleanupMediaCommand:
    def test_cleans_up_after_confirmation(self, config_file, target, capsys):
        store = target
        wanted = [store.add_media('medus.jpg'), store.add_media('medus-300x300.jpg')]
        kept = store.add_media('liepu-medus.jpg')

        assert migrate.main(['--config', config_file, 'cleanup-media', 'medus', '--confirm']) == 0

        assert store.deleted_media == wanted
        assert kept in store.media
        output = capsys.readouterr().out
        assert 'MEDIA CLEANUP SUMMARY (medus)' in output
        assert 'Matched: 2, Deleted: 2, Already gone: 0, Failed: 0' in output

    def test_declined_confirmation(self, config_file, target, monkeypatch):
        target.add_media('medus.jpg')
        monkeypatch.setattr(migrate, 'confirm', lambda prompt: False)

        assert migrate.main(['--config', config_file, 'cleanup-media', 'medus']) == 0
        assert target.deleted_media == []

    def test_failed_delete_exits_with_one(self, config_file, target, tmp_path):
        media_id = target.add_media('medus.jpg')
        forbidden = HttpError(403, 'https://shop.example', {'code': 'rest_cannot_delete', 'message': 'No'})
        target.media_delete_errors[media_id] = [forbidden] * 3
        report_path = tmp_path / 'cleanup.json'

        code = migrate.main([
            '--config', config_file, '--report', str(report_path),
            'cleanup-media', 'medus', '--yes', '--max-retries', '1',
        ])

        assert code == 1
        report = json.loads(report_path.read_text(encoding='utf-8'))
        assert report['operation'] == 'cleanup-media'
        assert (report['matched'], report['failed']) == (1, 1)

    def test_max_retries_must_be_positive(self, config_file):
        with pytest.raises(SystemExit):
            migrate.main(['--config', config_file, 'cleanup-media', 'medus', '--max-retries', '0'])
