"""Tests for site profile resolution and persisted selection."""

import json

import pytest

from errors import ValidationError
from models import SiteProfile
from site_registry import SiteRegistry
from tests.fakes import make_site


@pytest.fixture
def sites():
    return [
        make_site('Shop-LT', 'https://shop.example'),
        make_site('staging', 'https://staging.example/'),
        make_site('archive', 'https://archive.example', main_language='en', other_languages=()),
    ]


class TestSiteRegistry:
    def test_no_profiles_is_fatal(self, tmp_path):
        with pytest.raises(ValidationError):
            SiteRegistry([], str(tmp_path / 'settings.json'))

    def test_defaults_to_first_profile(self, sites, tmp_path):
        registry = SiteRegistry(sites, str(tmp_path / 'settings.json'))
        assert registry.get_export_site().name == 'Shop-LT'
        assert registry.get_import_site().name == 'Shop-LT'

    def test_get_site_by_name_or_index(self, sites, tmp_path):
        registry = SiteRegistry(sites, str(tmp_path / 'settings.json'))
        assert registry.get_site('shop-lt').name == 'Shop-LT'
        assert registry.get_site(1).name == 'staging'
        assert registry.get_site('2').name == 'archive'
        assert registry.get_site(7) is None
        assert registry.get_site('nope') is None

    def test_selection_is_persisted(self, sites, tmp_path):
        settings = tmp_path / 'settings.json'
        registry = SiteRegistry(sites, str(settings))

        assert registry.set_export_site('archive').name == 'archive'
        assert registry.set_import_site(1).name == 'staging'

        stored = json.loads(settings.read_text())
        assert stored == {'lastExportSite': 'archive', 'lastImportSite': 'staging'}

        reloaded = SiteRegistry(sites, str(settings))
        assert reloaded.get_export_site().name == 'archive'
        assert reloaded.get_import_site().name == 'staging'

    def test_unknown_selection_writes_nothing(self, sites, tmp_path):
        settings = tmp_path / 'settings.json'
        registry = SiteRegistry(sites, str(settings))
        assert registry.set_import_site('missing') is None
        assert not settings.exists()

    def test_stale_selection_falls_back_silently(self, sites, tmp_path):
        settings = tmp_path / 'settings.json'
        settings.write_text(json.dumps({'lastExportSite': 'renamed', 'lastImportSite': 'staging'}))
        registry = SiteRegistry(sites, str(settings))
        assert registry.get_export_site().name == 'Shop-LT'
        assert registry.get_import_site().name == 'staging'

    def test_corrupt_settings_file(self, sites, tmp_path):
        settings = tmp_path / 'settings.json'
        settings.write_text('{not json')
        registry = SiteRegistry(sites, str(settings))
        assert registry.get_import_site().name == 'Shop-LT'

    def test_from_config(self, tmp_path):
        config = {
            'sites': [{
                'name': 'shop', 'base_url': 'https://shop.example/', 'username': 'u', 'password': 'p',
                'main_language': 'lt', 'other_languages': ['en'],
            }],
            'migration': {'settings_file': str(tmp_path / 's.json')},
        }
        registry = SiteRegistry.from_config(config)
        site = registry.get_site('shop')
        assert site.base_url == 'https://shop.example'
        assert site.languages == ['lt', 'en']
        assert registry.list_sites()[0]['index'] == 0


class TestSiteProfile:
    def test_domain_and_languages(self):
        site = SiteProfile('s', 'https://www.medus.lt/', 'u', 'p', 'lt', ('en', 'lt', 'ru'))
        assert site.domain == 'www.medus.lt'
        assert site.languages == ['lt', 'en', 'ru']

    def test_password_not_serialized(self):
        assert 'password' not in make_site().to_dict()

    def test_profiles_are_immutable(self):
        site = make_site()
        with pytest.raises(AttributeError):
            site.name = 'other'
