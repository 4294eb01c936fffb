"""Tests for snapshot inspection (the ``test`` command)."""

import pytest

from exporters.snapshot_inspector import SnapshotInspector, format_inspection
from models import ExportMeta, ExportSnapshot


@pytest.fixture
def inspector():
    snapshot = ExportSnapshot(
        meta=ExportMeta(
            exported_at='2024-01-01T00:00:00+00:00',
            main_language='lt',
            other_languages=['en', 'ru'],
            source_site='Medaus Namai',
            kind='categories',
        ),
        translations={
            'medus': {'lt': 1, 'en': 11, 'ru': 21},
            '%c5%a1vieziai': {'lt': 2, 'en': 12},
            'honey-gifts': {'en': 13},
            'ghost': {'lt': 3},
        },
        data={
            'lt': [
                {'id': 1, 'slug': 'medus', 'name': 'Medus', 'parent': 0},
                {'id': 2, 'slug': '%c5%a1vieziai', 'name': 'Švieži', 'parent': 1},
            ],
            'en': [
                {'id': 11, 'slug': 'medus', 'name': 'Honey', 'parent': 0},
                {'id': 12, 'slug': 'fresh', 'name': 'Fresh', 'parent': 11},
                {'id': 13, 'slug': 'honey-gifts', 'name': 'Honey gifts', 'parent': 0},
                {'id': 14, 'slug': 'loose', 'name': 'Loose', 'translations': {'lt': 5}},
            ],
            'ru': [{'id': 21, 'slug': 'medus', 'name': 'Мёд', 'parent': 0}],
        },
    )
    return SnapshotInspector(snapshot)


class TestSnapshotInspector:
    def test_summary(self, inspector):
        summary = inspector.summary()
        assert summary['counts'] == {'lt': 2, 'en': 4, 'ru': 1}
        assert summary['total'] == 7
        assert summary['translation_groups'] == 4
        assert summary['complete_groups'] == 1

    def test_translation_rows_decode_keys(self, inspector):
        rows = inspector.translation_rows()
        assert rows == [
            {'key': 'švieziai', 'lt': 2, 'en': 12, 'ru': '-'},
            {'key': 'medus', 'lt': 1, 'en': 11, 'ru': 21},
        ]

    def test_orphan_rows(self, inspector):
        assert inspector.orphan_rows() == [{'key': 'honey-gifts', 'lt': '-', 'en': 13, 'ru': '-'}]

    def test_coverage(self, inspector):
        coverage = inspector.coverage()
        assert coverage['en'] == {'translated': 2, 'total': 2, 'percent': 100.0}
        assert coverage['ru']['translated'] == 1
        assert coverage['ru']['percent'] == pytest.approx(50.0)

    def test_find_matches_name_and_decoded_slug(self, inspector):
        matches = inspector.find('honey')
        assert [(m['lang'], m['id']) for m in matches] == [('en', 11), ('en', 13)]
        assert matches[0]['translations'] == {'lt': 1, 'en': 11, 'ru': 21}

        assert [m['id'] for m in inspector.find('švie')] == [2]

    def test_issues(self, inspector):
        problems = inspector.issues()
        assert "Translation group 'ghost' lists lt:3 which is not in the export" in problems
        assert any('en entity 14' in problem for problem in problems)
        assert len(problems) == 2

    def test_format_inspection(self, inspector):
        text = format_inspection(inspector, search='medus')
        assert 'Source site: Medaus Namai' in text
        assert 'Other languages: en, ru' in text
        assert '  total: 7' in text
        assert 'Groups without LT:' in text
        assert "Matches for 'medus': 3" in text
        assert 'Issues (2):' in text
