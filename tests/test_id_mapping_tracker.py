"""Tests for IdMappingTracker."""

import unittest

from importers.id_mapping_tracker import IdMappingTracker


class TestIdMappingTracker(unittest.TestCase):
    def setUp(self):
        self.tracker = IdMappingTracker()

    def test_entity_mapping_is_per_language(self):
        self.assertTrue(self.tracker.add_entity_mapping('lt', 10, 101))
        self.assertTrue(self.tracker.add_entity_mapping('en', 10, 202))

        self.assertEqual(self.tracker.get_new_id('lt', 10), 101)
        self.assertEqual(self.tracker.get_new_id('en', '10'), 202)
        self.assertIsNone(self.tracker.get_new_id('de', 10))
        self.assertIsNone(self.tracker.get_new_id('lt', None))

    def test_mapping_is_write_once(self):
        self.tracker.add_entity_mapping('lt', 10, 101)
        with self.assertLogs('importers.id_mapping_tracker', level='WARNING'):
            self.assertFalse(self.tracker.add_entity_mapping('lt', 10, 999))
        self.assertTrue(self.tracker.add_entity_mapping('lt', 10, 101))
        self.assertEqual(self.tracker.get_new_id('lt', 10), 101)

    def test_image_mapping_is_write_once(self):
        self.assertTrue(self.tracker.add_image_mapping(5, 50))
        with self.assertLogs('importers.id_mapping_tracker', level='WARNING'):
            self.assertFalse(self.tracker.add_image_mapping(5, 51))
        self.assertEqual(self.tracker.get_image_id(5), 50)
        self.assertIsNone(self.tracker.get_image_id(None))

    def test_statistics_and_clear(self):
        self.tracker.add_entity_mapping('lt', 1, 11)
        self.tracker.add_entity_mapping('lt', 2, 12)
        self.tracker.add_entity_mapping('en', 3, 13)
        self.tracker.add_image_mapping(7, 70)

        self.assertEqual(self.tracker.get_statistics(), {
            'entities': {'lt': 2, 'en': 1},
            'total_entities': 3,
            'images': 1,
        })
        self.assertEqual(self.tracker.language_mappings('lt'), {1: 11, 2: 12})

        self.tracker.clear()
        self.assertFalse(self.tracker.has_mapping('lt', 1))
        self.assertEqual(self.tracker.get_statistics()['total_entities'], 0)


if __name__ == '__main__':
    unittest.main()
