"""Tests for image download, conversion, reuse and upload."""

import pytest
from PIL import Image

from importers.id_mapping_tracker import IdMappingTracker
from importers.image_pipeline import (
    ImagePipeline,
    download_candidates,
    image_filename,
    sanitize_slug,
)
from models import ImageStats
from tests.fakes import FakeClient, FakeStore, make_config


SRC = 'https://www.medus.lt/wp-content/uploads/2023/05/medus.jpg'
JPEG_BYTES = b'\xff\xd8' + b'j' * 400


def make_pipeline(tmp_path, files=None, images=None, **kwargs):
    client = FakeClient(files or {})
    store = FakeStore(client=client)
    config = make_config(tmp_path, images=images or {})
    pipeline = ImagePipeline(config, store, IdMappingTracker(), ImageStats(), **kwargs)
    return pipeline, store, client


class TestNaming:
    def test_sanitize_slug_decodes_and_cleans(self):
        assert sanitize_slug('%c4%8dernauog%c4%97s') == 'černauogės'
        assert sanitize_slug('medus / 1kg') == 'medus-1kg'
        assert sanitize_slug('') == 'image'

    def test_image_filename(self):
        assert image_filename(SRC, 'medus') == 'medus.jpg'
        assert image_filename('https://x/a.PNG?ver=2', 'medus', 2) == 'medus-3.png'
        assert image_filename('https://x/a.tiff', 'medus') == 'medus.jpg'

    def test_download_candidates(self):
        assert download_candidates(SRC) == [
            SRC,
            'https://www.medus.lt/wp-content/uploads/2023/05/medus-1152x1536.jpg',
            'https://www.medus.lt/wp-content/uploads/2023/05/medus-768x1024.jpg',
            'https://www.medus.lt/wp-content/uploads/2023/05/medus-300x300.jpg',
        ]


class TestProcessImage:
    def test_downloads_uploads_and_remembers(self, tmp_path):
        pipeline, store, client = make_pipeline(tmp_path, {SRC: JPEG_BYTES})

        new_id = pipeline.process_image({'id': 7, 'src': SRC}, 'medus')

        assert new_id is not None
        assert store.uploads == ['medus.jpg']
        assert (tmp_path / 'temp_images' / 'medus.jpg').read_bytes() == JPEG_BYTES
        assert pipeline.id_mapper.get_image_id(7) == new_id
        assert pipeline.process_image({'id': 7, 'src': SRC}, 'other-slug') == new_id
        assert client.downloads == [SRC]
        assert (pipeline.stats.downloaded, pipeline.stats.uploaded, pipeline.stats.skipped) == (1, 1, 1)

    def test_falls_back_to_thumbnail_variant(self, tmp_path):
        variant = 'https://www.medus.lt/wp-content/uploads/2023/05/medus-768x1024.jpg'
        pipeline, store, client = make_pipeline(tmp_path, {
            SRC: b'tiny',
            variant: JPEG_BYTES,
        })

        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') is not None
        assert client.downloads[-1] == variant
        assert len(client.downloads) == 3

    def test_all_variants_failing_counts_failure(self, tmp_path):
        pipeline, store, client = make_pipeline(tmp_path)
        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') is None
        assert len(client.downloads) == 4
        assert pipeline.stats.failed == 1
        assert store.uploads == []

    def test_missing_or_unsupported_src(self, tmp_path):
        pipeline, _, _ = make_pipeline(tmp_path)
        assert pipeline.process_image(None, 'medus') is None
        assert pipeline.process_image({'id': 1}, 'medus') is None
        assert pipeline.process_image({'id': 1, 'src': 'data:image/png;base64,AAAA'}, 'medus') is None
        assert pipeline.stats.failed == 1

    def test_skip_download_uses_local_files_only(self, tmp_path):
        pipeline, store, client = make_pipeline(tmp_path, {SRC: JPEG_BYTES}, skip_download=True)
        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') is None
        assert client.downloads == []
        assert pipeline.stats.skipped == 1

        local = tmp_path / 'temp_images' / 'medus.jpg'
        local.parent.mkdir(parents=True)
        local.write_bytes(JPEG_BYTES)
        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') is not None
        assert store.uploads == ['medus.jpg']

    def test_converted_file_is_preferred(self, tmp_path):
        webp = tmp_path / 'webp_images' / 'medus.webp'
        webp.parent.mkdir(parents=True)
        webp.write_bytes(b'RIFF' + b'w' * 300)
        pipeline, store, client = make_pipeline(tmp_path, {SRC: JPEG_BYTES})

        pipeline.process_image({'id': 7, 'src': SRC}, 'medus')

        assert client.downloads == []
        assert store.uploads == ['medus.webp']

    def test_force_download_ignores_local_copy(self, tmp_path):
        local = tmp_path / 'temp_images' / 'medus.jpg'
        local.parent.mkdir(parents=True)
        local.write_bytes(b'old' * 100)
        pipeline, _, client = make_pipeline(tmp_path, {SRC: JPEG_BYTES}, force_download=True)

        pipeline.process_image({'id': 7, 'src': SRC}, 'medus')

        assert client.downloads == [SRC]
        assert local.read_bytes() == JPEG_BYTES

    def test_webp_conversion(self, tmp_path):
        source = tmp_path / 'source.png'
        Image.new('RGB', (16, 16), (200, 150, 0)).save(source, 'PNG')
        png_url = 'https://www.medus.lt/medus.png'
        pipeline, store, _ = make_pipeline(
            tmp_path, {png_url: source.read_bytes()}, images={'convert_to_webp': True, 'min_bytes': 10}
        )

        pipeline.process_image({'id': 7, 'src': png_url}, 'medus')

        converted = tmp_path / 'webp_images' / 'medus.webp'
        assert converted.is_file()
        with Image.open(converted) as img:
            assert img.format == 'WEBP'
        assert store.uploads == ['medus.webp']


class TestMediaReuse:
    def test_exact_match_is_reused(self, tmp_path):
        pipeline, store, _ = make_pipeline(tmp_path, {SRC: JPEG_BYTES})
        existing = store.add_media('medus.jpg')
        store.add_media('medus.webp')

        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') == existing
        assert store.uploads == []
        assert pipeline.stats.reused == 1

    def test_stem_match_ignores_extension(self, tmp_path):
        pipeline, store, _ = make_pipeline(tmp_path, {SRC: JPEG_BYTES})
        store.add_media('medus-1kg.jpg')
        existing = store.add_media('medus.png')

        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') == existing

    def test_force_upload_skips_reuse(self, tmp_path):
        pipeline, store, _ = make_pipeline(tmp_path, {SRC: JPEG_BYTES}, force_upload=True)
        store.add_media('medus.jpg')
        pipeline.process_image({'id': 7, 'src': SRC}, 'medus')
        assert store.uploads == ['medus.jpg']

    def test_unsupported_type_falls_back_to_base64(self, tmp_path):
        pipeline, store, _ = make_pipeline(tmp_path, {SRC: JPEG_BYTES})
        store.unsupported_multipart = True

        assert pipeline.process_image({'id': 7, 'src': SRC}, 'medus') is not None
        assert store.uploads == ['base64:medus.jpg']


@pytest.mark.parametrize('slug,expected', [
    ('medus', 'medus'),
    ('liepų-medus', 'liepų-medus'),
    ('a%20b', 'a-b'),
])
def test_sanitize_slug_examples(slug, expected):
    assert sanitize_slug(slug) == expected
