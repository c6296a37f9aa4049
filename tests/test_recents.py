import itertools
import json

import pytest

from conftest import decode
from imgx.errors import RecentsError
from imgx.file_io import from_data_url
from imgx.models import ImageFormat, SourceImage
from imgx.pipeline.recents import RecentImagesStore, create_thumbnail


@pytest.fixture
def clock():
    return itertools.count(1_000).__next__


def test_list_is_newest_first(small_source, clock):
    store = RecentImagesStore(None, clock=clock)
    first = store.add(small_source)
    second = store.add(small_source)
    assert [r.id for r in store.list()] == [second.id, first.id]
    assert len(first.id) == 32


def test_eleventh_entry_evicts_the_oldest(small_source, clock):
    store = RecentImagesStore(None, clock=clock)
    records = [store.add(small_source) for _ in range(11)]
    listed = store.list()
    assert len(listed) == 10
    assert records[0].id not in {r.id for r in listed}
    assert listed[0].id == records[-1].id


def test_same_timestamp_keeps_insertion_order(small_source):
    store = RecentImagesStore(None, clock=lambda: 42)
    first = store.add(small_source)
    second = store.add(small_source)
    assert [r.id for r in store.list()] == [second.id, first.id]


def test_persists_to_json(tmp_path, small_source, clock):
    path = tmp_path / 'recents.json'
    store = RecentImagesStore(path, clock=clock)
    record = store.add(small_source)

    payload = json.loads(path.read_text(encoding='utf-8'))
    assert payload['images'][0]['id'] == record.id

    reopened = RecentImagesStore(path, clock=clock)
    assert reopened.list() == [record]
    loaded = reopened.load(record.id)
    assert loaded.data == small_source.data
    assert loaded.name == 'small.png'


def test_clear(tmp_path, small_source, clock):
    path = tmp_path / 'recents.json'
    store = RecentImagesStore(path, clock=clock)
    store.add(small_source)
    store.clear()
    assert store.list() == []
    assert RecentImagesStore(path).list() == []


def test_unknown_id(clock):
    store = RecentImagesStore(None, clock=clock)
    assert store.get('missing') is None
    with pytest.raises(RecentsError):
        store.load('missing')


def test_broken_file_raises(tmp_path):
    path = tmp_path / 'recents.json'
    path.write_text('{not json', encoding='utf-8')
    with pytest.raises(RecentsError):
        RecentImagesStore(path)


def test_thumbnail_bounds_longest_side(png_source):
    thumb = create_thumbnail('fallback', png_source)
    assert thumb.startswith('data:image/jpeg;base64,')
    assert decode(from_data_url(thumb).data).size == (120, 90)


def test_small_images_keep_their_size(small_source):
    thumb = create_thumbnail('fallback', small_source)
    assert decode(from_data_url(thumb).data).size == (40, 30)


def test_thumbnail_falls_back_to_full_data_url():
    broken = SourceImage(data=b'broken', width=4, height=4, format=ImageFormat.PNG)
    assert create_thumbnail('data:image/png;base64,AAAA', broken) == 'data:image/png;base64,AAAA'
