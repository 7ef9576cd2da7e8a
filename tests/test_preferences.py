"""
Unit tests for the persisted config, segment log and consent flag.
"""

import json
from datetime import timedelta

from geo_tracker.config import KEY_GEO_TRACKING_CONFIG, KEY_GEO_TRACKING_SEGMENTS
from geo_tracker.models import TrackingConfig
from tests.fakes import make_segment


class TestKeyValueStore:

    def test_missing_keys(self, kv_store):
        assert kv_store.get_string("nope") is None
        assert kv_store.get_bool("nope") is None
        assert kv_store.get_string_list("nope") is None

    def test_overwrite_and_remove(self, kv_store):
        kv_store.set_string("k", "a")
        kv_store.set_string("k", "b")
        assert kv_store.get_string("k") == "b"
        kv_store.remove("k")
        assert kv_store.get_string("k") is None

    def test_string_list_keeps_order(self, kv_store):
        kv_store.set_string_list("list", ["c", "a", "b"])
        assert kv_store.get_string_list("list") == ["c", "a", "b"]

    def test_corrupted_list_reads_as_missing(self, kv_store):
        kv_store.set_string("list", "{not json")
        assert kv_store.get_string_list("list") is None


class TestConfigStore:

    def test_missing_config_loads_defaults(self, config_store):
        assert config_store.load() == TrackingConfig.defaults()
        assert config_store.load_raw() is None

    def test_round_trip(self, config_store):
        config = TrackingConfig.create(timedelta(seconds=45), 1.25, 30)
        config_store.save(config)
        assert config_store.load() == config

    def test_negative_field_reloads_as_default(self, config_store, kv_store):
        kv_store.set_string(KEY_GEO_TRACKING_CONFIG, json.dumps({
            "segment_duration_seconds": 60,
            "speed_change_threshold_mps": 3.0,
            "distance_filter_meters": -5,
        }))
        config = config_store.load()
        assert config.segment_duration_seconds == 60
        assert config.speed_change_threshold == 3.0
        assert config.distance_filter_meters == 0

    def test_malformed_blob_falls_back_to_defaults(self, config_store, kv_store):
        kv_store.set_string(KEY_GEO_TRACKING_CONFIG, "not json at all")
        assert config_store.load() == TrackingConfig.defaults()

        kv_store.set_string(KEY_GEO_TRACKING_CONFIG, json.dumps({"segment_duration_seconds": "soon"}))
        assert config_store.load() == TrackingConfig.defaults()

    def test_clear(self, config_store):
        config_store.save(TrackingConfig.create(timedelta(seconds=20), 0.0, 0))
        config_store.clear()
        assert config_store.load_raw() is None


class TestSegmentStore:

    def test_append_and_load_in_order(self, segment_store):
        for i in range(3):
            segment_store.append(make_segment(i))
        loaded = segment_store.load()
        assert [s.start_longitude for s in loaded] == [121.0, 122.0, 123.0]

    def test_ring_buffer_keeps_most_recent(self, segment_store):
        segments = [make_segment(i) for i in range(25)]
        for segment in segments:
            segment_store.append(segment)

        loaded = segment_store.load()
        assert len(loaded) == 20
        assert [s.start_longitude for s in loaded] == [s.start_longitude for s in segments[5:]]

    def test_per_append_limit_override(self, segment_store):
        for i in range(6):
            segment_store.append(make_segment(i))
        segment_store.append(make_segment(6), max_segments=3)

        loaded = segment_store.load()
        assert [s.start_longitude for s in loaded] == [125.0, 126.0, 127.0]

    def test_malformed_entries_are_skipped(self, segment_store, kv_store):
        good = json.dumps(make_segment(0).to_json())
        kv_store.set_string_list(KEY_GEO_TRACKING_SEGMENTS, [good, "{broken", json.dumps({"start_x": 1})])
        loaded = segment_store.load()
        assert len(loaded) == 1
        assert loaded[0].start_longitude == 121.0

    def test_clear(self, segment_store):
        segment_store.append(make_segment(0))
        segment_store.clear()
        assert segment_store.load() == []


class TestConsentStore:

    def test_defaults_to_false(self, consent_store):
        assert consent_store.get() is False

    def test_set(self, consent_store):
        consent_store.set(True)
        assert consent_store.get() is True
        consent_store.set(False)
        assert consent_store.get() is False
