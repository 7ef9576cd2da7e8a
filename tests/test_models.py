"""
Unit tests for the tracking data models.
"""

from datetime import timedelta

import pytest

from geo_tracker.errors import (
    LocationPermissionDeniedError,
    LocationPermissionDeniedForeverError,
    LocationServiceDisabledError,
    MalformedPersistedDataError,
)
from geo_tracker.models import PermissionFailure, PermissionResult, Segment, TrackingConfig
from tests.fakes import T0


class TestTrackingConfig:

    def test_defaults(self):
        config = TrackingConfig.defaults()
        assert config.segment_duration_threshold == timedelta(seconds=10)
        assert config.speed_change_threshold == 0.0
        assert config.distance_filter_meters == 0

    def test_copy_with_merges_only_given_fields(self):
        config = TrackingConfig.defaults().copy_with(speed_change_threshold=2.5)
        assert config.speed_change_threshold == 2.5
        assert config.segment_duration_threshold == timedelta(seconds=10)
        assert config.distance_filter_meters == 0

    def test_copy_with_sanitizes_negative_values(self):
        config = TrackingConfig.defaults().copy_with(
            segment_duration_threshold=timedelta(seconds=-5),
            speed_change_threshold=-1.0,
            distance_filter_meters=-3,
        )
        assert config == TrackingConfig.defaults()

    def test_storage_json_form(self):
        config = TrackingConfig.create(timedelta(minutes=2), 1.5, 25)
        assert config.to_storage_json() == {
            "segment_duration_seconds": 120,
            "speed_change_threshold_mps": 1.5,
            "distance_filter_meters": 25,
        }

    def test_from_storage_json_defaults_fields_individually(self):
        config = TrackingConfig.from_storage_json({
            "segment_duration_seconds": 30,
            "speed_change_threshold_mps": -2.0,
        })
        assert config.segment_duration_seconds == 30
        assert config.speed_change_threshold == 0.0
        assert config.distance_filter_meters == 0

    @pytest.mark.parametrize("blob", [
        ["not", "an", "object"],
        "text",
        {"segment_duration_seconds": "ten"},
        {"distance_filter_meters": True},
    ])
    def test_from_storage_json_rejects_invalid_blob(self, blob):
        with pytest.raises(MalformedPersistedDataError):
            TrackingConfig.from_storage_json(blob)

    def test_str(self):
        assert str(TrackingConfig.defaults()) == (
            "TrackingConfig(duration=10s, speedThreshold=0.00m/s, distanceFilter=0m)"
        )


class TestSegment:

    def _segment(self):
        return Segment(
            start_longitude=121.56,
            start_latitude=25.03,
            start_time=T0,
            end_longitude=121.57,
            end_latitude=25.04,
            end_time=T0 + timedelta(seconds=11),
        )

    def test_to_json_uses_utc_and_xy(self):
        data = self._segment().to_json()
        assert data["start_x"] == 121.56
        assert data["start_y"] == 25.03
        assert data["start_time"] == "2025-10-19T06:00:00.000000Z"
        assert data["end_time"] == "2025-10-19T06:00:11.000000Z"

    def test_from_json_reloads_as_local_time(self):
        segment = Segment.from_json(self._segment().to_json())
        assert segment.start_time == T0
        assert segment.start_time.utcoffset() == timedelta(hours=8)
        assert segment.duration == timedelta(seconds=11)

    @pytest.mark.parametrize("data", [
        {},
        None,
        {"start_x": "a", "start_y": 1, "end_x": 1, "end_y": 1, "start_time": "x", "end_time": "y"},
        {"start_x": 1, "start_y": 1, "end_x": 1, "end_y": 1, "start_time": "bad", "end_time": "bad"},
    ])
    def test_from_json_malformed(self, data):
        with pytest.raises(MalformedPersistedDataError):
            Segment.from_json(data)

    def test_summary_mentions_duration(self):
        assert "(duration 11s)" in self._segment().summary


class TestPermissionResult:

    def test_granted(self):
        result = PermissionResult.granted()
        assert result.ok
        result.raise_for_failure()

    @pytest.mark.parametrize("failure, error", [
        (PermissionFailure.SERVICE_DISABLED, LocationServiceDisabledError),
        (PermissionFailure.PERMISSION_DENIED, LocationPermissionDeniedError),
        (PermissionFailure.PERMISSION_DENIED_FOREVER, LocationPermissionDeniedForeverError),
    ])
    def test_refused_raises_matching_error(self, failure, error):
        result = PermissionResult.refused(failure)
        assert not result.ok
        with pytest.raises(error):
            result.raise_for_failure()
