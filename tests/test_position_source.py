"""
Unit tests for the serial GPS source and the distance filter.
"""

import asyncio
import threading
from datetime import timedelta

import pytest

from geo_tracker.errors import StreamDeliveryError
from geo_tracker.geo import haversine_m, passes_distance_filter
from geo_tracker.models import PermissionStatus, TrackingConfig
from geo_tracker.position_source import SerialPositionSource
from geo_tracker.segmentation import SegmentationEngine
from tests.fakes import T0, sample, settle


class TestDistanceFilter:

    def test_haversine_one_degree_latitude(self):
        assert haversine_m(25.0, 121.0, 26.0, 121.0) == pytest.approx(111_195, rel=1e-3)

    def test_first_fix_passes(self):
        assert passes_distance_filter(None, sample(0), 100)

    def test_zero_filter_passes_everything(self):
        assert passes_distance_filter(sample(0), sample(1), 0)

    def test_close_fix_is_filtered(self):
        near = sample(1, lat=25.03005)
        far = sample(1, lat=25.04)
        assert not passes_distance_filter(sample(0), near, 10)
        assert passes_distance_filter(sample(0), far, 10)


class TestSerialPositionSource:

    @pytest.fixture
    def source(self, tmp_path):
        return SerialPositionSource(port=str(tmp_path / "ttyGPS0"))

    def test_parse_csv_line(self, source):
        fix = source.parse_csv_line("2025-10-19T06:00:05Z,25.0330,121.5654,1.25\r\n")
        assert fix.latitude == 25.033
        assert fix.longitude == 121.5654
        assert fix.speed == 1.25
        assert fix.timestamp == T0 + timedelta(seconds=5)

    @pytest.mark.parametrize("line", [
        "timestamp,latitude,longitude,speed",
        "GPS receiver ready",
        "2025-10-19T06:00:05Z,25.0330,121.5654",
        "",
    ])
    def test_parse_skips_non_data_lines(self, source, line):
        assert source.parse_csv_line(line) is None

    def test_missing_device(self, source):
        assert asyncio.run(source.is_service_enabled()) is False
        assert asyncio.run(source.check_permission()) == PermissionStatus.DENIED

    def test_readable_device(self, source):
        open(source.port, "w").close()
        assert asyncio.run(source.is_service_enabled()) is True
        assert asyncio.run(source.request_permission()) == PermissionStatus.WHILE_IN_USE

    def test_stream_fails_without_device(self, source):
        async def scenario():
            fixes = source.stream(0)
            with pytest.raises(StreamDeliveryError):
                await fixes.__anext__()

        asyncio.run(scenario())

    def test_current_position_waits_for_next_fix(self, source, monkeypatch):
        monkeypatch.setattr(source, "start_reading", lambda: True)
        monkeypatch.setattr(source, "stop_reading", lambda: None)

        async def scenario():
            # Read before anyone asked: not a current position
            source._dispatch(sample(1))
            pending = asyncio.create_task(source.current_position())
            await settle()
            source._dispatch(sample(7))
            return await pending

        fix = asyncio.run(scenario())
        assert fix.timestamp == T0 + timedelta(seconds=7)
        assert source._listeners == []

    def test_last_stream_closing_stops_reading_off_the_loop(self, source, monkeypatch):
        stopped_on = []
        monkeypatch.setattr(source, "start_reading", lambda: True)
        monkeypatch.setattr(source, "stop_reading", lambda: stopped_on.append(threading.current_thread()))

        async def scenario():
            fixes = source.stream(0)
            pending = asyncio.create_task(fixes.__anext__())
            await settle()
            source._dispatch(sample(0))
            await pending
            await fixes.aclose()

        asyncio.run(scenario())
        assert len(stopped_on) == 1
        assert stopped_on[0] is not threading.main_thread()


class TestSerialRestart:

    def test_restart_seeds_from_a_fresh_fix(self, tmp_path, monkeypatch, segment_store, notifier):
        source = SerialPositionSource(port=str(tmp_path / "ttyGPS0"))
        monkeypatch.setattr(source, "start_reading", lambda: True)
        monkeypatch.setattr(source, "stop_reading", lambda: None)
        engine = SegmentationEngine(source, segment_store, notifier)

        async def scenario():
            config = TrackingConfig.defaults()
            await engine.start(config)
            await settle()
            source._dispatch(sample(0))
            await settle()
            assert engine.anchor.time == T0

            await engine.stop()
            await engine.start(config)
            await settle()
            assert engine.anchor is None

            source._dispatch(sample(60))
            await settle()
            assert engine.anchor.time == T0 + timedelta(seconds=60)
            await engine.stop()

        asyncio.run(scenario())
        assert segment_store.load() == []
        assert notifier.shown == []
