"""
Segmentation engine: turns a live stream of fixes into closed segments
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from geo_tracker.config import POSITION_ACCURACY, SEGMENT_NOTIFICATION_TITLE
from geo_tracker.errors import StreamDeliveryError
from geo_tracker.models import PositionSample, Segment, TrackingConfig
from geo_tracker.notifications import Notifier
from geo_tracker.position_source import PositionSource
from geo_tracker.preferences import SegmentStore
from geo_tracker.utils import to_local

logger = logging.getLogger(__name__)


@dataclass
class TrackingAnchor:
    """Open start of the segment currently being accumulated"""
    latitude: float
    longitude: float
    time: datetime
    last_valid_speed: Optional[float] = None


class SegmentationEngine:
    """
    Owns the position subscription and decides segment boundaries.

    A segment closes when either the time since the anchor reaches the
    duration threshold, or a valid speed differs from the last valid speed
    by at least a non-zero speed threshold. Negative speeds are invalid readings:
    they never close a segment and never replace the last valid speed.
    """

    def __init__(
        self,
        source: PositionSource,
        segment_store: SegmentStore,
        notifier: Notifier,
    ):
        self.source = source
        self.segment_store = segment_store
        self.notifier = notifier

        self.config = TrackingConfig.defaults()
        self.anchor: Optional[TrackingAnchor] = None

        self._task: Optional[asyncio.Task] = None
        self._seed_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_valid_speed(self) -> Optional[float]:
        return self.anchor.last_valid_speed if self.anchor else None

    # ==================== SEGMENTATION ====================

    def _seed(self, sample: PositionSample):
        speed = sample.speed if sample.speed >= 0 else self.last_valid_speed
        self.anchor = TrackingAnchor(
            latitude=sample.latitude,
            longitude=sample.longitude,
            time=sample.timestamp,
            last_valid_speed=speed,
        )

    def _has_speed_changed(self, speed: float) -> bool:
        # A zero threshold turns speed-based closing off
        if self.config.speed_change_threshold <= 0:
            return False
        if speed < 0:
            return False
        if self.last_valid_speed is None:
            return False
        return abs(speed - self.last_valid_speed) >= self.config.speed_change_threshold

    def _update_speed(self, speed: float):
        if speed >= 0:
            self.anchor.last_valid_speed = speed

    def on_sample(self, sample: PositionSample) -> Optional[Segment]:
        """
        Process one fix. Returns the segment it closed, if any.
        """
        if self.anchor is None:
            self._seed(sample)
            return None

        duration_exceeded = abs(sample.timestamp - self.anchor.time) >= self.config.segment_duration_threshold
        speed_changed = self._has_speed_changed(sample.speed)

        if not duration_exceeded and not speed_changed:
            self._update_speed(sample.speed)
            return None

        segment = Segment(
            start_longitude=self.anchor.longitude,
            start_latitude=self.anchor.latitude,
            start_time=self.anchor.time,
            end_longitude=sample.longitude,
            end_latitude=sample.latitude,
            end_time=sample.timestamp,
        )
        self._store_segment(segment)

        self._seed(sample)
        return segment

    def _store_segment(self, segment: Segment):
        self.segment_store.append(segment)
        logger.info("Stored segment: %s", segment.summary)
        self.notifier.show(
            SEGMENT_NOTIFICATION_TITLE,
            f"時間 {to_local(segment.start_time).isoformat()} 至 {to_local(segment.end_time).isoformat()}",
        )

    # ==================== SUBSCRIPTION ====================

    async def _consume(self, distance_filter_m: int):
        fixes = self.source.stream(distance_filter_m, POSITION_ACCURACY)
        try:
            while True:
                try:
                    sample = await fixes.__anext__()
                except StopAsyncIteration:
                    logger.info("Position stream ended")
                    break
                except StreamDeliveryError as e:
                    logger.error("Position stream error: %s", e)
                    continue

                logger.debug(
                    "Received position update: (%s, %s), speed=%s m/s",
                    sample.latitude, sample.longitude, sample.speed,
                )
                try:
                    self.on_sample(sample)
                except SQLAlchemyError as e:
                    logger.error("Error storing segment: %s", e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Position stream failed, subscription ended: %s", e)
        finally:
            aclose = getattr(fixes, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _seed_from_current_position(self):
        try:
            initial = await self.source.current_position()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Failed to seed initial position: %s", e)
            return
        # A fix delivered by the stream meanwhile takes precedence
        if self.anchor is None:
            self._seed(initial)

    async def start(self, config: TrackingConfig):
        """Subscribe to the position stream. No-op if already running."""
        if self.is_running:
            logger.info("Background tracking already running. Skipping start.")
            return

        self.config = config
        self.anchor = None
        logger.info("Starting background tracking with config: %s", config)

        self._task = asyncio.create_task(self._consume(config.distance_filter_meters))
        self._seed_task = asyncio.create_task(self._seed_from_current_position())

    async def stop(self):
        """Cancel the subscription and discard the anchor"""
        tasks = [t for t in (self._seed_task, self._task) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._task = None
        self._seed_task = None
        self.anchor = None
        logger.info("Background tracking stopped")

    def debug_state(self) -> Dict[str, Any]:
        anchor = None
        if self.anchor is not None:
            anchor = {
                "latitude": self.anchor.latitude,
                "longitude": self.anchor.longitude,
                "time": to_local(self.anchor.time).isoformat(),
                "last_valid_speed": self.anchor.last_valid_speed,
            }
        return {
            "running": self.is_running,
            "config": self.config.to_storage_json(),
            "anchor": anchor,
        }
