"""
Persisted tracking preferences: config, segment log and consent flag
"""

import json
import logging
from typing import List, Optional

from geo_tracker.config import (
    DEFAULT_SEGMENT_LIMIT,
    KEY_GEO_TRACKING_CONFIG,
    KEY_GEO_TRACKING_CONSENT,
    KEY_GEO_TRACKING_SEGMENTS,
)
from geo_tracker.database import KeyValueStore
from geo_tracker.errors import MalformedPersistedDataError
from geo_tracker.models import Segment, TrackingConfig

logger = logging.getLogger(__name__)


class ConfigStore:
    """Loads and saves the sanitized tracking config"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load_raw(self) -> Optional[dict]:
        """The stored config blob, or None when absent or not a JSON object"""
        raw = self.store.get_string(KEY_GEO_TRACKING_CONFIG)
        if raw is None:
            logger.info("No geo tracking config found in storage")
            return None
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Stored geo tracking config is not valid JSON")
            return None
        if not isinstance(decoded, dict):
            logger.warning("Stored geo tracking config is not an object")
            return None
        return decoded

    def load(self) -> TrackingConfig:
        """Stored config, or defaults if missing or malformed"""
        stored = self.load_raw()
        if stored is None:
            return TrackingConfig.defaults()
        try:
            return TrackingConfig.from_storage_json(stored)
        except MalformedPersistedDataError as e:
            logger.warning("Failed to parse stored geo tracking config (%s). Falling back to defaults.", e)
            return TrackingConfig.defaults()

    def save(self, config: TrackingConfig):
        payload = config.to_storage_json()
        self.store.set_string(KEY_GEO_TRACKING_CONFIG, json.dumps(payload))
        logger.info("Persisted geo tracking config: %s", payload)

    def clear(self):
        self.store.remove(KEY_GEO_TRACKING_CONFIG)
        logger.info("Cleared geo tracking config")


class SegmentStore:
    """
    Bounded, insertion-ordered segment log.
    Appending past the limit evicts the oldest entries.
    """

    def __init__(self, store: KeyValueStore, max_segments: int = DEFAULT_SEGMENT_LIMIT):
        self.store = store
        self.max_segments = max_segments

    def append(self, segment: Segment, max_segments: Optional[int] = None):
        limit = max_segments if max_segments is not None else self.max_segments
        raw_list = self.store.get_string_list(KEY_GEO_TRACKING_SEGMENTS) or []
        raw_list.append(json.dumps(segment.to_json()))
        logger.debug("Appending geo segment (count after append: %d)", len(raw_list))

        if len(raw_list) > limit:
            del raw_list[: len(raw_list) - limit]
            logger.debug("Trimmed geo segments to limit %d", limit)

        self.store.set_string_list(KEY_GEO_TRACKING_SEGMENTS, raw_list)

    def load(self) -> List[Segment]:
        """All parseable segments in insertion order. Malformed entries are skipped."""
        raw_list = self.store.get_string_list(KEY_GEO_TRACKING_SEGMENTS) or []
        segments = []
        for entry in raw_list:
            try:
                segments.append(Segment.from_json(json.loads(entry)))
            except (ValueError, MalformedPersistedDataError):
                logger.warning("Skipping malformed geo segment: %s", entry)
        logger.debug("Loaded %d geo segments", len(segments))
        return segments

    def clear(self):
        self.store.remove(KEY_GEO_TRACKING_SEGMENTS)
        logger.info("Cleared geo segments")


class ConsentStore:
    """Whether the user allowed background tracking"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self) -> bool:
        value = self.store.get_bool(KEY_GEO_TRACKING_CONSENT)
        return bool(value)

    def set(self, value: bool):
        self.store.set_bool(KEY_GEO_TRACKING_CONSENT, value)
        logger.info("Geo tracking consent set to %s", value)
