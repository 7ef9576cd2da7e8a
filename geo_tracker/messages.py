"""
Request/reply message handlers for the embedded web view

Each handler exposes a name and a single `handle(payload) -> reply`.
Dispatch is a lookup in the handler mapping.
"""

import logging
import math
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional, Protocol

from geo_tracker.health import HealthSource
from geo_tracker.models import LocationReply
from geo_tracker.session import TrackingSessionController

logger = logging.getLogger(__name__)


class MessageHandler(Protocol):
    name: str

    async def handle(self, payload: Any) -> Any: ...


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        if not math.isfinite(value):
            return None
    except OverflowError:
        return None
    return value


def _duration(value: float, unit: str) -> Optional[timedelta]:
    try:
        return timedelta(**{unit: int(value)})
    except OverflowError:
        logger.warning("Ignoring out-of-range segment duration: %s %s", value, unit)
        return None


class FaceOnKeyboardLocationHandler:
    """
    Returns stored segments and the active config.

    Processing order: reset_config, update_config, read segments,
    clear_after_fetch, log, reply.
    """
    name = "face_on_keyboard_location"

    def __init__(self, controller: TrackingSessionController):
        self.controller = controller

    @staticmethod
    def parse_update(update: Dict[str, Any]) -> Dict[str, Any]:
        """
        Keyword arguments for update_config().
        Non-numeric and out-of-range fields are ignored.
        """
        seconds = _number(update.get("segment_duration_seconds"))
        minutes = _number(update.get("segment_duration_minutes"))
        speed = _number(update.get("speed_threshold_mps"))
        distance = _number(update.get("distance_filter_meters"))

        segment_duration = None
        if seconds is not None:
            segment_duration = _duration(seconds, "seconds")
        elif minutes is not None:
            segment_duration = _duration(minutes, "minutes")

        return {
            "segment_duration": segment_duration,
            "speed_threshold": float(speed) if speed is not None else None,
            "distance_filter": int(distance) if distance is not None else None,
        }

    async def handle(self, payload: Any) -> Dict[str, Any]:
        message = dict(payload) if isinstance(payload, dict) else {}
        logger.info("Received location message: %s", message or "(empty, using defaults)")

        if message.get("reset_config") is True:
            await self.controller.clear_config()

        update = message.get("update_config")
        if isinstance(update, dict):
            logger.info("Applying config update: %s", update)
            await self.controller.update_config(**self.parse_update(update))

        segments = self.controller.load_segments()

        if message.get("clear_after_fetch") is True:
            self.controller.clear_segments()
            logger.info("Cleared stored segments after fetch")

        if message.get("log") is True:
            self.controller.log_debug_state(include_segments=True)

        raw_config = self.controller.config_store.load_raw()
        config = raw_config if raw_config is not None else self.controller.current_config.to_storage_json()
        logger.info("Responding with %d segments and config %s", len(segments), config)

        return LocationReply(segments=segments, config=config).model_dump()


class FaceOnKeyboardHealthHandler:
    """Today's steps and distance, or an error kind"""
    name = "face_on_keyboard_health"

    def __init__(self, health_source: HealthSource):
        self.health_source = health_source

    async def handle(self, payload: Any) -> Dict[str, Any]:
        try:
            if not self.health_source.is_supported_platform:
                return {
                    "error": "health_not_supported",
                    "message": "Health data is only available on iOS and Android devices.",
                }
            snapshot = await self.health_source.fetch_today_summary()
            return snapshot.to_json()
        except Exception as e:
            logger.error("Health fetch failed: %s", e, exc_info=True)
            return {
                "error": "health_fetch_failed",
                "message": str(e),
            }


class LocationHandler:
    """One-shot current position. Any failure replies with an empty list."""
    name = "location"

    def __init__(self, controller: TrackingSessionController):
        self.controller = controller

    async def handle(self, payload: Any) -> Any:
        try:
            position = await self.controller.position()
        except Exception as e:
            # Might be a permission issue
            logger.error("One-shot position failed: %s", e)
            return []
        return position.to_json()


class MessageRouter:
    """Mapping from message name to handler"""

    def __init__(self, handlers: Iterable[MessageHandler] = ()):
        self.handlers: Dict[str, MessageHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: MessageHandler):
        self.handlers[handler.name] = handler

    def __contains__(self, name: str) -> bool:
        return name in self.handlers

    async def dispatch(self, name: str, payload: Any = None) -> Dict[str, Any]:
        """
        Run the named handler and wrap its reply as {name, data}.
        Raises KeyError for unknown names.
        """
        handler = self.handlers[name]
        data = await handler.handle(payload)
        return {"name": name, "data": data}
