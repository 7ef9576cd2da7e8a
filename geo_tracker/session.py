"""
Tracking session controller: consent, permission and engine lifecycle
"""

import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from geo_tracker.errors import LocationPermissionError
from geo_tracker.models import PositionSample, TrackingConfig
from geo_tracker.permission import PermissionGate
from geo_tracker.preferences import ConfigStore, ConsentStore, SegmentStore
from geo_tracker.segmentation import SegmentationEngine

logger = logging.getLogger(__name__)

ConsentPrompt = Callable[[], Awaitable[bool]]


async def decline_prompt() -> bool:
    """Consent prompt used when nobody is around to answer"""
    return False


class TrackingSessionController:
    """
    Idle/Active state machine over the segmentation engine.

    Active means the engine subscription is running. Getting there needs
    the user's consent and a granted location permission; losing the
    permission revokes the consent.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        segment_store: SegmentStore,
        consent_store: ConsentStore,
        permission_gate: PermissionGate,
        engine: SegmentationEngine,
        consent_prompt: ConsentPrompt = decline_prompt,
    ):
        self.config_store = config_store
        self.segment_store = segment_store
        self.consent_store = consent_store
        self.permission_gate = permission_gate
        self.engine = engine
        self.consent_prompt = consent_prompt

        self._config = TrackingConfig.defaults()

    @property
    def current_config(self) -> TrackingConfig:
        return self._config

    @property
    def is_active(self) -> bool:
        return self.engine.is_running

    async def initialize(self) -> "TrackingSessionController":
        """Load the stored config and resume tracking if already consented"""
        self._config = self.config_store.load()
        logger.info("Initial config loaded: %s", self._config)

        if self.consent_store.get():
            logger.info("Geo tracking consent found. Starting background tracking.")
            await self.engine.start(self._config)
        return self

    async def shutdown(self):
        await self.engine.stop()

    async def _acquire_or_revoke(self):
        try:
            await self.permission_gate.require()
        except LocationPermissionError:
            self.consent_store.set(False)
            raise

    async def ensure_enabled(self, prompt: Optional[ConsentPrompt] = None) -> bool:
        """
        Make sure background tracking runs.

        Returns False if the user declines. Raises LocationPermissionError
        (and revokes consent) if location access cannot be acquired.
        """
        if self.consent_store.get():
            await self._acquire_or_revoke()
            logger.info("Background tracking already consented. Ensuring stream is running.")
            await self.engine.start(self._config)
            return True

        consent = await (prompt or self.consent_prompt)()
        if not consent:
            self.consent_store.set(False)
            await self.engine.stop()
            logger.info("User declined background tracking.")
            return False

        await self._acquire_or_revoke()
        self.consent_store.set(True)
        logger.info("User granted background tracking consent.")
        await self.engine.start(self._config)
        return True

    async def ensure_if_required(self, requires_tracking: bool, prompt: Optional[ConsentPrompt] = None) -> bool:
        """ensure_enabled() for callers that only want a yes/no answer"""
        if not requires_tracking:
            return True
        try:
            return await self.ensure_enabled(prompt)
        except LocationPermissionError as e:
            logger.warning("Location unavailable: %s", e)
            return False

    async def disable(self):
        """Withdraw consent and stop tracking"""
        self.consent_store.set(False)
        await self.engine.stop()

    async def update_config(
        self,
        segment_duration: Optional[timedelta] = None,
        speed_threshold: Optional[float] = None,
        distance_filter: Optional[int] = None,
    ) -> TrackingConfig:
        """
        Merge the given fields into the config and persist it.
        A running subscription is restarted, which drops the current anchor.
        """
        original = self._config
        self._config = self._config.copy_with(
            segment_duration_threshold=segment_duration,
            speed_change_threshold=speed_threshold,
            distance_filter_meters=distance_filter,
        )
        self.config_store.save(self._config)
        logger.info("Updated tracking config from %s to %s", original, self._config)

        await self._restart_if_running()
        return self._config

    async def _restart_if_running(self):
        if self.engine.is_running:
            logger.info("Restarting background stream to apply new config.")
            await self.engine.stop()
            await self.engine.start(self._config)

    def clear_segments(self):
        self.segment_store.clear()
        logger.info("Cleared stored geo segments upon request.")

    async def clear_config(self):
        """
        Drop the stored config and fall back to defaults.
        A running subscription is restarted so it tracks with the defaults too.
        """
        self.config_store.clear()
        self._config = TrackingConfig.defaults()
        logger.info("Cleared stored geo tracking config.")

        await self._restart_if_running()

    def load_segments(self) -> List[Dict[str, Any]]:
        segments = [segment.to_json() for segment in self.segment_store.load()]
        logger.info("Loaded %d stored geo segments.", len(segments))
        return segments

    async def position(self) -> PositionSample:
        """One-shot position read behind the permission gate"""
        await self.permission_gate.require()
        return await self.engine.source.current_position()

    def status(self) -> Dict[str, Any]:
        state = self.engine.debug_state()
        return {
            "consent": self.consent_store.get(),
            "active": state["running"],
            "config": self._config.to_storage_json(),
            "anchor": state["anchor"],
        }

    def log_debug_state(self, include_segments: bool = False):
        state = self.status()
        logger.info("--- Geo tracking debug info ---")
        logger.info("Consent: %s", state["consent"])
        logger.info("Tracking active: %s", state["active"])
        logger.info("Current config: %s", self._config)
        anchor = state["anchor"]
        if anchor is None:
            logger.info("Current segment start: none")
        else:
            logger.info(
                "Current segment start: %s, %s at %s",
                anchor["latitude"], anchor["longitude"], anchor["time"],
            )
        if include_segments:
            segments = self.segment_store.load()
            logger.info("Stored segments (%d):", len(segments))
            for segment in segments:
                logger.info("  - %s", segment.summary)
        logger.info("--- End geo tracking debug info ---")
