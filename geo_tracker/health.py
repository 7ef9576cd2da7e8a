"""
Health metrics passthrough
"""

from typing import Protocol

from geo_tracker.errors import HealthError
from geo_tracker.models import HealthSnapshot


class HealthSource(Protocol):
    @property
    def is_supported_platform(self) -> bool: ...

    async def fetch_today_summary(self) -> HealthSnapshot: ...


class UnsupportedHealthSource:
    """Health source for hosts without a health data store"""

    @property
    def is_supported_platform(self) -> bool:
        return False

    async def fetch_today_summary(self) -> HealthSnapshot:
        raise HealthError("Health data is not available on this platform")
