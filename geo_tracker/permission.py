"""
Location permission gate
"""

import logging

from geo_tracker.models import PermissionFailure, PermissionResult, PermissionStatus
from geo_tracker.position_source import PositionSource

logger = logging.getLogger(__name__)


class PermissionGate:
    """
    Checks, and if needed requests, access to location before any read.
    """

    def __init__(self, source: PositionSource):
        self.source = source

    async def acquire(self) -> PermissionResult:
        """
        Returns a granted result, or the reason access is refused.

        A plain denial triggers exactly one permission request. A permanent
        denial is terminal; callers should not re-prompt.
        """
        if not await self.source.is_service_enabled():
            logger.warning("Location service is disabled")
            return PermissionResult.refused(PermissionFailure.SERVICE_DISABLED)

        permission = await self.source.check_permission()
        if permission == PermissionStatus.DENIED:
            logger.info("Location permission denied, requesting it")
            permission = await self.source.request_permission()
            if permission == PermissionStatus.DENIED:
                logger.warning("User did not grant location permission")
                return PermissionResult.refused(PermissionFailure.PERMISSION_DENIED)

        if permission == PermissionStatus.DENIED_FOREVER:
            logger.warning("Location permission permanently denied")
            return PermissionResult.refused(PermissionFailure.PERMISSION_DENIED_FOREVER)

        return PermissionResult.granted()

    async def require(self):
        """Like acquire(), but raises the matching LocationPermissionError"""
        result = await self.acquire()
        result.raise_for_failure()
