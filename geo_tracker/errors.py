"""
Error types for the Geo Tracker service
"""


class GeoTrackerError(Exception):
    """Base class for all service errors"""


class LocationPermissionError(GeoTrackerError):
    """Location could not be read because the platform refused access"""


class LocationServiceDisabledError(LocationPermissionError):
    def __init__(self, message: str = "Location service is disabled"):
        super().__init__(message)


class LocationPermissionDeniedError(LocationPermissionError):
    def __init__(self, message: str = "Location permission was not granted"):
        super().__init__(message)


class LocationPermissionDeniedForeverError(LocationPermissionError):
    """Permission is permanently denied. Prompting again will not help."""

    def __init__(self, message: str = "Location permission is permanently denied"):
        super().__init__(message)


class MalformedPersistedDataError(GeoTrackerError):
    """Stored data could not be decoded. Callers treat it as absent."""


class StreamDeliveryError(GeoTrackerError):
    """A single fix from the position stream could not be delivered"""


class HealthError(GeoTrackerError):
    """Health data could not be fetched"""
