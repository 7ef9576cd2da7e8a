"""
Data models for the Geo Tracker service
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from geo_tracker.config import (
    DEFAULT_DISTANCE_FILTER_METERS,
    DEFAULT_SEGMENT_DURATION_SECONDS,
    DEFAULT_SPEED_CHANGE_THRESHOLD_MPS,
)
from geo_tracker.errors import (
    LocationPermissionDeniedError,
    LocationPermissionDeniedForeverError,
    LocationServiceDisabledError,
    MalformedPersistedDataError,
)
from geo_tracker.utils import parse_iso, to_local, to_utc_iso


# Largest duration a timedelta can hold
MAX_SEGMENT_DURATION_SECONDS = timedelta.max.days * 86400


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TrackingConfig(BaseModel):
    """
    Thresholds controlling segmentation.
    Values are always sanitized: the duration is a positive whole number
    of seconds, the speed threshold and distance filter are non-negative.
    """
    model_config = ConfigDict(frozen=True)

    segment_duration_threshold: timedelta = timedelta(seconds=DEFAULT_SEGMENT_DURATION_SECONDS)
    speed_change_threshold: float = DEFAULT_SPEED_CHANGE_THRESHOLD_MPS
    distance_filter_meters: int = DEFAULT_DISTANCE_FILTER_METERS

    @classmethod
    def defaults(cls) -> "TrackingConfig":
        return cls()

    @classmethod
    def create(
        cls,
        segment_duration_threshold: timedelta,
        speed_change_threshold: float,
        distance_filter_meters: int,
    ) -> "TrackingConfig":
        """Build a config, replacing each out-of-range field by its default."""
        seconds = int(segment_duration_threshold.total_seconds())
        if seconds <= 0:
            seconds = DEFAULT_SEGMENT_DURATION_SECONDS
        speed = float(speed_change_threshold)
        if speed < 0:
            speed = DEFAULT_SPEED_CHANGE_THRESHOLD_MPS
        distance = int(distance_filter_meters)
        if distance < 0:
            distance = DEFAULT_DISTANCE_FILTER_METERS
        return cls(
            segment_duration_threshold=timedelta(seconds=seconds),
            speed_change_threshold=speed,
            distance_filter_meters=distance,
        )

    def copy_with(
        self,
        segment_duration_threshold: Optional[timedelta] = None,
        speed_change_threshold: Optional[float] = None,
        distance_filter_meters: Optional[int] = None,
    ) -> "TrackingConfig":
        """Merge only the provided fields into a new sanitized config"""
        return TrackingConfig.create(
            segment_duration_threshold=(
                segment_duration_threshold
                if segment_duration_threshold is not None
                else self.segment_duration_threshold
            ),
            speed_change_threshold=(
                speed_change_threshold
                if speed_change_threshold is not None
                else self.speed_change_threshold
            ),
            distance_filter_meters=(
                distance_filter_meters
                if distance_filter_meters is not None
                else self.distance_filter_meters
            ),
        )

    @property
    def segment_duration_seconds(self) -> int:
        return int(self.segment_duration_threshold.total_seconds())

    def to_storage_json(self) -> Dict[str, Any]:
        sanitized = TrackingConfig.create(
            self.segment_duration_threshold,
            self.speed_change_threshold,
            self.distance_filter_meters,
        )
        return {
            "segment_duration_seconds": sanitized.segment_duration_seconds,
            "speed_change_threshold_mps": sanitized.speed_change_threshold,
            "distance_filter_meters": sanitized.distance_filter_meters,
        }

    @classmethod
    def from_storage_json(cls, data: Any) -> "TrackingConfig":
        """
        Rebuild a config from its stored form.
        Missing or negative fields take their default one by one.
        Raises MalformedPersistedDataError if the blob itself is unusable.
        """
        if not isinstance(data, dict):
            raise MalformedPersistedDataError(f"config blob is not an object: {data!r}")

        fields = ("segment_duration_seconds", "speed_change_threshold_mps", "distance_filter_meters")
        for field in fields:
            value = data.get(field)
            if value is not None and not _is_number(value):
                raise MalformedPersistedDataError(f"config field {field} is not a number: {value!r}")

        seconds = data.get("segment_duration_seconds")
        speed = data.get("speed_change_threshold_mps")
        distance = data.get("distance_filter_meters")

        return cls.create(
            segment_duration_threshold=timedelta(
                seconds=int(seconds) if seconds is not None else DEFAULT_SEGMENT_DURATION_SECONDS
            ),
            speed_change_threshold=float(speed) if speed is not None else DEFAULT_SPEED_CHANGE_THRESHOLD_MPS,
            distance_filter_meters=int(distance) if distance is not None else DEFAULT_DISTANCE_FILTER_METERS,
        )

    def __str__(self) -> str:
        return (
            f"TrackingConfig(duration={self.segment_duration_seconds}s, "
            f"speedThreshold={self.speed_change_threshold:.2f}m/s, "
            f"distanceFilter={self.distance_filter_meters}m)"
        )


class PositionSample(BaseModel):
    """A single fix from the position source. A negative speed means unavailable."""
    latitude: float
    longitude: float
    speed: float
    timestamp: datetime

    def to_json(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "timestamp": to_utc_iso(self.timestamp),
        }


class Segment(BaseModel):
    """A closed interval of travel between two fixes"""
    model_config = ConfigDict(frozen=True)

    start_longitude: float
    start_latitude: float
    start_time: datetime
    end_longitude: float
    end_latitude: float
    end_time: datetime

    def to_json(self) -> Dict[str, Any]:
        return {
            "start_x": self.start_longitude,
            "start_y": self.start_latitude,
            "start_time": to_utc_iso(self.start_time),
            "end_x": self.end_longitude,
            "end_y": self.end_latitude,
            "end_time": to_utc_iso(self.end_time),
        }

    @classmethod
    def from_json(cls, data: Any) -> "Segment":
        try:
            for key in ("start_x", "start_y", "end_x", "end_y"):
                if not _is_number(data[key]):
                    raise TypeError(f"{key} is not a number")
            return cls(
                start_longitude=float(data["start_x"]),
                start_latitude=float(data["start_y"]),
                start_time=parse_iso(data["start_time"]),
                end_longitude=float(data["end_x"]),
                end_latitude=float(data["end_y"]),
                end_time=parse_iso(data["end_time"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedPersistedDataError(f"invalid segment {data!r}: {e}") from e

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def summary(self) -> str:
        return (
            f"from ({self.start_latitude}, {self.start_longitude}) at {to_local(self.start_time).isoformat()} "
            f"to ({self.end_latitude}, {self.end_longitude}) at {to_local(self.end_time).isoformat()} "
            f"(duration {int(self.duration.total_seconds())}s)"
        )


class PermissionStatus(str, Enum):
    """OS-level location permission states"""
    DENIED = "denied"
    DENIED_FOREVER = "denied_forever"
    WHILE_IN_USE = "while_in_use"
    ALWAYS = "always"


class PermissionFailure(str, Enum):
    """Why the permission gate refused"""
    SERVICE_DISABLED = "service_disabled"
    PERMISSION_DENIED = "permission_denied"
    PERMISSION_DENIED_FOREVER = "permission_denied_forever"


_FAILURE_ERRORS = {
    PermissionFailure.SERVICE_DISABLED: LocationServiceDisabledError,
    PermissionFailure.PERMISSION_DENIED: LocationPermissionDeniedError,
    PermissionFailure.PERMISSION_DENIED_FOREVER: LocationPermissionDeniedForeverError,
}


class PermissionResult(BaseModel):
    """Outcome of a permission check: either granted or one failure kind"""
    model_config = ConfigDict(frozen=True)

    failure: Optional[PermissionFailure] = None

    @classmethod
    def granted(cls) -> "PermissionResult":
        return cls()

    @classmethod
    def refused(cls, failure: PermissionFailure) -> "PermissionResult":
        return cls(failure=failure)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise _FAILURE_ERRORS[self.failure]()


class HealthSnapshot(BaseModel):
    """Today's step and distance totals"""
    steps: int
    distance_meters: float
    start_time: datetime
    end_time: datetime

    def to_json(self) -> Dict[str, Any]:
        return {
            "steps": self.steps,
            "distance_meters": self.distance_meters,
            "start_time": to_utc_iso(self.start_time),
            "end_time": to_utc_iso(self.end_time),
        }


class LocationReply(BaseModel):
    """Reply body for the face_on_keyboard_location message"""
    segments: List[Dict[str, Any]]
    config: Dict[str, Any]


class ConsentRequest(BaseModel):
    """Answer to the background tracking consent prompt"""
    accept: bool = False


class ConfigUpdate(BaseModel):
    """Partial config update over REST"""
    segment_duration_seconds: Optional[int] = Field(None, ge=-MAX_SEGMENT_DURATION_SECONDS, le=MAX_SEGMENT_DURATION_SECONDS)
    speed_threshold_mps: Optional[float] = Field(None, allow_inf_nan=False)
    distance_filter_meters: Optional[int] = None


class TrackingStatus(BaseModel):
    """Current tracking session status"""
    consent: bool
    active: bool
    config: Dict[str, Any]
    anchor: Optional[Dict[str, Any]] = None


class NotificationRecord(BaseModel):
    """A notification that was shown"""
    id: Optional[int] = None
    timestamp: datetime
    title: str
    content: str
