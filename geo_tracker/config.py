"""
Configuration settings for the Geo Tracker service
"""

import os

# Serial GPS receiver configuration
SERIAL_PORT = os.getenv("GEO_TRACKER_SERIAL_PORT", "/dev/ttyUSB0")
BAUD_RATE = 9600

# Segmentation defaults
DEFAULT_SEGMENT_DURATION_SECONDS = 10  # Close a segment after 10 seconds
DEFAULT_SPEED_CHANGE_THRESHOLD_MPS = 0.0
DEFAULT_DISTANCE_FILTER_METERS = 0

# Segment retention
DEFAULT_SEGMENT_LIMIT = 20  # Keep only the 20 most recent segments

# Stream accuracy requested from the position source
POSITION_ACCURACY = "best"

# Key-value storage keys
KEY_GEO_TRACKING_CONSENT = "geo_tracking_consent"
KEY_GEO_TRACKING_SEGMENTS = "geo_tracking_segments"
KEY_GEO_TRACKING_CONFIG = "geo_tracking_config"

# Timezone used when segments are read back
LOCAL_TIMEZONE = "Asia/Taipei"

# Notification text
SEGMENT_NOTIFICATION_TITLE = "定位紀錄已更新"

# Database - SQLite file by default
DATABASE_URL = os.getenv("GEO_TRACKER_DATABASE_URL", "sqlite:///./geo_tracker.db")

# API settings
API_HOST = "0.0.0.0"
API_PORT = 8000
