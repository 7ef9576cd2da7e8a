"""
Position sources: the platform side of location reads
"""

import asyncio
import logging
import os
import threading
import time
from typing import AsyncIterator, Callable, List, Optional, Protocol

import serial

from geo_tracker.config import SERIAL_PORT, BAUD_RATE, POSITION_ACCURACY
from geo_tracker.errors import StreamDeliveryError
from geo_tracker.geo import passes_distance_filter
from geo_tracker.models import PermissionStatus, PositionSample
from geo_tracker.utils import parse_iso

logger = logging.getLogger(__name__)


class PositionSource(Protocol):
    """What the tracker needs from the platform location subsystem"""

    async def is_service_enabled(self) -> bool: ...

    async def check_permission(self) -> PermissionStatus: ...

    async def request_permission(self) -> PermissionStatus: ...

    async def current_position(self) -> PositionSample: ...

    def stream(self, distance_filter_m: int = 0, accuracy: str = POSITION_ACCURACY) -> AsyncIterator[PositionSample]: ...


class SerialPositionSource:
    """
    Reads CSV fixes from a GPS receiver via serial port.
    A background thread does the blocking reads and fans each fix out to
    the asyncio consumers registered through stream().
    """

    def __init__(self, port: str = SERIAL_PORT, baud_rate: int = BAUD_RATE):
        self.port = port
        self.baud_rate = baud_rate
        self.serial_connection: Optional[serial.Serial] = None
        self.is_running = False
        self.read_thread: Optional[threading.Thread] = None

        self._listeners: List[Callable[[PositionSample], None]] = []
        self._listeners_lock = threading.Lock()
        # Serializes start_reading() against a stop running in a worker thread
        self._reading_lock = threading.Lock()

    async def is_service_enabled(self) -> bool:
        return os.path.exists(self.port)

    async def check_permission(self) -> PermissionStatus:
        if os.access(self.port, os.R_OK | os.W_OK):
            return PermissionStatus.WHILE_IN_USE
        return PermissionStatus.DENIED

    async def request_permission(self) -> PermissionStatus:
        # Device node access is granted outside the process; re-check only.
        return await self.check_permission()

    def connect(self) -> bool:
        """
        Establish connection to the serial port.
        Returns True if successful, False otherwise.
        """
        try:
            self.serial_connection = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=1
            )
            logger.info("Connected to %s at %d baud", self.port, self.baud_rate)
            self.serial_connection.reset_input_buffer()
            return True

        except serial.SerialException as e:
            logger.error("Error connecting to %s: %s", self.port, e)
            return False

    def disconnect(self):
        """Close the serial connection"""
        if self.serial_connection and self.serial_connection.is_open:
            self.serial_connection.close()
            logger.info("Disconnected from %s", self.port)

    def parse_csv_line(self, line: str) -> Optional[PositionSample]:
        """
        Parse a CSV line from the receiver.
        Expected format: timestamp,latitude,longitude,speed
        Example: 2025-10-19T06:30:15Z,25.0330,121.5654,1.25
        """
        parts = line.strip().split(",")
        if len(parts) != 4:
            return None
        try:
            return PositionSample(
                timestamp=parse_iso(parts[0]),
                latitude=float(parts[1]),
                longitude=float(parts[2]),
                speed=float(parts[3]),
            )
        except ValueError:
            # Header, status message or corrupted line
            return None

    def _dispatch(self, fix: PositionSample):
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(fix)

    def _read_loop(self):
        """Main reading loop - runs in separate thread"""
        logger.info("Serial reading started")

        while self.is_running:
            try:
                if self.serial_connection and self.serial_connection.in_waiting > 0:
                    line = self.serial_connection.readline().decode("utf-8", errors="ignore")
                    fix = self.parse_csv_line(line)
                    if fix:
                        self._dispatch(fix)
                else:
                    # Small delay to prevent busy waiting
                    time.sleep(0.05)

            except (serial.SerialException, OSError) as e:
                logger.error("Error reading from serial: %s", e)
                time.sleep(0.5)

        logger.info("Serial reading stopped")

    def start_reading(self) -> bool:
        """Start the background reading thread"""
        with self._reading_lock:
            if self.is_running:
                return True

            if not self.serial_connection or not self.serial_connection.is_open:
                if not self.connect():
                    logger.error("Failed to connect. Cannot start reading.")
                    return False

            self.is_running = True
            self.read_thread = threading.Thread(target=self._read_loop, daemon=True)
            self.read_thread.start()
            return True

    def stop_reading(self):
        """Stop the background reading thread"""
        self.is_running = False

        if self.read_thread:
            self.read_thread.join(timeout=2)
            self.read_thread = None

        self.disconnect()

    def _stop_if_idle(self):
        """Stop reading unless a new listener registered meanwhile. Blocks up to the read timeout."""
        with self._reading_lock:
            with self._listeners_lock:
                if self._listeners:
                    return
            self.stop_reading()

    def _add_listener(self, listener: Callable[[PositionSample], None]):
        with self._listeners_lock:
            self._listeners.append(listener)

    def _remove_listener(self, listener: Callable[[PositionSample], None]) -> int:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
            return len(self._listeners)

    async def stream(self, distance_filter_m: int = 0, accuracy: str = POSITION_ACCURACY) -> AsyncIterator[PositionSample]:
        """
        Yield fixes as they arrive, skipping those closer than
        distance_filter_m to the last delivered fix.
        The receiver has a single accuracy mode, so `accuracy` is advisory.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_fix(fix: PositionSample):
            loop.call_soon_threadsafe(queue.put_nowait, fix)

        self._add_listener(on_fix)
        if not self.start_reading():
            self._remove_listener(on_fix)
            raise StreamDeliveryError(f"Could not open {self.port}")

        logger.info("Position stream opened (distance filter %dm, accuracy %s)", distance_filter_m, accuracy)
        last_delivered: Optional[PositionSample] = None
        try:
            while True:
                fix = await queue.get()
                if not passes_distance_filter(last_delivered, fix, distance_filter_m):
                    continue
                last_delivered = fix
                yield fix
        finally:
            if self._remove_listener(on_fix) == 0:
                await asyncio.to_thread(self._stop_if_idle)
            logger.info("Position stream closed")

    async def current_position(self) -> PositionSample:
        """The next fix the receiver delivers. Fixes read before the call are never returned."""
        fixes = self.stream()
        try:
            return await fixes.__anext__()
        finally:
            await fixes.aclose()
