"""
FastAPI backend for the Geo Tracker service
Main application with the message transport and REST endpoints
"""

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from geo_tracker.config import API_HOST, API_PORT
from geo_tracker.database import KeyValueStore, SessionLocal, init_db
from geo_tracker.errors import LocationPermissionError, LocationServiceDisabledError
from geo_tracker.health import HealthSource, UnsupportedHealthSource
from geo_tracker.messages import (
    FaceOnKeyboardHealthHandler,
    FaceOnKeyboardLocationHandler,
    LocationHandler,
    MessageRouter,
)
from geo_tracker.models import ConfigUpdate, ConsentRequest, NotificationRecord, TrackingStatus
from geo_tracker.notifications import DatabaseNotifier
from geo_tracker.permission import PermissionGate
from geo_tracker.position_source import PositionSource, SerialPositionSource
from geo_tracker.preferences import ConfigStore, ConsentStore, SegmentStore
from geo_tracker.segmentation import SegmentationEngine
from geo_tracker.session import TrackingSessionController

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the endpoints talk to"""
    controller: TrackingSessionController
    router: MessageRouter
    notifier: DatabaseNotifier


def build_services(
    session_factory: sessionmaker = SessionLocal,
    source: Optional[PositionSource] = None,
    health_source: Optional[HealthSource] = None,
) -> Services:
    """Wire stores, gate, engine and controller together"""
    store = KeyValueStore(session_factory)
    source = source or SerialPositionSource()
    notifier = DatabaseNotifier(session_factory)
    segment_store = SegmentStore(store)

    controller = TrackingSessionController(
        config_store=ConfigStore(store),
        segment_store=segment_store,
        consent_store=ConsentStore(store),
        permission_gate=PermissionGate(source),
        engine=SegmentationEngine(source, segment_store, notifier),
    )
    router = MessageRouter([
        FaceOnKeyboardLocationHandler(controller),
        FaceOnKeyboardHealthHandler(health_source or UnsupportedHealthSource()),
        LocationHandler(controller),
    ])
    return Services(controller=controller, router=router, notifier=notifier)


def _permission_http_error(error: LocationPermissionError) -> HTTPException:
    if isinstance(error, LocationServiceDisabledError):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=403, detail=str(error))


def create_app(services: Optional[Services] = None, bind=None) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        logger.info("Starting Geo Tracker backend...")
        init_db(bind)
        await services.controller.initialize()

        yield

        logger.info("Shutting down...")
        await services.controller.shutdown()

    app = FastAPI(
        title="Geo Tracker API",
        description="Segments a live position stream into bounded travel history",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.services = services

    # Enable CORS for the embedded web view
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    controller = services.controller

    # ==================== API ENDPOINTS ====================

    @app.get("/")
    def root():
        """Root endpoint - API status"""
        return {
            "status": "running",
            "name": "Geo Tracker API",
            "version": "1.0.0",
            "tracking_active": controller.is_active,
        }

    @app.get("/api/status", response_model=TrackingStatus)
    def get_status():
        """Consent, subscription state, config and the open segment start"""
        return controller.status()

    @app.post("/api/messages/{name}")
    async def handle_message(name: str, request: Request):
        """
        Request/reply transport for the embedded web view.
        An empty body is a no-op request.
        """
        if name not in services.router:
            raise HTTPException(status_code=404, detail=f"Unknown message: {name}")

        body = await request.body()
        payload = None
        if body.strip():
            try:
                payload = json.loads(body)
            except ValueError:
                raise HTTPException(status_code=400, detail="Message body is not valid JSON")

        return await services.router.dispatch(name, payload)

    @app.post("/api/tracking/enable")
    async def enable_tracking(consent: ConsentRequest):
        """Enable background tracking. The body answers the consent prompt."""
        async def prompt() -> bool:
            return consent.accept

        try:
            enabled = await controller.ensure_enabled(prompt)
        except LocationPermissionError as e:
            raise _permission_http_error(e)
        return {"enabled": enabled}

    @app.post("/api/tracking/disable")
    async def disable_tracking():
        await controller.disable()
        return {"enabled": False}

    @app.get("/api/segments")
    def get_segments():
        return controller.load_segments()

    @app.delete("/api/segments")
    def clear_segments():
        controller.clear_segments()
        return {"message": "Segments cleared"}

    @app.get("/api/config")
    def get_config():
        return controller.current_config.to_storage_json()

    @app.put("/api/config")
    async def update_config(update: ConfigUpdate):
        config = await controller.update_config(
            segment_duration=(
                timedelta(seconds=update.segment_duration_seconds)
                if update.segment_duration_seconds is not None
                else None
            ),
            speed_threshold=update.speed_threshold_mps,
            distance_filter=update.distance_filter_meters,
        )
        return config.to_storage_json()

    @app.delete("/api/config")
    async def reset_config():
        await controller.clear_config()
        return controller.current_config.to_storage_json()

    @app.get("/api/position")
    async def get_position():
        """One-shot position read"""
        try:
            position = await controller.position()
        except LocationPermissionError as e:
            raise _permission_http_error(e)
        return position.to_json()

    @app.get("/api/notifications", response_model=List[NotificationRecord])
    def get_notifications(limit: int = 20):
        """Most recent notifications first"""
        return services.notifier.recent(limit)

    return app


app = create_app()


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logger.info("Geo Tracker - Backend Server")

    uvicorn.run(
        "geo_tracker.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=True
    )
