"""
Shared fixtures for the Geo Tracker tests
"""

import pytest
from sqlalchemy.orm import sessionmaker

from geo_tracker.database import KeyValueStore, init_db, make_engine
from geo_tracker.permission import PermissionGate
from geo_tracker.preferences import ConfigStore, ConsentStore, SegmentStore
from geo_tracker.segmentation import SegmentationEngine
from geo_tracker.session import TrackingSessionController
from tests.fakes import FakeNotifier, FakePositionSource


@pytest.fixture
def db_engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def kv_store(session_factory):
    return KeyValueStore(session_factory)


@pytest.fixture
def config_store(kv_store):
    return ConfigStore(kv_store)


@pytest.fixture
def segment_store(kv_store):
    return SegmentStore(kv_store)


@pytest.fixture
def consent_store(kv_store):
    return ConsentStore(kv_store)


@pytest.fixture
def source():
    return FakePositionSource()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def engine(source, segment_store, notifier):
    return SegmentationEngine(source, segment_store, notifier)


@pytest.fixture
def controller(config_store, segment_store, consent_store, source, engine):
    return TrackingSessionController(
        config_store=config_store,
        segment_store=segment_store,
        consent_store=consent_store,
        permission_gate=PermissionGate(source),
        engine=engine,
    )
