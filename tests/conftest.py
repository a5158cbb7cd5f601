import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
from fastapi.testclient import TestClient

from lms_cache.core.config import Settings
from lms_cache.services.backend import MemoryDataBackend
from lms_cache.services.connectivity import Connectivity
from lms_cache.services.snapshot import MemorySnapshotBackend
from lms_cache.store.container import create_container
from tests.helpers.fakes import CallCounter, FakeClock

SEED_TABLES = {
    "courses": [
        {"id": "c1", "title": "Intro to Options", "level": "beginner", "is_active": True,
         "enrollments": [{"count": 2}]},
        {"id": "c2", "title": "Risk Management", "level": "advanced", "is_active": True,
         "enrollments": [{"count": 1}]},
    ],
    "course_enrollments": [
        {"id": "e1", "user_id": "u1", "course_id": "c1", "progress": 50, "completed_lessons": ["l1"]},
        {"id": "e2", "user_id": "u1", "course_id": "c2", "progress": 0},
        {"id": "e3", "user_id": "u2", "course_id": "c1", "progress": 10},
    ],
    "live_sessions": [
        {"id": "ls1", "course_id": "c1", "title": "Greeks walkthrough", "status": "scheduled",
         "start_time": "2026-01-10T10:00:00+00:00", "instructor_id": "u2"},
        {"id": "ls2", "course_id": "c2", "title": "Hedging Q&A", "status": "live",
         "start_time": "2026-01-12T10:00:00+00:00", "instructor_id": "u2"},
    ],
    "quizes": [
        {"id": "q1", "title": "Options basics", "course_id": "c1", "courseName": "Intro to Options",
         "timeLimit": 15, "passingScore": 70, "isPublished": True, "questions": []},
    ],
    "notes": [
        {"id": "n1", "course_id": "c1", "name": "Week 1 slides", "file_url": "https://files.test/n1.pdf",
         "created_at": "2026-01-01T09:00:00+00:00"},
        {"id": "n2", "course_id": "c2", "name": "Hedging cheatsheet", "file_url": "https://files.test/n2.pdf",
         "created_at": "2026-01-02T09:00:00+00:00"},
    ],
    "users": [
        {"id": "u1", "email": "learner@test.com", "name": "Ada Learner", "role": "learner"},
        {"id": "u2", "email": "teacher@test.com", "name": "Tom Teacher", "role": "teacher"},
    ],
}


@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def connectivity():
    return Connectivity(online=True)

@pytest.fixture
def backend():
    return MemoryDataBackend(SEED_TABLES, auth_user={"id": "u1", "email": "learner@test.com",
                                                    "user_metadata": {"name": "Ada Learner"}})

@pytest.fixture
def snapshots():
    return MemorySnapshotBackend()

@pytest.fixture
def test_settings():
    return Settings(SUPABASE_URL="", REDIS_URL=None, CACHE_ENABLED=True, CACHE_EXPIRY_OVERRIDES={})

@pytest.fixture
def container(test_settings, backend, connectivity, snapshots, clock):
    return create_container(test_settings, backend=backend, connectivity=connectivity,
                            snapshots=snapshots, clock=clock)

@pytest.fixture
def select_calls(backend, monkeypatch):
    counter = CallCounter(backend.select)
    monkeypatch.setattr(backend, "select", counter)
    return counter

@pytest.fixture
def client(container):
    import main
    app = main.create_app(container)
    with TestClient(app) as test_client:
        yield test_client
