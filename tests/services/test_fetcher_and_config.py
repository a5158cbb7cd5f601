import httpx
import pytest

from lms_cache.core.config import Settings
from lms_cache.core.exceptions import CACHE_HIT, InvalidRowError, OfflineError, _CacheHit
from lms_cache.core.logging import build_logging_config
from lms_cache.schemas.note import Note
from lms_cache.services.backend import MemoryDataBackend
from lms_cache.services.connectivity import Connectivity
from lms_cache.services.fetcher import EntityFetcher
from lms_cache.store.definitions import build_definitions
from tests.helpers.fakes import CallCounter


def make_fetcher(backend, online=True):
    return EntityFetcher("notes", "notes", Note, backend, Connectivity(online=online),
                         columns="id,course_id,name,file_url,created_at", order=("created_at", True))


@pytest.mark.asyncio
async def test_cache_check_short_circuits_before_network():
    backend = MemoryDataBackend({"notes": [{"id": "n1", "course_id": "c1", "name": "a", "file_url": "u"}]})
    counter = CallCounter(backend.select)
    backend.select = counter
    fetcher = make_fetcher(backend)

    assert await fetcher.fetch_collection(cache_check=lambda: True) is CACHE_HIT
    assert counter.count() == 0

    rows = await fetcher.fetch_collection(cache_check=lambda: False)
    assert [note.id for note in rows.items] == ["n1"]
    assert counter.count() == 1
    assert counter.calls[0]["order"] == ("created_at", True)

@pytest.mark.asyncio
async def test_offline_check_comes_before_cache_check():
    checked = []
    fetcher = make_fetcher(MemoryDataBackend(), online=False)

    with pytest.raises(OfflineError) as exc:
        await fetcher.fetch_collection(cache_check=lambda: checked.append(True) or True)
    assert exc.value.reason == "You are offline"
    assert checked == []

@pytest.mark.asyncio
async def test_invalid_returned_row_raises():
    backend = MemoryDataBackend()
    fetcher = make_fetcher(backend)

    with pytest.raises(InvalidRowError):
        await fetcher.create({"course_id": "c1"})
    with pytest.raises(InvalidRowError):
        fetcher.validate_row(None)

def test_cache_hit_sentinel_is_falsy_singleton():
    assert _CacheHit() is CACHE_HIT
    assert not CACHE_HIT
    assert repr(CACHE_HIT) == "CACHE_HIT"

@pytest.mark.asyncio
async def test_connectivity_probe():
    connectivity = Connectivity()
    ok = await connectivity.probe("https://backend.test", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    assert ok is True

    def unreachable(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert await connectivity.probe("https://backend.test", transport=httpx.MockTransport(unreachable)) is False
    assert connectivity.is_online() is False

def test_definitions_follow_cache_config():
    definitions = build_definitions(Settings(CACHE_EXPIRY_OVERRIDES={"notes": 30}))

    assert set(definitions) == {"courses", "enrollments", "quizzes", "live_sessions", "notes", "users"}
    assert definitions["enrollments"].cache_expiry == 180
    assert definitions["enrollments"].scope_field == "user_id"
    assert definitions["enrollments"].table == "course_enrollments"
    assert definitions["quizzes"].table == "quizes"
    assert definitions["notes"].cache_expiry == 30
    assert definitions["live_sessions"].optimistic is True
    assert definitions["live_sessions"].prepend_on_create is True
    assert definitions["live_sessions"].index_fields == ("course_id", "status")
    assert definitions["quizzes"].optimistic is False

def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("CACHE_EXPIRY_OVERRIDES", '{"courses": 5}')
    monkeypatch.setenv("CACHE_ENABLED", "false")

    config = Settings()

    assert config.CACHE_EXPIRY_OVERRIDES == {"courses": 5}
    assert config.CACHE_ENABLED is False
    assert all(d.cache_expiry == 0 for d in build_definitions(config).values())

def test_logging_config_adds_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "cache.log"
    config = build_logging_config("debug", str(log_file))

    assert config["handlers"]["file"]["filename"] == str(log_file)
    assert config["loggers"]["lms_cache"]["level"] == "DEBUG"
    assert config["loggers"]["lms_cache"]["handlers"] == ["console", "file"]
    assert log_file.parent.exists()

def test_logging_config_defaults_to_console_only():
    config = build_logging_config("info", None)
    assert "file" not in config["handlers"]
    assert config["root"]["handlers"] == ["console"]
