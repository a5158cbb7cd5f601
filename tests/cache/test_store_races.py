import asyncio
import pytest

from lms_cache.core.constants import FetchStatus
from lms_cache.core.exceptions import RemoteFailure
from lms_cache.schemas.course import CourseCreate, CourseUpdate


def gated(monkeypatch, backend, method):
    gate = asyncio.Event()
    original = getattr(backend, method)

    async def wrapper(*args, **kwargs):
        await gate.wait()
        return await original(*args, **kwargs)

    monkeypatch.setattr(backend, method, wrapper)
    return gate


@pytest.mark.asyncio
async def test_fetch_resolving_after_reset_is_discarded(container, backend, monkeypatch):
    gate = gated(monkeypatch, backend, "select")

    task = asyncio.create_task(container.enrollments.fetch("u1"))
    await asyncio.sleep(0)
    container.reset()
    gate.set()
    result = await task

    assert result.status is FetchStatus.DISCARDED
    entry = container.enrollments.entry
    assert entry.collection == []
    assert entry.loaded is False
    assert entry.loading is False
    assert entry.scope_key is None

@pytest.mark.asyncio
async def test_superseded_fetch_does_not_overwrite_newer_scope(container, backend, monkeypatch):
    gate = gated(monkeypatch, backend, "select")

    first = asyncio.create_task(container.enrollments.fetch("u1"))
    await asyncio.sleep(0)
    # A reset lets a fetch for another user start while the first is pending
    container.enrollments.reset()
    monkeypatch.undo()
    second = await container.enrollments.fetch("u2")

    gate.set()
    stale = await first

    assert second.status is FetchStatus.FETCHED
    assert stale.status is FetchStatus.DISCARDED
    assert container.enrollments.entry.scope_key == "u2"
    assert [e.id for e in container.enrollments.collection] == ["e3"]

@pytest.mark.asyncio
async def test_mutation_resolving_after_reset_is_dropped(container, backend, monkeypatch):
    await container.courses.fetch()
    gate = gated(monkeypatch, backend, "insert")

    task = asyncio.create_task(container.courses.create(CourseCreate(title="Late course")))
    await asyncio.sleep(0)
    container.reset()
    gate.set()
    created = await task

    assert created.title == "Late course"
    assert container.courses.collection == []
    assert container.courses.get(created.id) is None

@pytest.mark.asyncio
async def test_failure_after_reset_is_not_recorded(container, backend, monkeypatch):
    gate = asyncio.Event()

    async def failing_select(*args, **kwargs):
        await gate.wait()
        raise RemoteFailure("boom")

    monkeypatch.setattr(backend, "select", failing_select)
    task = asyncio.create_task(container.users.fetch())
    await asyncio.sleep(0)
    container.reset()
    gate.set()
    result = await task

    assert result.status is FetchStatus.DISCARDED
    assert container.users.entry.error is None

@pytest.mark.asyncio
async def test_current_user_lookup_after_reset_is_dropped(container, backend, monkeypatch):
    gate = gated(monkeypatch, backend, "get_auth_user")

    task = asyncio.create_task(container.session.fetch_current_user())
    await asyncio.sleep(0)
    container.reset()
    gate.set()

    assert await task is None
    assert container.session.user is None
    assert container.session.loaded is False

@pytest.mark.asyncio
async def test_unexpected_backend_error_does_not_leave_store_loading(container, backend, monkeypatch):
    async def broken_select(*args, **kwargs):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")

    monkeypatch.setattr(backend, "select", broken_select)
    with pytest.raises(ValueError):
        await container.courses.fetch()

    entry = container.courses.entry
    assert entry.loading is False
    assert entry.error == "Expecting value: line 1 column 1 (char 0)"

    monkeypatch.undo()
    result = await container.courses.fetch()
    assert result.status is FetchStatus.FETCHED
    assert entry.error is None

@pytest.mark.asyncio
async def test_cancelled_fetch_releases_loading(container, backend, monkeypatch):
    gated(monkeypatch, backend, "select")

    task = asyncio.create_task(container.courses.fetch())
    await asyncio.sleep(0)
    assert container.courses.entry.loading is True

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert container.courses.entry.loading is False
    assert container.courses.entry.error is None

    monkeypatch.undo()
    result = await container.courses.fetch()
    assert result.status is FetchStatus.FETCHED
    assert len(result.items) == 2

@pytest.mark.asyncio
async def test_cancelled_partition_fetch_releases_loading(container, backend, monkeypatch):
    gated(monkeypatch, backend, "select")

    task = asyncio.create_task(container.live_sessions.fetch_partition("course_id", "c1"))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    monkeypatch.undo()
    result = await container.live_sessions.fetch_partition("course_id", "c1")
    assert result.status is FetchStatus.FETCHED
    assert [s.id for s in result.items] == ["ls1"]

@pytest.mark.asyncio
async def test_cancel_after_reset_leaves_newer_fetch_loading(container, backend, monkeypatch):
    gated(monkeypatch, backend, "select")

    stale = asyncio.create_task(container.courses.fetch())
    await asyncio.sleep(0)
    container.courses.reset()
    fresh = asyncio.create_task(container.courses.fetch())
    await asyncio.sleep(0)

    stale.cancel()
    with pytest.raises(asyncio.CancelledError):
        await stale
    assert container.courses.entry.loading is True

    fresh.cancel()
    with pytest.raises(asyncio.CancelledError):
        await fresh
    assert container.courses.entry.loading is False

@pytest.mark.asyncio
async def test_cancelled_optimistic_update_is_reverted(container, backend, monkeypatch):
    await container.courses.fetch()
    gated(monkeypatch, backend, "update")

    task = asyncio.create_task(container.courses.update("c1", CourseUpdate(title="Options II")))
    await asyncio.sleep(0)
    assert container.courses.get("c1").title == "Options II"

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert container.courses.get("c1").title == "Intro to Options"
