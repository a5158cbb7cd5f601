import json
import httpx
import pytest

from lms_cache.core.constants import FetchStatus
from lms_cache.core.exceptions import RemoteFailure
from lms_cache.services.backend import SupabaseBackend
from lms_cache.store.container import create_container

BASE_URL = "https://project.supabase.test"


class Recorder:
    def __init__(self, responder):
        self.responder = responder
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


def make_backend(responder, access_token="user-jwt"):
    recorder = Recorder(responder)
    backend = SupabaseBackend(BASE_URL, "anon-key", access_token=access_token,
                              transport=httpx.MockTransport(recorder))
    return backend, recorder


@pytest.mark.asyncio
async def test_select_builds_postgrest_query():
    backend, recorder = make_backend(lambda request: httpx.Response(200, json=[{"id": "ls1"}]))

    rows = await backend.select("live_sessions", "*,instructor:users(name)", filters={"course_id": "c1"},
                                order=("start_time", True))

    assert rows == [{"id": "ls1"}]
    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/live_sessions"
    assert request.url.params["select"] == "*,instructor:users(name)"
    assert request.url.params["course_id"] == "eq.c1"
    assert request.url.params["order"] == "start_time.desc"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer user-jwt"
    await backend.close()

@pytest.mark.asyncio
async def test_anon_key_is_used_as_bearer_without_session():
    backend, recorder = make_backend(lambda request: httpx.Response(200, json=[]), access_token=None)

    assert await backend.select("courses") == []
    assert recorder.requests[0].headers["authorization"] == "Bearer anon-key"
    await backend.close()

@pytest.mark.asyncio
async def test_insert_requests_single_representation():
    def responder(request):
        body = json.loads(request.content)
        return httpx.Response(201, json={**body[0], "id": "c9"})

    backend, recorder = make_backend(responder)
    row = await backend.insert("courses", {"title": "New"})

    assert row == {"title": "New", "id": "c9"}
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["prefer"] == "return=representation"
    assert request.headers["accept"] == SupabaseBackend.OBJECT_MEDIA_TYPE
    await backend.close()

@pytest.mark.asyncio
async def test_update_and_delete_filter_by_eq():
    backend, recorder = make_backend(
        lambda request: httpx.Response(200, json={"id": "e1", "progress": 40})
        if request.method == "PATCH" else httpx.Response(204)
    )

    row = await backend.update("course_enrollments", {"user_id": "u1", "course_id": "c1"}, {"progress": 40})
    await backend.delete("notes", {"id": "n1"})

    assert row["progress"] == 40
    patch, delete = recorder.requests
    assert patch.method == "PATCH"
    assert patch.url.params["user_id"] == "eq.u1"
    assert patch.url.params["course_id"] == "eq.c1"
    assert json.loads(patch.content) == {"progress": 40}
    assert delete.method == "DELETE"
    assert delete.url.params["id"] == "eq.n1"
    await backend.close()

@pytest.mark.asyncio
async def test_http_error_surfaces_backend_message():
    backend, _ = make_backend(lambda request: httpx.Response(
        409, json={"code": "23505", "message": "duplicate key value violates unique constraint"}
    ))

    with pytest.raises(RemoteFailure) as exc:
        await backend.insert("courses", {"id": "c1"})

    assert exc.value.reason == "duplicate key value violates unique constraint"
    assert exc.value.status_code == 409
    await backend.close()

@pytest.mark.asyncio
async def test_network_error_becomes_remote_failure():
    def responder(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend, _ = make_backend(responder)

    with pytest.raises(RemoteFailure) as exc:
        await backend.select("courses")

    assert exc.value.reason.startswith("Network error:")
    assert exc.value.status_code is None
    await backend.close()

@pytest.mark.asyncio
async def test_select_one_rejects_multiple_rows():
    backend, _ = make_backend(lambda request: httpx.Response(200, json=[{"id": "q1"}, {"id": "q2"}]))

    with pytest.raises(RemoteFailure):
        await backend.select_one("quizes", filters={"course_id": "c1"})
    await backend.close()

@pytest.mark.asyncio
async def test_auth_user_requires_session():
    backend, recorder = make_backend(lambda request: httpx.Response(200, json={"id": "u1"}), access_token=None)
    assert await backend.get_auth_user() is None
    assert recorder.requests == []
    await backend.close()

    backend, recorder = make_backend(lambda request: httpx.Response(200, json={"id": "u1", "email": "a@test.com"}))
    assert (await backend.get_auth_user())["email"] == "a@test.com"
    assert recorder.requests[0].url.path == "/auth/v1/user"
    await backend.close()

@pytest.mark.asyncio
async def test_store_fetch_over_rest(test_settings, connectivity, clock):
    def responder(request):
        return httpx.Response(200, json=[
            {"id": 1, "title": "Intro to Options", "enrollments": [{"count": 4}]},
            {"id": 2, "title": None},
        ])

    backend, recorder = make_backend(responder)
    container = create_container(test_settings, backend=backend, connectivity=connectivity, clock=clock)

    result = await container.courses.fetch()

    assert result.status is FetchStatus.FETCHED
    assert [course.id for course in result.items] == ["1"]
    assert container.courses.get("1").enrollment_count == 4
    assert len(container.courses.entry.quarantined) == 1
    assert recorder.requests[0].url.params["select"] == "*,enrollments:course_enrollments(count)"
    await backend.close()

@pytest.mark.asyncio
async def test_store_records_backend_reason_verbatim(test_settings, connectivity, clock):
    backend, _ = make_backend(lambda request: httpx.Response(401, json={"message": "JWT expired"}))
    container = create_container(test_settings, backend=backend, connectivity=connectivity, clock=clock)

    result = await container.enrollments.fetch("u1")

    assert result.status is FetchStatus.FAILED
    assert container.enrollments.entry.error == "JWT expired"
    await backend.close()

@pytest.mark.asyncio
async def test_non_json_body_fails_the_fetch_instead_of_jamming_it(test_settings, connectivity, clock):
    backend, recorder = make_backend(lambda request: httpx.Response(
        200, content=b"<html>gateway</html>", headers={"content-type": "text/html"}
    ))
    container = create_container(test_settings, backend=backend, connectivity=connectivity, clock=clock)

    with pytest.raises(RemoteFailure) as exc:
        await backend.select("courses")
    assert exc.value.reason == "Invalid JSON in response"
    assert exc.value.status_code == 200

    result = await container.quizzes.fetch()
    assert result.status is FetchStatus.FAILED
    assert container.quizzes.entry.loading is False
    assert container.quizzes.entry.error == "Invalid JSON in response"

    assert (await container.quizzes.fetch()).status is FetchStatus.FAILED
    assert len(recorder.requests) == 3
    await backend.close()
