from __future__ import annotations

import json

import httpx
import pytest

from conftest import SpyStore
from nora_today.core.errors import (
    ERROR_MESSAGES,
    AnalysisFailedError,
    AnalysisPendingError,
    ApiError,
    LessonNotFoundError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    user_message_for,
)
from nora_today.core.resilience import CircuitState, get_breaker
from nora_today.schemas.remote import ProgressStatus
from nora_today.services.auth import ACCESS_TOKEN_KEY, AuthService
from nora_today.services.base import build_http_client
from nora_today.services.lessons import LessonService
from nora_today.services.recordings import RecordingService

LESSON_DETAIL = {
    "lesson": {
        "id": "l1",
        "title": "Labelled praise",
        "segments": [{"id": "s1", "bodyText": "a"}, {"id": "s2", "bodyText": "b"}],
        "quiz": {"id": "q1", "question": "Which one?"},
    },
    "userProgress": {"status": "IN_PROGRESS", "currentSegment": 2, "timeSpentSeconds": 40},
}


def _client(test_settings, handler) -> httpx.AsyncClient:
    return build_http_client(test_settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_lessons_parse_camel_case_and_send_bearer(test_settings):
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "lessons": [
                    {
                        "id": "l1",
                        "title": "Day 1",
                        "dayNumber": 1,
                        "isLocked": False,
                        "progress": {"status": "COMPLETED", "completedAt": "2025-03-12T01:00:00Z"},
                    }
                ],
                "contentVersion": "2025-03-01",
            },
        )

    client = _client(test_settings, handler)
    auth = AuthService(client, SpyStore({ACCESS_TOKEN_KEY: "secret-token"}))
    await auth.init()
    service = LessonService(client, auth)

    response = await service.get_lessons(module="FOUNDATION")

    assert seen["auth"] == "Bearer secret-token"
    assert seen["params"] == {"module": "FOUNDATION"}
    assert response.content_version == "2025-03-01"
    assert response.lessons[0].is_completed is True
    assert response.lessons[0].day_number == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_lesson_detail_and_not_found(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/l1"):
            return httpx.Response(200, json=LESSON_DETAIL)
        return httpx.Response(404, json={"error": "Lesson not found"})

    client = _client(test_settings, handler)
    service = LessonService(client)

    detail = await service.get_lesson_detail("l1")
    assert detail.total_segments == 3
    assert detail.user_progress.current_segment == 2

    with pytest.raises(LessonNotFoundError) as excinfo:
        await service.get_lesson_detail("gone")
    assert excinfo.value.lesson_id == "gone"
    assert excinfo.value.status == 404
    await client.aclose()


@pytest.mark.asyncio
async def test_update_progress_sends_camel_case_body(test_settings):
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        if request.url.path == "/api/lessons/gone/progress":
            return httpx.Response(404, json={"error": "Lesson not found"})
        return httpx.Response(200, json={"progress": {"status": "COMPLETED", "currentSegment": 3}})

    client = _client(test_settings, handler)
    service = LessonService(client)

    progress = await service.update_progress("l1", current_segment=3, time_spent_seconds=90, status=ProgressStatus.COMPLETED)
    assert progress.status == ProgressStatus.COMPLETED
    assert bodies[0] == {"currentSegment": 3, "timeSpentSeconds": 90, "status": "COMPLETED"}

    with pytest.raises(LessonNotFoundError):
        await service.update_progress("gone", current_segment=1)
    assert bodies[1] == {"currentSegment": 1, "timeSpentSeconds": 0}
    await client.aclose()


@pytest.mark.asyncio
async def test_analysis_status_mapping(test_settings):
    responses = {
        "/api/recordings/ready/analysis": httpx.Response(
            200, json={"id": "ready", "status": "completed", "noraScore": 25, "encouragement": "Well done"}
        ),
        "/api/recordings/pending/analysis": httpx.Response(202, json={"status": "processing"}),
        "/api/recordings/failed/analysis": httpx.Response(500, json={"error": "Analysis failed"}),
        "/api/recordings/broken/analysis": httpx.Response(500, json={"error": "Database unavailable"}),
    }

    client = _client(test_settings, lambda request: responses[request.url.path])
    service = RecordingService(client)

    analysis = await service.get_analysis("ready")
    assert analysis.nora_score == 25
    with pytest.raises(AnalysisPendingError):
        await service.get_analysis("pending")
    with pytest.raises(AnalysisFailedError):
        await service.get_analysis("failed")
    with pytest.raises(ApiError) as excinfo:
        await service.get_analysis("broken")
    assert excinfo.value.is_server_error()
    await client.aclose()


@pytest.mark.asyncio
async def test_dashboard_payload(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/recordings/dashboard"
        return httpx.Response(
            200,
            json={
                "todayRecordings": [{"id": "r2", "createdAt": "2025-03-12T01:00:00Z"}],
                "thisWeekRecordings": [
                    {"id": "r2", "createdAt": "2025-03-12T01:00:00Z"},
                    {"id": "r1", "createdAt": "2025-03-11T01:00:00Z"},
                ],
                "latestWithReport": {"id": "r2", "createdAt": "2025-03-12T01:00:00Z"},
            },
        )

    client = _client(test_settings, handler)
    dashboard = await RecordingService(client).get_dashboard()

    assert [r.id for r in dashboard.this_week_recordings] == ["r2", "r1"]
    assert dashboard.latest_with_report.id == "r2"
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_failures_retry_then_open_breaker(test_settings):
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(test_settings, handler)
    service = RecordingService(client, max_retries=2, base_delay_seconds=0)

    for _ in range(4):
        with pytest.raises(RemoteUnavailableError):
            await service.get_recordings()

    assert attempts["count"] == 8
    assert get_breaker("remote:recordings").state == CircuitState.OPEN
    with pytest.raises(RemoteUnavailableError):
        await service.get_recordings()
    assert attempts["count"] == 8
    await client.aclose()


@pytest.mark.asyncio
async def test_current_user_and_token_persistence(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers.get("authorization") != "Bearer t1":
            return httpx.Response(401, json={"error": "Unauthorized"})
        return httpx.Response(200, json={"user": {"id": "u1", "email": "parent@example.com", "childName": "Mia"}})

    store = SpyStore()
    client = _client(test_settings, handler)
    auth = AuthService(client, store)

    with pytest.raises(ApiError) as excinfo:
        await auth.get_current_user()
    assert excinfo.value.status == 401

    await auth.set_access_token("t1")
    assert store.data[ACCESS_TOKEN_KEY] == "t1"
    user = await auth.get_current_user()
    assert user.child_name == "Mia"

    await auth.set_access_token(None)
    assert ACCESS_TOKEN_KEY not in store.data
    assert auth.is_authenticated() is False
    await client.aclose()


@pytest.mark.asyncio
async def test_modules_and_client_errors(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/modules":
            return httpx.Response(
                200,
                json={"modules": [{"key": "FOUNDATION", "title": "Foundation", "lessonCount": 5, "completedLessons": 2}]},
            )
        return httpx.Response(400, json={"error": "Invalid module", "code": "VALIDATION_ERROR"})

    client = _client(test_settings, handler)
    service = LessonService(client)

    modules = await service.get_modules()
    assert modules.modules[0].lesson_count == 5

    with pytest.raises(ApiError) as excinfo:
        await service.get_lessons(module="NOPE")
    assert excinfo.value.is_client_error()
    assert excinfo.value.code == "VALIDATION_ERROR"
    assert excinfo.value.message == "Invalid module"
    await client.aclose()


@pytest.mark.asyncio
async def test_unreadable_bodies_become_api_errors(test_settings):
    responses = {
        "/api/lessons": httpx.Response(200, text="<html>captive portal</html>"),
        "/api/lessons/l1": httpx.Response(200, json={"lesson": {"title": "no id"}}),
        "/api/recordings/r1/analysis": httpx.Response(200, json={"status": "completed", "noraScore": 20}),
        "/api/recordings/r2/analysis": httpx.Response(200, text="<html>gateway</html>"),
    }
    client = _client(test_settings, lambda request: responses[request.url.path])
    lessons = LessonService(client)
    recordings = RecordingService(client)

    with pytest.raises(ApiError) as excinfo:
        await lessons.get_lessons()
    assert excinfo.value.code == "INVALID_RESPONSE"
    assert excinfo.value.status == 200
    assert user_message_for(excinfo.value) == ERROR_MESSAGES["SERVER_ERROR"]

    with pytest.raises(ApiError):
        await lessons.get_lesson_detail("l1")
    assert get_breaker("remote:lessons").failure_count == 2

    for recording_id in ("r1", "r2"):
        with pytest.raises(ApiError) as excinfo:
            await recordings.get_analysis(recording_id)
        assert excinfo.value.code == "INVALID_RESPONSE"
    await client.aclose()


@pytest.mark.asyncio
async def test_timeouts_map_to_timeout_message(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    client = _client(test_settings, handler)
    service = RecordingService(client, max_retries=1, base_delay_seconds=0)

    with pytest.raises(RemoteTimeoutError) as excinfo:
        await service.get_dashboard()
    assert isinstance(excinfo.value, RemoteUnavailableError)
    assert user_message_for(excinfo.value) == ERROR_MESSAGES["TIMEOUT"]
    assert user_message_for(RemoteUnavailableError("offline")) == ERROR_MESSAGES["NETWORK"]
    await client.aclose()
