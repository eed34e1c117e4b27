import json

import httpx
import pytest

from secure_exam.client.api import (
    CONNECTION_ERROR, INVALID_RESPONSE, ApiError, ConnectivityError, ExamApiClient,
)
from secure_exam.client.config import ClientSettings, get_client_settings


@pytest.fixture
def client_settings():
    return ClientSettings(EXAM_API_BASE_URL="http://exam.test", EXAM_API_READ_RETRIES=3)


def make_client(client_settings, handler):
    return ExamApiClient(client_settings, transport=httpx.MockTransport(handler))


async def test_login_sends_camel_case_body(client_settings):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.read())
        return httpx.Response(200, json={"success": True, "data": {"sessionId": "abc"}})

    async with make_client(client_settings, handler) as api:
        data = await api.login("Asha Rao", "S001", "pw", degree="BSc", course="Physics")

    assert data == {"sessionId": "abc"}
    assert seen["path"] == "/api/session/login"
    assert seen["body"]["studentId"] == "S001"
    assert seen["body"]["examPassword"] == "pw"


async def test_domain_failure_is_api_error(client_settings):
    def handler(request):
        return httpx.Response(
            401, json={"success": False, "message": "Incorrect Exam Password.", "kind": "authentication_error"}
        )

    async with make_client(client_settings, handler) as api:
        with pytest.raises(ApiError) as info:
            await api.login("Asha Rao", "S001", "bad")

    assert info.value.status_code == 401
    assert info.value.kind == "authentication_error"
    assert info.value.message == "Incorrect Exam Password."


async def test_error_without_message_uses_fallback(client_settings):
    async with make_client(client_settings, lambda r: httpx.Response(500, json={"success": False})) as api:
        with pytest.raises(ApiError) as info:
            await api.submit("sid", {1: "A"})
    assert info.value.message.startswith("Submission Error")


async def test_unreachable_server_is_connectivity_error(client_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(client_settings, handler) as api:
        with pytest.raises(ConnectivityError) as info:
            await api.report_violation("sid", "Tab switch detected")
    assert info.value.message == CONNECTION_ERROR


async def test_non_json_body_is_connectivity_error(client_settings):
    async with make_client(client_settings, lambda r: httpx.Response(502, text="<html>Bad Gateway</html>")) as api:
        with pytest.raises(ConnectivityError) as info:
            await api.login("Asha Rao", "S001", "pw")
    assert info.value.message == INVALID_RESPONSE


async def test_reads_are_retried(client_settings):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"success": True, "data": [{"id": 1}]})

    async with make_client(client_settings, handler) as api:
        questions = await api.fetch_questions("sid")

    assert questions == [{"id": 1}]
    assert calls == ["/api/session/sid/questions"] * 3


async def test_reads_give_up_after_configured_attempts(client_settings):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(client_settings, handler) as api:
        with pytest.raises(ConnectivityError):
            await api.status("sid")
    assert len(calls) == 3


async def test_writes_are_not_retried(client_settings):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(client_settings, handler) as api:
        with pytest.raises(ConnectivityError):
            await api.submit("sid", {1: "A", 2: ["A", "C"]})
    assert len(calls) == 1


async def test_submit_body_shape(client_settings):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.read())
        return httpx.Response(200, json={"success": True, "data": {"totalQuestions": 2}})

    async with make_client(client_settings, handler) as api:
        result = await api.submit("sid", {1: "A", 2: ("C", "A")})

    assert result == {"totalQuestions": 2}
    assert seen["body"] == {
        "answers": [
            {"questionId": 1, "selectedOption": "A"},
            {"questionId": 2, "selectedOption": ["C", "A"]},
        ]
    }


async def test_default_settings_come_from_the_environment(monkeypatch):
    monkeypatch.setenv("EXAM_API_BASE_URL", "http://env.test")
    get_client_settings.cache_clear()
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"success": True, "data": {"status": "IN_PROGRESS"}})

    try:
        async with ExamApiClient(transport=httpx.MockTransport(handler)) as api:
            assert api.settings is get_client_settings()
            await api.status("sid")
    finally:
        get_client_settings.cache_clear()

    assert seen == ["http://env.test/api/session/sid/status"]
