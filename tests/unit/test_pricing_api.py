import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from crash_console.core.errors import RemoteError, TransientNetworkError
from crash_console.infrastructure.pricing_api import (
    BranchDirectoryClient,
    PricingApiClient,
    PricingServiceClient,
    format_api_error,
)

BASE_URL = "https://pricing.example.test/api"


def make_api(handler, token="secret-token"):
    return PricingApiClient(BASE_URL, token=token, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_branches_maps_backend_fields():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": [
                    {"_id": "b1", "name": "Downtown", "marketCrashActive": True, "slug": "dt"},
                    {"_id": "b2", "name": "Uptown"},
                ],
            },
        )

    branches = await BranchDirectoryClient(make_api(handler)).list_branches()

    assert seen["url"] == f"{BASE_URL}/branches"
    assert seen["auth"] == "Bearer secret-token"
    assert [(b.branch_id, b.name, b.active) for b in branches] == [
        ("b1", "Downtown", True),
        ("b2", "Uptown", False),
    ]


@pytest.mark.asyncio
async def test_get_branch_treats_naive_times_as_utc_and_defaults_duration():
    def handler(request: httpx.Request):
        assert request.url.path == "/api/branches/b1"
        return httpx.Response(
            200,
            json={
                "data": {
                    "_id": "b1",
                    "name": "Downtown",
                    "marketCrashActive": True,
                    "marketCrashStartTime": "2024-03-01T18:00:00",
                    "marketCrashPercentage": 35,
                }
            },
        )

    state = await BranchDirectoryClient(make_api(handler, token=None)).get_branch("b1")

    start = datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)
    assert state.active
    assert state.start_time == start
    assert state.end_time is None
    assert state.duration_minutes == 15
    assert state.intensity_percent == 35
    assert state.effective_end_time == start + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_get_branch_with_malformed_payload_is_remote_error():
    def handler(request: httpx.Request):
        return httpx.Response(200, json={"data": {"name": "no id"}})

    with pytest.raises(RemoteError) as exc:
        await BranchDirectoryClient(make_api(handler)).get_branch("b1")
    assert exc.value.message == "Unexpected branch data from the pricing service."


@pytest.mark.asyncio
async def test_trigger_posts_percentage_and_duration():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "message": "Market crash triggered successfully"})

    result = await PricingServiceClient(make_api(handler)).trigger_crash("b1", 35, 30)

    assert seen == {
        "method": "POST",
        "path": "/api/branches/b1/market-crash",
        "body": {"percentage": 35, "duration": 30},
    }
    assert result.message == "Market crash triggered successfully"
    assert result.reset_count is None


@pytest.mark.asyncio
async def test_end_surfaces_reset_count():
    def handler(request: httpx.Request):
        assert request.url.path == "/api/branches/b1/market-crash/end"
        return httpx.Response(200, json={"message": "Market crash ended", "data": {"resetCount": 7}})

    result = await PricingServiceClient(make_api(handler)).end_crash("b1")

    assert result.reset_count == 7
    assert result.data == {"resetCount": 7}


@pytest.mark.asyncio
async def test_error_status_uses_backend_message():
    def handler(request: httpx.Request):
        return httpx.Response(400, json={"success": False, "message": "Market crash already active"})

    with pytest.raises(RemoteError) as exc:
        await PricingServiceClient(make_api(handler)).trigger_crash("b1", 50, 15)
    assert exc.value.message == "Market crash already active"
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_server_error_without_body():
    def handler(request: httpx.Request):
        return httpx.Response(502, text="")

    with pytest.raises(RemoteError) as exc:
        await BranchDirectoryClient(make_api(handler)).list_branches()
    assert exc.value.message == "A server error occurred. Please try again later."


@pytest.mark.asyncio
async def test_success_false_with_ok_status_is_remote_error():
    def handler(request: httpx.Request):
        return httpx.Response(200, json={"success": False, "error": "Branch is archived"})

    with pytest.raises(RemoteError) as exc:
        await PricingServiceClient(make_api(handler)).end_crash("b1")
    assert exc.value.message == "Branch is archived"


@pytest.mark.asyncio
async def test_non_json_body_is_remote_error():
    def handler(request: httpx.Request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(RemoteError):
        await BranchDirectoryClient(make_api(handler)).list_branches()


@pytest.mark.asyncio
async def test_connection_failure_is_transient():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientNetworkError) as exc:
        await BranchDirectoryClient(make_api(handler)).list_branches()
    assert exc.value.message == "Network error. Please check your internet connection."


@pytest.mark.asyncio
async def test_timeout_is_transient():
    def handler(request: httpx.Request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(TransientNetworkError) as exc:
        await PricingServiceClient(make_api(handler)).end_crash("b1")
    assert "did not respond in time" in exc.value.message


@pytest.mark.parametrize(
    "status, payload, expected",
    [
        (400, None, "Invalid request. Please check your data and try again."),
        (401, {}, "Your session has expired. Please sign in again."),
        (403, None, "You do not have permission to perform this action."),
        (404, None, "The requested resource was not found."),
        (503, None, "A server error occurred. Please try again later."),
        (418, None, "Error 418: An unexpected error occurred."),
        (404, {"message": "Branch not found"}, "Branch not found"),
        (500, {"message": "   "}, "A server error occurred. Please try again later."),
    ],
)
def test_format_api_error(status, payload, expected):
    assert format_api_error(status, payload) == expected


def corrupt_gzip_response(request: httpx.Request):
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip")


@pytest.mark.asyncio
async def test_undecodable_body_is_transient():
    with pytest.raises(TransientNetworkError) as exc:
        await BranchDirectoryClient(make_api(corrupt_gzip_response)).get_branch("b1")
    assert exc.value.message == "The pricing service sent an unreadable response. Please try again."


@pytest.mark.asyncio
async def test_null_branch_name_does_not_fail_the_list():
    def handler(request: httpx.Request):
        return httpx.Response(
            200,
            json={
                "data": [
                    {"_id": "b1", "name": None, "marketCrashActive": True},
                    {"_id": "b2", "name": "Uptown", "marketCrashActive": False},
                ]
            },
        )

    branches = await BranchDirectoryClient(make_api(handler)).list_branches()

    assert [(b.branch_id, b.name, b.active) for b in branches] == [
        ("b1", "", True),
        ("b2", "Uptown", False),
    ]
