from __future__ import annotations

import hashlib
import hmac
import json

from fastapi.testclient import TestClient

from runtask import main as main_module
from runtask.signature import SIGNATURE_HEADER

SCENARIO_BODY = (
    b'{"access_token":"tok","stage":"pre_plan",'
    b'"configuration_version_download_url":"https://x/cfg",'
    b'"organization_name":"acme","workspace_name":"prod","run_id":"run-1",'
    b'"task_result_callback_url":"https://x/cb"}'
)


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_pre_plan_scenario(client: TestClient, platform, config) -> None:
    platform.route("GET", "https://x/cfg", content=b"\x1f\x8b config archive")
    platform.route("PATCH", "https://x/cb", 200)
    signature = hmac.new(b"abc123", SCENARIO_BODY, hashlib.sha512).hexdigest()

    response = client.post(
        "/",
        content=SCENARIO_BODY,
        headers={"Content-Type": "application/json", SIGNATURE_HEADER: signature},
    )

    assert response.status_code == 200
    assert (config.archive_dir / "config.tar.gz").read_bytes() == b"\x1f\x8b config archive"
    assert len(platform.calls("GET", "https://x/cfg")) == 1
    [patch] = platform.calls("PATCH", "https://x/cb")
    assert json.loads(patch.content) == {
        "data": {
            "type": "task-results",
            "attributes": {
                "status": "passed",
                "message": "Hello World",
                "url": "http://example.com/runtask/QxZyl",
            },
        }
    }


def test_post_plan_follows_redirect_and_reports(post_signed, platform) -> None:
    platform.route("GET", "https://x/plan", 307, headers={"Location": "https://x/plan.json"})
    platform.route("GET", "https://x/plan.json", json={"planned_values": {}})
    platform.route("PATCH", "https://x/cb", 200)

    response = post_signed(
        {
            "access_token": "tok",
            "stage": "post_plan",
            "plan_json_api_url": "https://x/plan",
            "task_result_callback_url": "https://x/cb",
        }
    )

    assert response.status_code == 200
    assert len(platform.calls("GET", "https://x/plan")) == 1
    assert len(platform.calls("GET", "https://x/plan.json")) == 1
    assert len(platform.calls("PATCH", "https://x/cb")) == 1


def test_bad_signature_is_rejected_before_dispatch(client: TestClient, post_signed, monkeypatch) -> None:
    dispatched = []

    async def spy(*args, **kwargs):
        dispatched.append(args)

    monkeypatch.setattr(main_module, "run_in_background", spy)

    wrong_key = post_signed(SCENARIO_BODY, key="not-the-key")
    garbage = post_signed(SCENARIO_BODY, signature="deadbeef")
    missing = client.post("/", content=SCENARIO_BODY, headers={"Content-Type": "application/json"})

    assert [r.status_code for r in (wrong_key, garbage, missing)] == [401, 401, 401]
    assert dispatched == []


def test_signature_is_checked_over_raw_bytes(post_signed, platform) -> None:
    # Same JSON content, different whitespace: signed as sent, so it passes.
    body = b'{ "access_token" : "test-token",\n  "stage": "pre_plan" }'

    response = post_signed(body)

    assert response.status_code == 200
    assert platform.requests == []


def test_probe_returns_200_without_calls(post_signed, platform) -> None:
    for stage in ("pre_plan", "post_plan", "test"):
        response = post_signed(
            {
                "access_token": "test-token",
                "stage": stage,
                "configuration_version_download_url": "https://x/cfg",
                "plan_json_api_url": "https://x/plan",
                "task_result_callback_url": "https://x/cb",
            }
        )
        assert response.status_code == 200

    assert platform.requests == []


def test_unknown_stage_returns_200_without_calls(post_signed, platform) -> None:
    response = post_signed(
        {
            "access_token": "tok",
            "stage": "unknown_stage",
            "task_result_callback_url": "https://x/cb",
        }
    )

    assert response.status_code == 200
    assert platform.requests == []


def test_signed_non_object_body_is_acknowledged_only(post_signed, platform, monkeypatch) -> None:
    dispatched = []

    async def spy(*args, **kwargs):
        dispatched.append(args)

    monkeypatch.setattr(main_module, "run_in_background", spy)

    assert post_signed(b"not json").status_code == 200
    assert post_signed(b"[1, 2, 3]").status_code == 200
    assert dispatched == []
    assert platform.requests == []


def test_fetch_failure_still_acknowledged(post_signed, platform) -> None:
    platform.route("GET", "https://x/cfg", 404)
    platform.route("PATCH", "https://x/cb", 200)

    response = post_signed(
        {
            "access_token": "tok",
            "stage": "pre_plan",
            "configuration_version_download_url": "https://x/cfg",
            "task_result_callback_url": "https://x/cb",
        }
    )

    assert response.status_code == 200
    [patch] = platform.calls("PATCH", "https://x/cb")
    assert json.loads(patch.content)["data"]["attributes"]["status"] == "failed"


def test_deeply_nested_body_is_acknowledged_only(post_signed, platform, monkeypatch) -> None:
    dispatched = []

    async def spy(*args, **kwargs):
        dispatched.append(args)

    monkeypatch.setattr(main_module, "run_in_background", spy)
    depth = 200_000

    response = post_signed(b"[" * depth + b"]" * depth)

    assert response.status_code == 200
    assert dispatched == []
    assert platform.requests == []
