from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from errorlog.db.session import get_sessionmaker
from errorlog.services.capture import SYSTEM_WIDE_GALLERY_ID
from errorlog.services.error_service import ErrorService
from errorlog.services.notify import SmtpMailer


def _record(message: str, gallery_id: int) -> int:
    async def _run() -> int:
        try:
            raise RuntimeError(message)
        except RuntimeError as e:
            exc = e
        sessionmaker = get_sessionmaker()
        async with sessionmaker() as session:
            return await ErrorService(session).record(exc, gallery_id=gallery_id)

    return asyncio.run(_run())


def _crashing_client(client: TestClient) -> TestClient:
    async def boom(request_id: int) -> dict:
        raise LookupError(f"album {request_id} vanished")

    client.app.add_api_route("/boom/{request_id}", boom, methods=["GET", "POST"])
    return TestClient(client.app, raise_server_exceptions=False)


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}
    r = client.get("/readyz")
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "ready"}


def test_admin_key_is_required(client: TestClient) -> None:
    r = client.get("/v1/errors")
    assert r.status_code == 403, r.text
    assert r.json()["code"] == "AUTH_FORBIDDEN"

    r = client.get("/v1/errors", headers={"X-Admin-Key": "wrong"})
    assert r.status_code == 403, r.text


def test_admin_api_disabled_without_configured_key(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, admin_headers: dict[str, str]
) -> None:
    from errorlog.core.settings import get_settings

    monkeypatch.delenv("ERRORLOG_ADMIN_API_KEY")
    get_settings.cache_clear()

    r = client.get("/v1/errors", headers=admin_headers)
    assert r.status_code == 403, r.text


def test_list_and_filter_errors(client: TestClient, admin_headers: dict[str, str]) -> None:
    _record("g1", 1)
    _record("g2", 2)
    _record("sys", SYSTEM_WIDE_GALLERY_ID)

    r = client.get("/v1/errors", headers=admin_headers)
    assert r.status_code == 200, r.text
    assert [e["message"] for e in r.json()] == ["sys", "g2", "g1"]

    r = client.get("/v1/errors?gallery_id=1", headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert [e["message"] for e in body] == ["sys", "g1"]
    assert body[0]["system_wide"] is True
    assert body[0]["timestamp"].endswith("Z")
    assert body[1]["url"] == "<Missing data>"

    r = client.get(
        "/v1/errors?gallery_id=1&include_system=false", headers=admin_headers
    )
    assert [e["message"] for e in r.json()] == ["g1"]


def test_get_error_detail_and_report(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    error_id = _record("cannot render album", 4)

    r = client.get(f"/v1/errors/{error_id}", headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["app_error_id"] == error_id
    assert body["exception_type"] == "RuntimeError"
    fields = {f["name"]: f for f in body["fields"]}
    assert len(fields) == 21
    assert fields["MESSAGE"]["value"] == "cannot render album"
    assert fields["COOKIES"]["value"] == "<none>"

    r = client.get(f"/v1/errors/{error_id}/report", headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.headers["content-type"].startswith("text/html")
    assert "Error: cannot render album" in r.text

    r = client.get("/v1/errors/9999", headers=admin_headers)
    assert r.status_code == 404, r.text
    assert r.json()["code"] == "ERROR_NOT_FOUND"


def test_delete_and_clear_log(client: TestClient, admin_headers: dict[str, str]) -> None:
    first = _record("g1-a", 1)
    _record("g1-b", 1)
    _record("g2", 2)
    _record("sys", SYSTEM_WIDE_GALLERY_ID)

    r = client.delete(f"/v1/errors/{first}", headers=admin_headers)
    assert r.status_code == 204, r.text
    r = client.delete(f"/v1/errors/{first}", headers=admin_headers)
    assert r.status_code == 204, r.text

    r = client.delete("/v1/errors?gallery_id=1", headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"gallery_id": 1, "deleted": 2}

    r = client.get("/v1/errors", headers=admin_headers)
    assert [e["message"] for e in r.json()] == ["g2"]


def test_trim_endpoint(client: TestClient, admin_headers: dict[str, str]) -> None:
    for i in range(5):
        _record(f"e{i}", 1)

    r = client.post("/v1/errors/trim", json={"max_items": 2}, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"max_items": 2, "deleted": 3}

    r = client.get("/v1/errors", headers=admin_headers)
    assert [e["message"] for e in r.json()] == ["e4", "e3"]

    r = client.post("/v1/errors/trim", json={"max_items": -1}, headers=admin_headers)
    assert r.status_code == 422, r.text


def test_gallery_error_settings_round_trip(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    r = client.get("/v1/galleries/8/error-settings", headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json()["send_email_on_error"] is False
    assert r.json()["users_to_notify"] == []

    payload = {
        "send_email_on_error": True,
        "email_from_address": "gallery@example.com",
        "email_from_name": "Gallery 8",
        "smtp_server": "smtp.example.com",
        "smtp_server_port": "587",
        "send_email_using_ssl": True,
        "users_to_notify": [
            {"user_name": "alice", "email": "alice@example.com"},
            {"user_name": "bob", "email": ""},
        ],
    }
    r = client.put("/v1/galleries/8/error-settings", json=payload, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"gallery_id": 8, **payload}

    r = client.get("/v1/galleries/8/error-settings", headers=admin_headers)
    assert r.json() == {"gallery_id": 8, **payload}


def test_unhandled_exception_is_recorded(
    client: TestClient,
    admin_headers: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    sent: list[str] = []
    monkeypatch.setattr(
        SmtpMailer,
        "send",
        lambda self, message, options: sent.append(str(message["To"])),
    )

    r = client.put(
        "/v1/galleries/6/error-settings",
        json={
            "send_email_on_error": True,
            "email_from_address": "gallery@example.com",
            "users_to_notify": [{"user_name": "alice", "email": "alice@example.com"}],
        },
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text

    crashing = _crashing_client(client)
    r = crashing.post(
        "/boom/3?view=grid",
        data={"title": "Beach"},
        headers={
            "X-Gallery-Id": "6",
            "User-Agent": "pytest-agent",
            "X-Trace-Id": "t-1",
            "X-Admin-Key": "leaked-key",
            "Cookie": "sid=abc",
        },
    )
    assert r.status_code == 500, r.text
    body = r.json()
    assert body["code"] == "INTERNAL_ERROR"
    assert body["trace_id"] == "t-1"
    error_id = body["details"]["error_id"]
    assert isinstance(error_id, int)

    r = client.get(f"/v1/errors/{error_id}", headers=admin_headers)
    assert r.status_code == 200, r.text
    fields = {f["name"]: f["value"] for f in r.json()["fields"]}
    assert r.json()["gallery_id"] == 6
    assert fields["EXCEPTION_TYPE"] == "LookupError"
    assert fields["MESSAGE"] == "album 3 vanished"
    assert fields["URL"].endswith("/boom/3?view=grid")
    assert fields["HTTP_USER_AGENT"] == "pytest-agent"
    assert "Trace Id: t-1" in fields["EXCEPTION_DATA"]
    assert "sid: abc" in fields["COOKIES"]
    assert "REQUEST_METHOD: POST" in fields["SERVER_VARIABLES"]
    assert "HTTP_X_ADMIN_KEY: <redacted>" in fields["SERVER_VARIABLES"]
    assert "leaked-key" not in fields["SERVER_VARIABLES"]

    assert len(sent) == 1
    assert "alice@example.com" in sent[0]


def test_unhandled_exception_without_gallery_is_system_wide(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    crashing = _crashing_client(client)
    r = crashing.get("/boom/1", headers={"X-Gallery-Id": "not-a-number"})
    assert r.status_code == 500, r.text
    error_id = r.json()["details"]["error_id"]

    r = client.get(f"/v1/errors/{error_id}", headers=admin_headers)
    assert r.json()["system_wide"] is True
