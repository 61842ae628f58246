from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from prodauth.core.exceptions import (
    ForbiddenError,
    LoginLockedError,
    OriginThrottledError,
    ResourceNotFoundError,
)
from prodauth.core.handlers import register_exception_handlers


class Payload(BaseModel):
    count: int


def _client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/locked")
    def locked():
        raise LoginLockedError(remaining_minutes=3, attempts=5, locked_until="2026-01-01T00:15:00+00:00")

    @app.get("/throttled")
    def throttled():
        raise OriginThrottledError("10.0.0.1", 15)

    @app.get("/forbidden")
    def forbidden():
        raise ForbiddenError("insufficient role", "Nope", required_role="owner", actual_role="viewer")

    @app.get("/missing")
    def missing():
        raise ResourceNotFoundError("Shot", 42)

    @app.post("/payload")
    def payload(body: Payload):
        return {"count": body.count}

    @app.get("/crash")
    def crash():
        raise RuntimeError("kaboom")

    return TestClient(app, raise_server_exceptions=False)


def test_lockout_sets_retry_after():
    response = _client().get("/locked")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "180"
    body = response.json()
    assert body["success"] is False
    assert body["details"]["remaining_minutes"] == 3
    assert body["path"] == "/locked"
    assert body["timestamp"]


def test_origin_throttle_has_no_retry_after():
    response = _client().get("/throttled")

    assert response.status_code == 429
    assert "Retry-After" not in response.headers
    assert response.json()["details"]["attempts"] == 15


def test_forbidden_carries_reason():
    response = _client().get("/forbidden")

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "Nope"
    assert body["details"]["reason"] == "insufficient role"
    assert body["details"]["actual_role"] == "viewer"


def test_not_found_names_the_resource():
    response = _client().get("/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "Shot 42 not found"


def test_validation_errors_are_listed():
    response = _client().post("/payload", json={"count": "many"})

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation failed"
    assert body["details"]["errors"][0]["field"] == "body.count"


def test_unhandled_errors_are_masked():
    response = _client().get("/crash")

    assert response.status_code == 500
    assert response.json()["error"] == "An unexpected error occurred."
    assert "kaboom" not in response.text
