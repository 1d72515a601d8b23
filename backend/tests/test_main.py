"""Tests for the FastAPI main application factory and error rendering.

This module validates that:
    - The FastAPI app is correctly instantiated via main.create_app,
    - OpenAPI metadata (title, version) matches the project contract,
    - Feature routers and the health endpoint are registered,
    - Service failures and request validation errors are rendered as
      structured ``{"success": false, ...}`` bodies without internals.

See Also:
    - backend/slopewatch/main.py for the application factory.
"""

from __future__ import annotations

import inspect

import fastapi
import pytest
from fastapi import routing, testclient

from slopewatch import main
from slopewatch.api import auth, backups, comments, images, slopes, users


def test_create_app() -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app()
    assert app is not None
    assert app.title == "Slope Watch"
    assert app.version == "0.1.0"


def test_health_endpoint() -> None:
    """Test the health check endpoint returns ok status."""
    app = main.create_app()
    client = testclient.TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_app_includes_routers() -> None:
    """Test that every feature router is included in the app."""
    app = main.create_app()
    paths = app.openapi()["paths"]
    assert "/health" in paths
    for path in (
        "/api/auth/login",
        "/api/auth/refresh",
        "/api/users/{user_id}/approve",
        "/api/slopes/search",
        "/api/slopes/history/{history_number}/images",
        "/api/comments/{comment_id}",
        "/api/backups/restore",
    ):
        assert path in paths


def test_local_uploads_are_mounted() -> None:
    """Test that local images are served when no bucket is configured."""
    app = main.create_app()
    mounts = [
        getattr(route, "path", "")
        for route in app.routes
        if getattr(route, "name", None) == "uploads"
    ]
    assert mounts == ["/uploads"]


@pytest.mark.parametrize(
    "router",
    [
        auth.router,
        users.router,
        slopes.router,
        images.router,
        comments.router,
        backups.router,
    ],
)
def test_routes_run_in_threadpool(router: fastapi.APIRouter) -> None:
    """Test that handlers calling blocking drivers are plain functions."""
    for route in router.routes:
        assert isinstance(route, routing.APIRoute)
        assert not inspect.iscoroutinefunction(route.endpoint), route.path


def test_service_error_is_rendered(client: testclient.TestClient) -> None:
    """Test that a NotFoundFailure becomes a 404 with a structured body."""
    response = client.post(
        "/api/auth/refresh",
        json={"refresh_token": "never-issued"},
    )
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "not_found"
    assert body["message"] == "Refresh token not found"


def test_missing_token_is_rejected(client: testclient.TestClient) -> None:
    """Test that protected routes answer 401 without a bearer token."""
    response = client.get("/api/users")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_request_validation_is_rendered_as_400(
    client: testclient.TestClient,
) -> None:
    """Test that malformed bodies produce field-level details."""
    response = client.post(
        "/api/slopes/nearby",
        json={"longitude": "east", "latitude": 37.5},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "validation_failed"
    assert "longitude" in body["details"]
