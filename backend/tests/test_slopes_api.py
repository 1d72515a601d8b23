"""API tests for slopes, slope images, comments and image restore.

See Also:
    - backend/slopewatch/api/slopes.py
    - backend/slopewatch/api/images.py
    - backend/slopewatch/api/comments.py
    - backend/slopewatch/api/backups.py
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable

    from conftest import FakeObjectStore
    from fastapi import testclient

    from slopewatch.db import models as db_models
    from slopewatch.db import stores as db_stores

SLOPE = {
    "management_no": "4211-001",
    "name": "Hillside 3",
    "history_number": "H-0001",
    "location": {
        "province": "Gangwon",
        "city": "Chuncheon",
        "district": "Hyoja",
        "start": {
            "latitude": {"degree": 37, "minute": 30, "second": 0},
            "longitude": {"degree": 127, "minute": 45, "second": 0},
        },
    },
}


@pytest.fixture
def admin_auth(
    add_user: Callable[..., db_models.User],
    login_headers: Callable[..., dict[str, str]],
) -> dict[str, str]:
    add_user("0100000000", name="Admin", is_admin=True)
    return login_headers("0100000000")


@pytest.fixture
def member_auth(
    add_user: Callable[..., db_models.User],
    login_headers: Callable[..., dict[str, str]],
) -> dict[str, str]:
    add_user("0100000001")
    return login_headers("0100000001")


@pytest.fixture
def slope(
    client: testclient.TestClient,
    member_auth: dict[str, str],
) -> dict[str, Any]:
    response = client.post("/api/slopes", json=SLOPE, headers=member_auth)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_slope_stores_derived_point(slope: dict[str, Any]) -> None:
    """Test that the response carries the derived GeoJSON point."""
    assert slope["location"]["start"]["point"] == {
        "coordinates": [127.75, 37.5],
        "kind": "Point",
    }


def test_create_slope_requires_token(client: testclient.TestClient) -> None:
    """Test that slope registration is authenticated."""
    assert client.post("/api/slopes", json=SLOPE).status_code == 401


def test_get_by_history_number(
    client: testclient.TestClient,
    member_auth: dict[str, str],
    slope: dict[str, Any],
) -> None:
    """Test lookup by history number, including the images view."""
    response = client.get("/api/slopes/history/H-0001", headers=member_auth)
    body = response.json()
    assert body["data"]["id"] == slope["id"]
    assert body["images"] == {
        "position": None,
        "start": None,
        "overview": None,
        "end": None,
    }
    missing = client.get("/api/slopes/history/H-404", headers=member_auth)
    assert missing.status_code == 404


def test_update_slope_group(
    client: testclient.TestClient,
    member_auth: dict[str, str],
    slope: dict[str, Any],
) -> None:
    """Test a field-group update and a rejected unknown group."""
    response = client.put(
        f"/api/slopes/{slope['id']}",
        json={"group": "management", "management": {"department": "Roads"}},
        headers=member_auth,
    )
    assert response.status_code == 200
    assert response.json()["data"]["management"]["department"] == "Roads"

    bad = client.put(
        f"/api/slopes/{slope['id']}",
        json={"group": "everything", "name": "x"},
        headers=member_auth,
    )
    assert bad.status_code == 400
    assert bad.json()["code"] == "validation_failed"


def test_search_and_nearby_are_public(
    client: testclient.TestClient,
    slope: dict[str, Any],
) -> None:
    """Test the unauthenticated query endpoints."""
    search = client.post(
        "/api/slopes/search",
        json={"keyword": "hyoja", "longitude": 127.75, "latitude": 37.5},
    ).json()["data"]
    assert [m["id"] for m in search] == [slope["id"]]
    assert search[0]["distance_m"] == pytest.approx(0.0, abs=1e-6)

    nearby = client.post(
        "/api/slopes/nearby",
        json={"longitude": 127.751, "latitude": 37.5, "radius_m": 500},
    ).json()["data"]
    assert len(nearby) == 1
    assert nearby[0]["distance_m"] < 500


def test_list_outliers_and_delete(
    client: testclient.TestClient,
    admin_auth: dict[str, str],
    member_auth: dict[str, str],
    slope: dict[str, Any],
) -> None:
    """Test administrator listing, outliers and bulk deletion."""
    assert client.get("/api/slopes", headers=member_auth).status_code == 403
    assert len(client.get("/api/slopes", headers=admin_auth).json()["data"]) == 1

    outliers = client.get("/api/slopes/outliers", headers=admin_auth).json()
    assert outliers["data"] == {"duplicates": [], "empty": []}

    deleted = client.request(
        "DELETE",
        "/api/slopes",
        json={"slope_ids": slope["id"]},
        headers=member_auth,
    )
    assert deleted.json()["deleted"] == 1
    again = client.request(
        "DELETE",
        "/api/slopes",
        json={"slope_ids": [slope["id"]]},
        headers=member_auth,
    )
    assert again.status_code == 404


def test_update_images_over_multipart(
    client: testclient.TestClient,
    member_auth: dict[str, str],
    slope: dict[str, Any],
    object_store: FakeObjectStore,
) -> None:
    """Test uploading into one slot and clearing another."""
    first = client.put(
        "/api/slopes/history/H-0001/images",
        files={"overview": ("overview.jpg", b"jpeg", "image/jpeg")},
        headers=member_auth,
    )
    assert first.status_code == 200, first.text
    assert first.json()["summary"] == {"updated": 1, "deleted": 0, "errors": 0}
    assert first.json()["total_images"] == 1

    second = client.put(
        "/api/slopes/history/H-0001/images",
        files={"start": ("start.png", b"png", "image/png")},
        data={"delete_slots": ["overview"]},
        headers=member_auth,
    )
    body = second.json()
    assert body["details"]["updated_slots"] == ["start"]
    assert body["details"]["deleted_slots"] == ["overview"]
    assert body["images"]["overview"] is None
    assert body["images"]["start"]["url"] in object_store.objects


def test_update_images_rejects_non_image(
    client: testclient.TestClient,
    member_auth: dict[str, str],
    slope: dict[str, Any],
) -> None:
    """Test the 400 for a non-image upload."""
    response = client.put(
        "/api/slopes/history/H-0001/images",
        files={"start": ("notes.txt", b"text", "text/plain")},
        headers=member_auth,
    )
    assert response.status_code == 400


def test_comment_lifecycle(
    client: testclient.TestClient,
    member_auth: dict[str, str],
    admin_auth: dict[str, str],
    slope: dict[str, Any],
) -> None:
    """Test posting, listing, editing and deleting a comment."""
    posted = client.post(
        "/api/slopes/history/H-0001/comments",
        data={"content": "Drain blocked"},
        files=[
            ("images", ("a.jpg", b"a", "image/jpeg")),
            ("images", ("b.png", b"b", "image/png")),
        ],
        headers=member_auth,
    )
    assert posted.status_code == 201, posted.text
    comment = posted.json()["data"]
    assert len(comment["image_urls"]) == 2

    listing = client.get(
        "/api/slopes/history/H-0001/comments",
        headers=member_auth,
    ).json()["data"]
    assert [c["id"] for c in listing] == [comment["id"]]

    forbidden = client.put(
        f"/api/comments/{comment['id']}",
        data={"content": "mine now"},
        headers=admin_auth,
    )
    assert forbidden.status_code == 403

    edited = client.put(
        f"/api/comments/{comment['id']}",
        data={
            "content": "Drain cleared",
            "keep_image_urls": [comment["image_urls"][0]],
        },
        headers=member_auth,
    ).json()["data"]
    assert edited["content"] == "Drain cleared"
    assert edited["image_urls"] == [comment["image_urls"][0]]

    deleted = client.delete(f"/api/comments/{comment['id']}", headers=admin_auth)
    assert deleted.status_code == 200


def test_restore_endpoint(
    client: testclient.TestClient,
    bundle: db_stores.Stores,
    admin_auth: dict[str, str],
    member_auth: dict[str, str],
    slope: dict[str, Any],
) -> None:
    """Test that an emptied slot is refilled by the admin restore."""
    client.put(
        "/api/slopes/history/H-0001/images",
        files={"end": ("end.jpg", b"jpeg", "image/jpeg")},
        headers=member_auth,
    )
    stored = bundle.slopes.get_by_history_number("H-0001")
    assert stored is not None
    url = stored.images.end.url  # type: ignore[union-attr]
    stored.images.end = None
    bundle.slopes.update(stored)

    assert (
        client.post("/api/backups/restore", headers=member_auth).status_code
        == 403
    )
    data = client.post("/api/backups/restore", headers=admin_auth).json()["data"]
    assert data["restored_images"] == 1
    assert data["slopes"]["modified"] == 1
    assert data["comments"]["total"] == 0

    restored = bundle.slopes.get_by_history_number("H-0001")
    assert restored is not None
    assert restored.images.end is not None
    assert restored.images.end.url == url
