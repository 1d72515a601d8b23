"""Pytest configuration: import path and shared fixtures.

The fixtures wire services and the API against in-memory repositories and
an in-memory object store, so no database or bucket is needed.
"""

from __future__ import annotations

import pathlib
import sys
import uuid
from typing import TYPE_CHECKING

import pytest

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from fastapi import testclient  # noqa: E402

from slopewatch import main  # noqa: E402
from slopewatch.api import deps  # noqa: E402
from slopewatch.core import config, errors  # noqa: E402
from slopewatch.db import models as db_models  # noqa: E402
from slopewatch.db import stores as db_stores  # noqa: E402
from slopewatch.services import passwords  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


class FakeObjectStore:
    """Object store keeping objects in a dict keyed by URL."""

    base_url = "https://objects.test"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_deletes = False
        self.fail_puts = False

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail_puts:
            raise errors.DependencyFailure("Failed to store image")
        url = f"{self.base_url}/{key}"
        self.objects[url] = data
        return url

    def delete(self, url: str) -> None:
        if self.fail_deletes:
            raise errors.DependencyFailure("Failed to delete image")
        self.deleted.append(url)
        self.objects.pop(url, None)


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> config.Settings:
    """Settings with signing secrets and a cheap bcrypt cost."""
    return config.Settings(
        storage_dir=tmp_path / "uploads",
        public_base_url="http://testserver/uploads",
        access_token_secret="access-secret-for-tests-0123456789abcdef",
        refresh_token_secret="refresh-secret-for-tests-0123456789abcdef",
        password_hash_rounds=4,
    )


@pytest.fixture
def bundle() -> db_stores.Stores:
    return db_stores.in_memory_stores()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def add_user(
    bundle: db_stores.Stores,
    settings: config.Settings,
) -> Callable[..., db_models.User]:
    """Factory storing a user directly, approved unless told otherwise."""

    def factory(
        phone: str = "0100000001",
        password: str = "pw1",
        *,
        name: str = "Kim",
        organization: str = "A",
        is_admin: bool = False,
        is_approved: bool = True,
    ) -> db_models.User:
        user = db_models.User(
            id=str(uuid.uuid4()),
            name=name,
            phone=phone,
            organization=organization,
            password_hash=passwords.hash_password(
                password,
                settings.password_hash_rounds,
            ),
            is_admin=is_admin,
            is_approved=is_approved,
        )
        return bundle.users.add(user)

    return factory


@pytest.fixture
def client(
    settings: config.Settings,
    bundle: db_stores.Stores,
    object_store: FakeObjectStore,
) -> Iterator[testclient.TestClient]:
    """API client whose dependencies resolve to the in-memory fixtures."""
    app = main.create_app()
    app.dependency_overrides[config.get_settings] = lambda: settings
    app.dependency_overrides[deps.get_stores] = lambda: bundle
    app.dependency_overrides[deps.get_object_store] = lambda: object_store
    try:
        yield testclient.TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login_headers(
    client: testclient.TestClient,
) -> Callable[[str, str], dict[str, str]]:
    """Log in over the API and return an Authorization header."""

    def factory(phone: str, password: str = "pw1") -> dict[str, str]:
        response = client.post(
            "/api/auth/login",
            json={"phone": phone, "password": password},
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return factory
