"""Dependency providers shared by the API routers.

The repository bundle and the object store are built on first use and kept
on ``app.state``, so one application instance shares one set of connections.
Services are cheap and are built per request from those pieces.

Tests replace ``get_stores`` and ``get_object_store`` through
``app.dependency_overrides``; everything else follows from them.

Example:
    >>> app = main.create_app()
    >>> bundle = stores.in_memory_stores()
    >>> app.dependency_overrides[deps.get_stores] = lambda: bundle
"""

from __future__ import annotations

import fastapi
from fastapi import security

from slopewatch.core import config, errors
from slopewatch.db import stores as db_stores
from slopewatch.services import (
    accounts,
    backups,
    comments,
    images,
    slopes,
    storage,
    tokens,
)

_bearer = security.HTTPBearer(auto_error=False)


def get_stores(
    request: fastapi.Request,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> db_stores.Stores:
    """Resolve the repository bundle (PostgreSQL in production).

    Args:
        request: Current request; the bundle is cached on its app.
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        The application's Stores bundle.
    """
    bundle = getattr(request.app.state, "stores", None)
    if bundle is None:
        bundle = db_stores.get_stores(settings)
        request.app.state.stores = bundle
    return bundle


def get_object_store(
    request: fastapi.Request,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> storage.ObjectStore:
    """Resolve the image object store (S3 when a bucket is configured)."""
    object_store = getattr(request.app.state, "object_store", None)
    if object_store is None:
        object_store = storage.get_object_store(settings)
        request.app.state.object_store = object_store
    return object_store


def get_token_service(
    bundle: db_stores.Stores = fastapi.Depends(get_stores),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> tokens.TokenService:
    return tokens.TokenService(bundle, settings)


def get_account_service(
    bundle: db_stores.Stores = fastapi.Depends(get_stores),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> accounts.AccountService:
    return accounts.AccountService(bundle, settings)


def get_slope_service(
    bundle: db_stores.Stores = fastapi.Depends(get_stores),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> slopes.SlopeService:
    return slopes.SlopeService(bundle, settings)


def get_backup_service(
    bundle: db_stores.Stores = fastapi.Depends(get_stores),  # noqa: B008
) -> backups.ImageBackupService:
    return backups.ImageBackupService(bundle)


def get_image_service(
    bundle: db_stores.Stores = fastapi.Depends(get_stores),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    object_store: storage.ObjectStore = fastapi.Depends(get_object_store),  # noqa: B008
    backup_service: backups.ImageBackupService = fastapi.Depends(  # noqa: B008
        get_backup_service,
    ),
) -> images.SlopeImageService:
    return images.SlopeImageService(
        bundle,
        settings,
        object_store,
        backup_service,
    )


def get_comment_service(
    bundle: db_stores.Stores = fastapi.Depends(get_stores),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    object_store: storage.ObjectStore = fastapi.Depends(get_object_store),  # noqa: B008
    backup_service: backups.ImageBackupService = fastapi.Depends(  # noqa: B008
        get_backup_service,
    ),
) -> comments.CommentService:
    return comments.CommentService(
        bundle,
        settings,
        object_store,
        backup_service,
    )


def optional_actor(
    credentials: security.HTTPAuthorizationCredentials | None = fastapi.Depends(  # noqa: B008
        _bearer,
    ),
    token_service: tokens.TokenService = fastapi.Depends(get_token_service),  # noqa: B008
) -> tokens.AccessClaims | None:
    """Claims of the bearer access token, or None when none was sent.

    A token that is sent but invalid is still rejected.
    """
    if credentials is None:
        return None
    return token_service.verify_access(credentials.credentials)


def current_actor(
    actor: tokens.AccessClaims | None = fastapi.Depends(optional_actor),  # noqa: B008
) -> tokens.AccessClaims:
    """Claims of the bearer access token; the token is mandatory."""
    if actor is None:
        raise errors.AuthFailure("Access token required")
    return actor
