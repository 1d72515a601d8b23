"""Records and repositories.

Each repository module defines a Protocol together with an in-memory
implementation (tests, local development) and a PostgreSQL one. The
``stores`` module bundles one of each kind for injection into the services.

Example:
    Use in a service or FastAPI dependency:
        >>> from slopewatch.db import stores
        >>> bundle = stores.get_stores(settings)
"""
