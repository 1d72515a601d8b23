"""Slope Watch backend: steep-slope asset management service.

This package contains the backend for registering steep-slope (hazard)
sites, their inspection history and risk assessments, the photos taken of
them, and the comments field staff leave on them.

- Session handling with short-lived access tokens and rotated, revocable
  refresh tokens
- Decimal start/end points derived from degree/minute/second survey input,
  stored as PostGIS geography for near-queries
- Image references shadowed into backup stores and restorable on demand
- Designed for FastAPI dependency injection: settings and repositories are
  passed in explicitly, never looked up globally

See README and module sub-docstrings for details on architecture and usage.
"""
