"""API router subpackage for the slope backend.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - auth: Registration, login, token refresh and logout.
    - users: Account listing, self-service and approval.
    - slopes: Slope registration, field-group updates, search.
    - images: Multipart photo updates for the four slope slots.
    - comments: Slope comments with image attachments.
    - backups: Administrative image restore.
    - deps: Dependency providers shared by the routers.

Routers are grouped by major feature domain to promote clarity and
independent testing.
"""
