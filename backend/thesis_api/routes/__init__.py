"""HTTP controllers, one `APIRouter` per area of the API.

Controllers are intentionally thin: they accept requests, delegate to
services and return JSON responses. `main.create_app` mounts every
router in `ROUTERS` under `/api`.
"""

from . import admin, ai, auth, calendar, documents, export, health, memoires, messaging, notifications, packs, resources, users

ROUTERS = [
    health.router,
    auth.router,
    users.router,
    packs.router,
    admin.router,
    memoires.router,
    documents.router,
    messaging.router,
    notifications.router,
    calendar.router,
    resources.router,
    ai.router,
    export.router,
]
