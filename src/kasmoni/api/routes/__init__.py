"""API routes."""

from kasmoni.api.routes.archive import router as archive_router
from kasmoni.api.routes.groups import router as groups_router
from kasmoni.api.routes.health import router as health_router
from kasmoni.api.routes.payment_logs import router as payment_logs_router
from kasmoni.api.routes.payments import router as payments_router
from kasmoni.api.routes.trashbox import router as trashbox_router

__all__ = [
    "archive_router",
    "groups_router",
    "health_router",
    "payment_logs_router",
    "payments_router",
    "trashbox_router",
]
