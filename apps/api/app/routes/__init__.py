"""Route modules."""

from .internal import router as internal_router
from .jobs import router as jobs_router
from .webhooks import router as webhooks_router

__all__ = ["internal_router", "jobs_router", "webhooks_router"]
