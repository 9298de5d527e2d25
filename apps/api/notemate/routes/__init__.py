"""Route modules."""

from .conversations import router as conversations_router
from .jobs import router as jobs_router
from .messages import router as messages_router
from .uploads import router as uploads_router
from .webhooks import router as webhooks_router

__all__ = ["conversations_router", "jobs_router", "messages_router", "uploads_router", "webhooks_router"]
