from gitflair.routers.ingest import router as ingest_router
from gitflair.routers.chat import router as chat_router
from gitflair.routers.history import router as history_router
from gitflair.routers.health import router as health_router

__all__ = ["ingest_router", "chat_router", "history_router", "health_router"]
