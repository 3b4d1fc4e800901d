import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Tuple, Type

from fastapi import APIRouter, Depends

from gitflair.core.embedder import Embedder
from gitflair.core.errors import EmbeddingQuotaError, EmptyEmbeddingError, StorageError
from gitflair.core.records import RecordStore
from gitflair.routers.deps import get_embedder_factory, get_records

router = APIRouter(tags=["health"])

# Failures that mean the service answered but is not healthy; anything else is "down"
DATABASE_DEGRADED = (StorageError,)
EMBEDDING_DEGRADED = (EmptyEmbeddingError, EmbeddingQuotaError)


def _probe(check: Callable[[], str], degraded_on: Tuple[Type[BaseException], ...] = ()) -> Dict:
    start = time.perf_counter()
    try:
        details = check()
        status = "operational"
    except degraded_on as e:
        details = getattr(e, "message", str(e))
        status = "degraded"
    except Exception as e:
        details = getattr(e, "message", None) or str(e) or "Connection failed"
        status = "down"
    return {
        "status": status,
        "latency": int((time.perf_counter() - start) * 1000),
        "details": details,
    }


def overall_status(services: Dict[str, Dict]) -> str:
    statuses = [s["status"] for s in services.values()]
    if any(s == "down" for s in statuses):
        return "down"
    if all(s == "operational" for s in statuses):
        return "operational"
    return "degraded"


@router.get("/health")
async def health(
    records: RecordStore = Depends(get_records),
    embedder_factory: Callable[[], Embedder] = Depends(get_embedder_factory),
):
    """Latency and status of the database and the embedding provider."""

    def check_database() -> str:
        records.ping()
        return "Database connected"

    def check_embeddings() -> str:
        # Building the client is part of the check: no API key means down
        embedder_factory().embed_query("health check")
        return "Embedding API responding"

    loop = asyncio.get_running_loop()
    services = {"backend": {"status": "operational", "latency": 0, "details": "API server running"}}
    services["database"] = await loop.run_in_executor(None, _probe, check_database, DATABASE_DEGRADED)
    services["llm"] = await loop.run_in_executor(None, _probe, check_embeddings, EMBEDDING_DEGRADED)

    return {
        "overall": overall_status(services),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }
