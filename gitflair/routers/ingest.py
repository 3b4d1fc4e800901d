import asyncio
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from gitflair.core.ingestor import RepoIngestor
from gitflair.routers.deps import get_ingestor

router = APIRouter(prefix="/ingest", tags=["ingestion"])

ANONYMOUS_USER = "anonymous"


class IngestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class IngestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    repo_id: str = Field(alias="repoId")
    files_processed: int = Field(alias="filesProcessed")
    chunks_stored: int = Field(alias="chunksStored")


@router.post("", response_model=IngestResponse, response_model_by_alias=True)
async def ingest_repository(request: IngestRequest, ingestor: RepoIngestor = Depends(get_ingestor)):
    """Index a GitHub repository for the calling user."""
    user_id = request.user_id or ANONYMOUS_USER
    print(f"[INGEST] Received ingest request: {request.url} (user={user_id})", flush=True)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, lambda: ingestor.ingest(request.url or "", user_id))

    message = "Repository already indexed recently" if result.skipped else "Indexing complete"
    return IngestResponse(
        message=message,
        repo_id=result.repo_id,
        files_processed=result.files_processed,
        chunks_stored=result.chunks_stored,
    )
