import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from gitflair.core.query_engine import AskResult, QueryEngine
from gitflair.ingestion.base import Chunk
from gitflair.routers.deps import get_query_engine
from gitflair.routers.ingest import ANONYMOUS_USER

router = APIRouter(tags=["chat"])


class AskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = None
    repo_id: Optional[str] = Field(default=None, alias="repoId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    # Re-ask with the "show me the code" prefix to get the chunks back
    reveal_code: bool = Field(default=False, alias="revealCode")


class ChunkOut(BaseModel):
    repo_id: Optional[str] = None
    file_path: str
    content: str
    start_line: int
    end_line: int
    language: str
    similarity: Optional[float] = None


class CitationOut(BaseModel):
    file_path: str
    start_line: int
    end_line: int


class AskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    state: str
    chunks: List[ChunkOut]
    citations: List[CitationOut]
    code_available: bool = Field(alias="codeAvailable")
    history_saved: bool = Field(alias="historySaved")


def _chunk_out(chunk: Chunk) -> ChunkOut:
    return ChunkOut(
        repo_id=chunk.repo_id,
        file_path=chunk.file_path,
        content=chunk.text,
        start_line=chunk.start_line,
        end_line=chunk.end_line,
        language=chunk.language,
        similarity=round(chunk.similarity, 4) if chunk.similarity is not None else None,
    )


def to_response(result: AskResult) -> AskResponse:
    return AskResponse(
        answer=result.answer,
        state=result.state.value,
        chunks=[_chunk_out(c) for c in result.chunks],
        citations=[CitationOut(**c) for c in result.citations],
        code_available=result.code_available,
        history_saved=result.history_saved.ok,
    )


@router.post("/ask", response_model=AskResponse, response_model_by_alias=True)
async def ask(request: AskRequest, engine: QueryEngine = Depends(get_query_engine)):
    """Answer a question about an indexed repository."""
    user_id = request.user_id or ANONYMOUS_USER
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(
        None,
        lambda: engine.ask(
            request.question or "",
            request.repo_id or "",
            user_id,
            reveal_code=request.reveal_code,
        ),
    )
    return to_response(result)
