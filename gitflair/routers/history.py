import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Query

from gitflair.config import SOURCES
from gitflair.core.errors import ValidationError
from gitflair.core.query_engine import QueryEngine
from gitflair.core.records import RecordStore
from gitflair.ingestion.github_repo import parse_github_url
from gitflair.routers.deps import get_query_engine, get_records
from gitflair.routers.ingest import ANONYMOUS_USER

router = APIRouter(tags=["history"])


@router.get("/history")
async def get_history(
    repo_id: Optional[str] = Query(default=None, alias="repoId"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    engine: QueryEngine = Depends(get_query_engine),
):
    """Recent questions and answers for a repository, newest first."""
    loop = asyncio.get_running_loop()
    turns = await loop.run_in_executor(
        None, lambda: engine.list_turns(repo_id or "", user_id or ANONYMOUS_USER)
    )
    return [t.to_dict() for t in turns]


@router.get("/repos")
async def list_repos(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    records: RecordStore = Depends(get_records),
):
    """Repositories the user has indexed, most recent first."""
    loop = asyncio.get_running_loop()
    repos = await loop.run_in_executor(
        None,
        lambda: records.list_repositories(user_id or ANONYMOUS_USER, limit=SOURCES["repo_list_limit"]),
    )
    return [r.to_dict() for r in repos]


@router.get("/status")
async def repo_status(
    url: Optional[str] = None,
    records: RecordStore = Depends(get_records),
):
    """Index status of a repository URL, or null if it was never ingested."""
    if not url:
        raise ValidationError("URL is required")
    ref = parse_github_url(url)
    if ref is None:
        raise ValidationError("Invalid GitHub URL")
    loop = asyncio.get_running_loop()
    repo = await loop.run_in_executor(None, lambda: records.find_repository_by_url(ref.url))
    return repo.to_dict() if repo else None
