import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gitflair.core.errors import (
    DependencyError,
    GitFlairError,
    QuotaExceeded,
    ValidationError,
    is_quota_error,
)
from gitflair.routers import chat_router, health_router, history_router, ingest_router

# Load environment variables
load_dotenv()


def status_for(exc: GitFlairError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, QuotaExceeded):
        return 403
    if is_quota_error(exc):
        return 429
    if isinstance(exc, DependencyError):
        return 502
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    print("[DEBUG] Starting up GitFlair API...", flush=True)
    yield


app = FastAPI(
    title="GitFlair API",
    description="Ask questions about a GitHub repository, answered with file and line citations",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    print(f"[MIDDLEWARE] Incoming request: {request.method} {request.url.path}", flush=True)
    response = await call_next(request)
    print(f"[MIDDLEWARE] Response status: {response.status_code}", flush=True)
    return response


@app.exception_handler(GitFlairError)
async def gitflair_error_handler(request: Request, exc: GitFlairError):
    status = status_for(exc)
    print(f"[ERROR] {request.method} {request.url.path} -> {status}: {exc.message}", flush=True)
    body = {"error": exc.message}
    if exc.hint:
        body["hint"] = exc.hint
    return JSONResponse(status_code=status, content=body)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # must be False when allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(ingest_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(history_router, prefix="/api")
app.include_router(health_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
