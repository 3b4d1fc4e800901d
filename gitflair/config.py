EMBEDDING = {
    "model": "gemini-embedding-001",
    "task_doc": "RETRIEVAL_DOCUMENT",
    "task_query": "RETRIEVAL_QUERY",
    # batchEmbedContents rejects payloads with more than 100 requests
    "batch_size": 100,
    "dimensions": 3072
}

CHUNKING = {
    "code": {"size": 3000, "overlap": 300},
}

RETRIEVAL = {
    "top_k": 4,
    # Cosine similarity in [-1, 1]; code chunks rarely exceed 0.6 against a
    # natural-language question, so keep the floor low.
    "score_threshold": 0.15,
    "history_turns": 5,
    "history_page_size": 10,
}

QUOTAS = {
    "max_repos_per_user": 2,
    "max_questions_per_repo": 10,
}

INGESTION = {
    "file_concurrency": 3,
    "freshness_hours": 24,
}

LLM = {
    "model": "gemini-2.5-flash-lite",
    "max_tokens": 1024,
    "temperature": 0.2,
}

VECTOR_DB = {
    "collection_chunks": "code_chunks",
    "distance": "COSINE",
    "dimensions": 3072
}

DATABASE = {
    "default_url": "sqlite:///./tmp/gitflair.db",
}

SOURCES = {
    "github_clone_dir": "./tmp/repos",
    "max_file_size_kb": 500,
    "repo_list_limit": 20,
}
