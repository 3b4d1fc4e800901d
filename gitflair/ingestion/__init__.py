from gitflair.ingestion.base import Chunk, ContentSource, RepoFile, RepoRef
from gitflair.ingestion.code import CodeChunker, SplitterLanguage, SUPPORTED_EXTENSIONS
from gitflair.ingestion.github_repo import GitHubRepoSource, parse_github_url

__all__ = [
    "Chunk",
    "ContentSource",
    "RepoFile",
    "RepoRef",
    "CodeChunker",
    "SplitterLanguage",
    "SUPPORTED_EXTENSIONS",
    "GitHubRepoSource",
    "parse_github_url",
]
