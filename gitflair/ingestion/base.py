from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class RepoFile:
    path: str              # relative to the repository root, "/" separated
    content: str
    language: str          # best-effort tag from the extension table


@dataclass
class Chunk:
    text: str
    file_path: str
    start_line: int        # 1-indexed, inclusive
    end_line: int          # inclusive
    language: str = "text"
    start_index: int = 0   # character offset of text in the original file
    repo_id: Optional[str] = None
    similarity: Optional[float] = None
    embedding: List[float] = field(default_factory=list, repr=False)

    def locator(self) -> dict:
        return {
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        """Canonical form used as the repository's identity."""
        return f"https://github.com/{self.full_name}"


class ContentSource(ABC):
    @abstractmethod
    def list_supported_files(self, owner: str, repo: str) -> List[RepoFile]:
        """Return every supported text file of the repository's default branch."""
        pass
