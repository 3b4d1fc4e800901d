import os
from enum import Enum
from typing import Dict, List, Optional

from langchain_text_splitters import Language, RecursiveCharacterTextSplitter

from gitflair.config import CHUNKING
from gitflair.ingestion.base import Chunk

# Extension -> language tag stored with every chunk
LANGUAGE_EXTENSIONS = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".c": "c",
    ".h": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".md": "markdown",
    ".sh": "shell",
    ".sql": "sql",
    ".css": "css",
    ".html": "html",
}

SUPPORTED_EXTENSIONS = set(LANGUAGE_EXTENSIONS.keys())


class SplitterLanguage(str, Enum):
    """Separator family used to pick split points for a file."""

    JS = "js"
    PYTHON = "python"
    JAVA = "java"
    GO = "go"
    CPP = "cpp"
    RUBY = "ruby"
    PHP = "php"
    SWIFT = "swift"
    RUST = "rust"
    MARKDOWN = "markdown"
    HTML = "html"
    GENERIC = "generic"


# Extension -> separator family. C-family and Kotlin borrow the nearest
# brace-language rules; anything else falls back to GENERIC.
SPLITTER_EXTENSIONS: Dict[str, SplitterLanguage] = {
    ".js": SplitterLanguage.JS,
    ".jsx": SplitterLanguage.JS,
    ".ts": SplitterLanguage.JS,
    ".tsx": SplitterLanguage.JS,
    ".py": SplitterLanguage.PYTHON,
    ".java": SplitterLanguage.JAVA,
    ".kt": SplitterLanguage.JAVA,
    ".go": SplitterLanguage.GO,
    ".cpp": SplitterLanguage.CPP,
    ".c": SplitterLanguage.CPP,
    ".h": SplitterLanguage.CPP,
    ".cs": SplitterLanguage.CPP,
    ".rb": SplitterLanguage.RUBY,
    ".php": SplitterLanguage.PHP,
    ".swift": SplitterLanguage.SWIFT,
    ".rs": SplitterLanguage.RUST,
    ".md": SplitterLanguage.MARKDOWN,
    ".html": SplitterLanguage.HTML,
}

_LANGCHAIN_LANGUAGES: Dict[SplitterLanguage, Language] = {
    SplitterLanguage.JS: Language.JS,
    SplitterLanguage.PYTHON: Language.PYTHON,
    SplitterLanguage.JAVA: Language.JAVA,
    SplitterLanguage.GO: Language.GO,
    SplitterLanguage.CPP: Language.CPP,
    SplitterLanguage.RUBY: Language.RUBY,
    SplitterLanguage.PHP: Language.PHP,
    SplitterLanguage.SWIFT: Language.SWIFT,
    SplitterLanguage.RUST: Language.RUST,
    SplitterLanguage.MARKDOWN: Language.MARKDOWN,
    SplitterLanguage.HTML: Language.HTML,
}


def _extension(file_path: str) -> str:
    return os.path.splitext(file_path)[1].lower()


def detect_language(file_path: str) -> str:
    return LANGUAGE_EXTENSIONS.get(_extension(file_path), "text")


def splitter_language(file_path: str) -> SplitterLanguage:
    return SPLITTER_EXTENSIONS.get(_extension(file_path), SplitterLanguage.GENERIC)


def line_span(content: str, start_index: int, chunk_text: str) -> tuple:
    """Return the inclusive (start_line, end_line) of a chunk at start_index."""
    start_line = content.count("\n", 0, start_index) + 1
    return start_line, start_line + chunk_text.count("\n")


class CodeChunker:
    """Split a source file into overlapping chunks with line numbers.

    Split points come from the file's separator family (classes and
    functions first, then blank lines, lines, words). Offsets are taken from
    the splitter's forward scan, so a chunk whose text also appears earlier
    in the file still gets its own line range.
    """

    def __init__(self, chunk_size: Optional[int] = None, overlap: Optional[int] = None):
        self.chunk_size = chunk_size or CHUNKING["code"]["size"]
        self.overlap = overlap if overlap is not None else CHUNKING["code"]["overlap"]
        self._splitters: Dict[SplitterLanguage, RecursiveCharacterTextSplitter] = {}

    def _get_splitter(self, family: SplitterLanguage) -> RecursiveCharacterTextSplitter:
        splitter = self._splitters.get(family)
        if splitter is not None:
            return splitter

        lc_language = _LANGCHAIN_LANGUAGES.get(family)
        if lc_language is None:
            splitter = RecursiveCharacterTextSplitter(
                chunk_size=self.chunk_size,
                chunk_overlap=self.overlap,
                add_start_index=True,
            )
        else:
            splitter = RecursiveCharacterTextSplitter.from_language(
                lc_language,
                chunk_size=self.chunk_size,
                chunk_overlap=self.overlap,
                add_start_index=True,
            )
        self._splitters[family] = splitter
        return splitter

    def chunk(self, content: str, file_path: str, language: Optional[str] = None) -> List[Chunk]:
        if not content or not content.strip():
            return []

        splitter = self._get_splitter(splitter_language(file_path))
        language = language or detect_language(file_path)

        chunks = []
        for doc in splitter.create_documents([content]):
            text = doc.page_content
            start_index = doc.metadata.get("start_index", -1)
            if start_index < 0:
                # Forward scan lost track (whitespace trimming); settle for
                # the first occurrence.
                start_index = max(content.find(text), 0)
            start_line, end_line = line_span(content, start_index, text)
            chunks.append(
                Chunk(
                    text=text,
                    file_path=file_path,
                    start_line=start_line,
                    end_line=end_line,
                    language=language,
                    start_index=start_index,
                )
            )
        return chunks
