import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Pattern

from gitflair.config import QUOTAS, RETRIEVAL
from gitflair.core.errors import GitFlairError, QuestionQuotaExceeded, ValidationError
from gitflair.core.llm import NOT_FOUND_ANSWER, LLMWrapper, build_answer_prompt
from gitflair.core.models import QueryTurn, utcnow
from gitflair.core.records import RecordStore
from gitflair.core.retriever import RetrievalState, Retriever, build_context
from gitflair.ingestion.base import Chunk

SHOW_CODE_PREFIX = "show me the code for: "


class QuestionIntent(str, Enum):
    SHOW_CODE = "show_code"
    GENERAL = "general"


INTENT_PATTERNS: Dict[QuestionIntent, Pattern] = {
    QuestionIntent.SHOW_CODE: re.compile(
        r"show|code|snippet|implementation|function|how does|source|example",
        re.IGNORECASE,
    ),
}


def classify_intent(question: str) -> QuestionIntent:
    for intent, pattern in INTENT_PATTERNS.items():
        if pattern.search(question):
            return intent
    return QuestionIntent.GENERAL


class AnswerState(str, Enum):
    ANSWERED = "answered"
    LOW_CONFIDENCE = "low_confidence"     # matched chunks, model could not answer from them
    NO_MATCH = "no_match"
    NOTHING_INDEXED = "nothing_indexed"


class TurnStage(str, Enum):
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    PERSISTED = "persisted"


@dataclass
class WriteOutcome:
    """Result of a best-effort write that must not fail the request."""

    ok: bool
    error: Optional[str] = None


@dataclass
class AskResult:
    answer: str
    state: AnswerState
    chunks: List[Chunk] = field(default_factory=list)       # disclosed to the caller
    citations: List[dict] = field(default_factory=list)     # every retrieved chunk
    code_available: bool = False                            # chunks withheld, re-ask to reveal
    history_saved: WriteOutcome = field(default_factory=lambda: WriteOutcome(ok=False))


def nothing_indexed_answer() -> str:
    return (
        "No code chunks found for this repository. This usually means the ingestion failed "
        "or the repository has no supported files. Re-index the repository; if it still "
        "comes back empty, check that the vector collection matches the embedding width."
    )


def no_match_answer(indexed_count: int) -> str:
    return (
        f"Found {indexed_count} chunks in the index but none matched your question. "
        "Try asking about a specific file, function, or feature in the codebase."
    )


class QueryEngine:
    """Answer a question about one repository from its retrieved chunks.

    Stages run strictly in order (embedding, retrieving, generating,
    persisted) and any failure before persistence leaves no trace. The
    question quota is checked first so a rejected question costs nothing.
    """

    def __init__(
        self,
        retriever: Retriever,
        generator: LLMWrapper,
        records: RecordStore,
        max_questions: Optional[int] = None,
        history_turns: Optional[int] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.retriever = retriever
        self.generator = generator
        self.records = records
        self.max_questions = max_questions or QUOTAS["max_questions_per_repo"]
        self.history_turns = history_turns or RETRIEVAL["history_turns"]
        self.now = now

    def ask(self, question: str, repo_id: str, user_id: str, reveal_code: bool = False) -> AskResult:
        if not question or not question.strip():
            raise ValidationError("Question is required")
        if not repo_id:
            raise ValidationError("repoId is required")
        if not user_id:
            raise ValidationError("User id is required")
        if self.records.get_repository(repo_id) is None:
            raise ValidationError(f"Unknown repository: {repo_id}")

        question = question.strip()
        if reveal_code:
            question = f"{SHOW_CODE_PREFIX}{question}"

        if self.records.count_turns(repo_id, user_id) >= self.max_questions:
            raise QuestionQuotaExceeded(self.max_questions)

        print(f"[ASK] stage={TurnStage.EMBEDDING.value} repo={repo_id}", flush=True)
        query_embedding = self.retriever.embed_question(question)

        print(f"[ASK] stage={TurnStage.RETRIEVING.value} repo={repo_id}", flush=True)
        retrieval = self.retriever.retrieve(repo_id, query_embedding)

        if retrieval.state is RetrievalState.NOTHING_INDEXED:
            return AskResult(answer=nothing_indexed_answer(), state=AnswerState.NOTHING_INDEXED)
        if retrieval.state is RetrievalState.NO_MATCH:
            return AskResult(answer=no_match_answer(retrieval.indexed_count), state=AnswerState.NO_MATCH)

        chunks = retrieval.chunks
        context = build_context(chunks)
        history = self.build_history(repo_id, user_id)

        print(f"[ASK] stage={TurnStage.GENERATING.value} repo={repo_id} chunks={len(chunks)}", flush=True)
        answer = self.generator.generate(build_answer_prompt(context, question, history))

        citations = [c.locator() for c in chunks]
        saved = self._record_turn(repo_id, user_id, question, answer, citations)
        print(f"[ASK] stage={TurnStage.PERSISTED.value} repo={repo_id} saved={saved.ok}", flush=True)

        state = AnswerState.LOW_CONFIDENCE if NOT_FOUND_ANSWER in answer else AnswerState.ANSWERED
        disclose = classify_intent(question) is QuestionIntent.SHOW_CODE

        return AskResult(
            answer=answer,
            state=state,
            chunks=chunks if disclose else [],
            citations=citations,
            code_available=not disclose,
            history_saved=saved,
        )

    def build_history(self, repo_id: str, user_id: str) -> List[Dict[str, str]]:
        """Last turns for this repository, oldest first, as user/assistant messages."""
        history = []
        for turn in self.records.recent_turns(repo_id, user_id, limit=self.history_turns):
            history.append({"role": "user", "content": turn.question})
            history.append({"role": "assistant", "content": turn.answer})
        return history

    def _record_turn(
        self,
        repo_id: str,
        user_id: str,
        question: str,
        answer: str,
        citations: List[dict],
    ) -> WriteOutcome:
        try:
            self.records.add_turn(repo_id, user_id, question, answer, citations, created_at=self.now())
        except GitFlairError as e:
            print(f"[ASK] History logging error: {e}", flush=True)
            return WriteOutcome(ok=False, error=e.message)
        return WriteOutcome(ok=True)

    def list_turns(self, repo_id: str, user_id: str, limit: Optional[int] = None) -> List[QueryTurn]:
        if not repo_id:
            raise ValidationError("repoId is required")
        return self.records.list_turns(repo_id, user_id, limit=limit or RETRIEVAL["history_page_size"])
