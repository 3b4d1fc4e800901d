from datetime import datetime, timedelta

import pytest

from gitflair.core.errors import EmbeddingError, QuestionQuotaExceeded, StorageError, ValidationError
from gitflair.core.llm import NOT_FOUND_ANSWER
from gitflair.core.query_engine import (
    SHOW_CODE_PREFIX,
    AnswerState,
    QueryEngine,
    QuestionIntent,
    classify_intent,
)
from gitflair.core.retriever import Retriever

from conftest import REPO_URL


@pytest.fixture
def repo_id(ingestor):
    return ingestor.ingest(REPO_URL, "u1").repo_id


def _engine(embedder, vector_store, generator, records, clock, **retriever_kwargs):
    return QueryEngine(
        retriever=Retriever(embedder, vector_store, **retriever_kwargs),
        generator=generator,
        records=records,
        now=clock,
    )


class TestIntent:
    @pytest.mark.parametrize("question", [
        "show me the login handler",
        "Where is the CODE for auth?",
        "How does the retry loop work?",
        "give me an example of a query",
        "which function saves records",
    ])
    def test_show_code(self, question):
        assert classify_intent(question) is QuestionIntent.SHOW_CODE

    @pytest.mark.parametrize("question", [
        "what does the login handler do",
        "where is authentication handled?",
        "why is the cache invalidated",
    ])
    def test_general(self, question):
        assert classify_intent(question) is QuestionIntent.GENERAL


class TestAsk:
    def test_end_to_end_cites_the_right_file(self, engine, repo_id, records):
        result = engine.ask("where is the login handler", repo_id, "u1")

        assert result.state is AnswerState.ANSWERED
        assert result.citations[0]["file_path"] == "auth/login.go"
        assert result.citations[0]["start_line"] == 1
        assert result.history_saved.ok
        assert records.count_turns(repo_id, "u1") == 1

    def test_prompt_carries_context(self, engine, repo_id, generator):
        engine.ask("where is the login handler", repo_id, "u1")

        prompt = generator.prompts[0]
        assert "File: auth/login.go (Lines 1-7)" in prompt
        assert "func LoginHandler" in prompt
        assert prompt.endswith("User question: where is the login handler")

    def test_disclosure_follows_intent(self, embedder, vector_store, generator, records, clock, repo_id):
        engine = _engine(embedder, vector_store, generator, records, clock, score_threshold=0.3)

        shown = engine.ask("show me the login handler", repo_id, "u1")
        withheld = engine.ask("what does the login handler do", repo_id, "u1")

        assert [c.file_path for c in shown.chunks] == ["auth/login.go"]
        assert not shown.code_available
        assert shown.chunks[0].similarity > 0.3

        assert withheld.chunks == []
        assert withheld.code_available

        # Both turns persist the same citations regardless of disclosure
        turns = records.list_turns(repo_id, "u1")
        assert turns[0].references_json == turns[1].references_json
        assert turns[0].references_json == [{"file_path": "auth/login.go", "start_line": 1, "end_line": 7}]

    def test_reveal_code_rewrites_the_question(self, engine, repo_id, generator, records):
        result = engine.ask("login handler", repo_id, "u1", reveal_code=True)

        assert result.chunks
        assert generator.prompts[0].endswith(f"User question: {SHOW_CODE_PREFIX}login handler")
        assert records.list_turns(repo_id, "u1")[0].question == f"{SHOW_CODE_PREFIX}login handler"

    def test_low_confidence_answer(self, engine, repo_id, generator):
        generator.answer = NOT_FOUND_ANSWER
        result = engine.ask("where is the login handler", repo_id, "u1")

        assert result.state is AnswerState.LOW_CONFIDENCE
        assert result.answer == NOT_FOUND_ANSWER
        assert result.citations

    def test_history_is_last_five_oldest_first(self, engine, repo_id, records, generator):
        start = datetime(2025, 12, 1)
        for i in range(7):
            records.add_turn(repo_id, "u1", f"q{i}", f"a{i}", [], created_at=start + timedelta(hours=i))

        engine.ask("where is the login handler", repo_id, "u1")

        prompt = generator.prompts[0]
        assert "User: q0" not in prompt and "User: q1" not in prompt
        positions = [prompt.index(f"User: q{i}") for i in range(2, 7)]
        assert positions == sorted(positions)
        assert prompt.index("Assistant: a6") < prompt.index("User question:")

    def test_history_belongs_to_the_caller(self, engine, repo_id, records, generator):
        records.add_turn(repo_id, "u2", "someone else's question", "their answer", [])

        engine.ask("where is the login handler", repo_id, "u1")

        assert "someone else's question" not in generator.prompts[0]

    def test_list_turns_newest_first(self, engine, repo_id):
        engine.ask("where is the login handler", repo_id, "u1")
        engine.ask("what does the login handler do", repo_id, "u1")

        turns = engine.list_turns(repo_id, "u1")
        assert [t.question for t in turns] == ["what does the login handler do", "where is the login handler"]


class TestShortCircuits:
    def test_nothing_indexed(self, engine, records, generator):
        repo = records.create_repository(REPO_URL, "u1", "webapp", "acme/webapp")

        result = engine.ask("where is the login handler", repo.id, "u1")

        assert result.state is AnswerState.NOTHING_INDEXED
        assert "re-index" in result.answer.lower()
        assert generator.prompts == []
        assert records.count_turns(repo.id, "u1") == 0

    def test_no_match(self, embedder, vector_store, generator, records, clock, repo_id):
        engine = _engine(embedder, vector_store, generator, records, clock, score_threshold=0.99)

        result = engine.ask("what does the login handler do", repo_id, "u1")

        assert result.state is AnswerState.NO_MATCH
        assert "Found 2 chunks" in result.answer
        assert result.citations == []
        assert generator.prompts == []
        assert records.count_turns(repo_id, "u1") == 0


class TestQuotaAndFailures:
    def test_question_quota_checked_before_embedding(self, engine, repo_id, records, embedder, generator):
        for i in range(10):
            records.add_turn(repo_id, "u1", f"q{i}", f"a{i}", [])

        with pytest.raises(QuestionQuotaExceeded) as exc_info:
            engine.ask("where is the login handler", repo_id, "u1")

        assert exc_info.value.limit == 10
        assert embedder.query_calls == []
        assert generator.prompts == []
        assert records.count_turns(repo_id, "u1") == 10

    def test_quota_is_per_user(self, engine, repo_id, records):
        for i in range(10):
            records.add_turn(repo_id, "u1", f"q{i}", f"a{i}", [])

        assert engine.ask("where is the login handler", repo_id, "u2").history_saved.ok

    def test_embedding_failure_leaves_no_trace(self, engine, repo_id, embedder, generator, records):
        embedder.query_error = EmbeddingError("provider down")

        with pytest.raises(EmbeddingError):
            engine.ask("where is the login handler", repo_id, "u1")

        assert generator.prompts == []
        assert records.count_turns(repo_id, "u1") == 0

    def test_history_write_failure_still_answers(self, engine, repo_id, records, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageError("database is locked")

        monkeypatch.setattr(records, "add_turn", broken)

        result = engine.ask("where is the login handler", repo_id, "u1")

        assert result.answer == "The login flow lives in `auth/login.go`."
        assert not result.history_saved.ok
        assert result.history_saved.error == "database is locked"

    @pytest.mark.parametrize("question,repo,user", [
        ("", "r", "u1"),
        ("   ", "r", "u1"),
        ("q", "", "u1"),
        ("q", "r", ""),
    ])
    def test_missing_inputs(self, engine, embedder, question, repo, user):
        with pytest.raises(ValidationError):
            engine.ask(question, repo, user)
        assert embedder.query_calls == []

    def test_unknown_repository(self, engine):
        with pytest.raises(ValidationError):
            engine.ask("where is the login handler", "does-not-exist", "u1")
