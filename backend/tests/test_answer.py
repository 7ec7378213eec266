"""Tests for retrieval-augmented answering."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import FakeLLM

from lorekeeper.core.errors import EmptyQuestionError, NotFoundError, ValidationError
from lorekeeper.ingest.pipeline import IngestionPipeline
from lorekeeper.ingest.types import DocumentInput
from lorekeeper.models.entities import QueryContext, QueryStatus
from lorekeeper.retrieval.answer import NO_CONTEXT_ANSWER, SYSTEM_PROMPT, AnswerStore, RAGAnswerService, build_prompt
from lorekeeper.retrieval.vector_index import SearchResult, VectorStore

DEPLOY_TEXT = "Deployments run every Tuesday after the release review"


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM(reply="Deployments happen on Tuesdays.")


@pytest.fixture
def pipeline(db, settings, llm) -> IngestionPipeline:
    return IngestionPipeline(db, settings, embedder=llm)


@pytest.fixture
def service(db, settings, llm) -> RAGAnswerService:
    return RAGAnswerService(AnswerStore(db), VectorStore(db), llm, settings)


def _ingest(pipeline: IngestionPipeline, content: str, instance_id: str = "inst-1", title: str = "Runbook"):
    return pipeline.ingest(
        DocumentInput(instance_id=instance_id, title=title, content=content, type="text", url="https://wiki/runbook")
    )


def test_answer_cites_matching_chunk(service, pipeline, llm) -> None:
    document = _ingest(pipeline, DEPLOY_TEXT)
    _ingest(pipeline, "Lunch menu lists soup salad bread", title="Cafeteria")

    answer = service.answer_question("inst-1", DEPLOY_TEXT, QueryContext(source="chat", channel="C1"))

    assert answer.content == "Deployments happen on Tuesdays."
    assert answer.model == "fake/model"
    assert len(answer.citations) == 1
    citation = answer.citations[0]
    assert citation.document_id == document.id
    assert citation.chunk_id == document.chunks[0].id
    assert citation.title == "Runbook"
    assert citation.url == "https://wiki/runbook"
    assert citation.excerpt == DEPLOY_TEXT
    assert citation.relevance == pytest.approx(1.0, abs=1e-5)
    assert answer.confidence == pytest.approx(citation.relevance)

    query = service.store.get_query(answer.query_id)
    assert query.status is QueryStatus.ANSWERED
    assert query.context.channel == "C1"
    assert service.get_answer(answer.id).citations == answer.citations


def test_prompt_lists_retrieved_context(service, pipeline, llm) -> None:
    _ingest(pipeline, DEPLOY_TEXT)
    service.answer_question("inst-1", DEPLOY_TEXT)
    system_prompt, user_prompt = llm.prompts[0]
    assert system_prompt == SYSTEM_PROMPT
    assert user_prompt.startswith("Context:\n\n[Document 1: Runbook]\n" + DEPLOY_TEXT)
    assert user_prompt.endswith(f"Question: {DEPLOY_TEXT}\n\nAnswer: ")


def test_no_relevant_context_skips_completion(service, pipeline, llm) -> None:
    _ingest(pipeline, "Lunch menu lists soup salad bread")
    answer = service.answer_question("inst-1", "When do deployments run?")
    assert answer.content == NO_CONTEXT_ANSWER
    assert answer.citations == []
    assert answer.confidence == 0.0
    assert answer.model is None
    assert llm.prompts == []
    assert service.store.get_query(answer.query_id).status is QueryStatus.ANSWERED


@pytest.mark.parametrize("question", ["", "   "])
def test_empty_question_is_rejected_before_any_work(service, llm, db, question) -> None:
    with pytest.raises(EmptyQuestionError):
        service.answer_question("inst-1", question)
    assert llm.embedded == []
    assert db.query_one("SELECT COUNT(*) AS n FROM queries")["n"] == 0


def test_generation_failure_marks_query_failed(service, pipeline, llm, db) -> None:
    _ingest(pipeline, DEPLOY_TEXT)
    llm.fail_with = RuntimeError("provider down")
    with pytest.raises(RuntimeError, match="provider down"):
        service.answer_question("inst-1", DEPLOY_TEXT)
    row = db.query_one("SELECT id, status, error FROM queries")
    assert row["status"] == QueryStatus.FAILED.value
    assert row["error"] == "provider down"
    assert db.query_one("SELECT COUNT(*) AS n FROM answers")["n"] == 0


def test_search_is_scoped_to_instance(service, pipeline) -> None:
    _ingest(pipeline, DEPLOY_TEXT, instance_id="other")
    answer = service.answer_question("inst-1", DEPLOY_TEXT)
    assert answer.content == NO_CONTEXT_ANSWER


def test_citations_are_limited_to_top_k(service, pipeline, settings) -> None:
    for index in range(settings.top_k + 2):
        _ingest(pipeline, DEPLOY_TEXT, title=f"Copy {index}")
    answer = service.answer_question("inst-1", DEPLOY_TEXT)
    assert len(answer.citations) == settings.top_k
    scores = [citation.relevance for citation in answer.citations]
    assert scores == sorted(scores, reverse=True)


def test_feedback_is_stored_and_validated(service, pipeline) -> None:
    _ingest(pipeline, DEPLOY_TEXT)
    answer = service.answer_question("inst-1", DEPLOY_TEXT)

    updated = service.store.add_feedback(answer.id, is_helpful=True, rating=4, comment="useful")
    assert updated.feedback is not None
    assert (updated.feedback.is_helpful, updated.feedback.rating, updated.feedback.comment) == (True, 4, "useful")

    with pytest.raises(ValidationError):
        service.store.add_feedback(answer.id, is_helpful=False, rating=0)
    with pytest.raises(NotFoundError):
        service.store.add_feedback("missing", is_helpful=False, rating=3)
    with pytest.raises(NotFoundError):
        service.get_answer("missing")


def test_build_prompt_numbers_documents() -> None:
    results = [
        SearchResult(chunk_id="c1", document_id="d1", title="A", url=None, content="alpha", score=0.9),
        SearchResult(chunk_id="c2", document_id="d2", title="B", url=None, content="beta", score=0.8),
    ]
    assert build_prompt("Why?", results) == (
        "Context:\n\n[Document 1: A]\nalpha\n\n[Document 2: B]\nbeta\n\nQuestion: Why?\n\nAnswer: "
    )


def test_concurrent_questions_keep_their_own_citations(service, pipeline, db) -> None:
    lunch = "Lunch menu lists soup salad bread"
    documents = {DEPLOY_TEXT: _ingest(pipeline, DEPLOY_TEXT), lunch: _ingest(pipeline, lunch, title="Cafeteria")}
    questions = [DEPLOY_TEXT, lunch] * 4

    with ThreadPoolExecutor(max_workers=4) as executor:
        answers = list(executor.map(lambda question: service.answer_question("inst-1", question), questions))

    for question, answer in zip(questions, answers):
        assert [citation.document_id for citation in answer.citations] == [documents[question].id]
    assert db.query_one("SELECT COUNT(*) AS n FROM queries WHERE status = 'answered'")["n"] == len(questions)
    assert db.query_one("SELECT COUNT(*) AS n FROM answers")["n"] == len(questions)
