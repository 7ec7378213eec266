"""Question answering routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from lorekeeper.api.dependencies import get_answer_service
from lorekeeper.models.dto import AnswerResponse, AskRequest, FeedbackRequest
from lorekeeper.models.entities import QueryContext
from lorekeeper.retrieval.answer import RAGAnswerService

router = APIRouter()


@router.post("/ask", response_model=AnswerResponse, summary="Answer a question from indexed documents")
def ask(request: AskRequest, service: RAGAnswerService = Depends(get_answer_service)) -> AnswerResponse:
    context = QueryContext(source=request.source, channel=request.channel, thread_id=request.thread_id)
    answer = service.answer_question(request.instance_id, request.question, context)
    return AnswerResponse.from_entity(answer)


@router.get("/answers/{answer_id}", response_model=AnswerResponse, summary="Fetch a stored answer")
def get_answer(answer_id: str, service: RAGAnswerService = Depends(get_answer_service)) -> AnswerResponse:
    return AnswerResponse.from_entity(service.get_answer(answer_id))


@router.post(
    "/answers/{answer_id}/feedback",
    response_model=AnswerResponse,
    summary="Record feedback on an answer",
)
def add_feedback(
    answer_id: str,
    request: FeedbackRequest,
    service: RAGAnswerService = Depends(get_answer_service),
) -> AnswerResponse:
    answer = service.store.add_feedback(answer_id, request.is_helpful, request.rating, request.comment)
    return AnswerResponse.from_entity(answer)


__all__ = ["router"]
