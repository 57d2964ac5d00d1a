import json
import logging
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Tuple

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from langchain_core.messages import BaseMessage

from checkmate.api.v1.models import (
    AnalyzeTextRequest,
    InvestigateRequest,
    PreviewRequest,
    SaveInvestigationRequest,
    SaveInvestigationResponse,
    VerifyClaimRequest,
)
from checkmate.core.config import config
from checkmate.core.errors import ValidationError
from checkmate.core.history import InvestigationHistory
from checkmate.core.models import ContentItem, ErrorEvent, InvestigationEvent
from checkmate.services.budget import Deadline
from checkmate.services.fact_checker.agent import ClaimVerificationAgent
from checkmate.services.investigation.router import chat_history
from checkmate.services.normalizer import (
    NO_CONTENT_MESSAGE,
    items_from_message,
    message_text,
    normalize_submission,
)
from checkmate.services.orchestrator import InvestigationPipeline
from checkmate.services.preview import PreviewService
from checkmate.services.spans.agent import SpanAnalyzer

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

router = APIRouter(prefix=config.API_PREFIX, tags=["v1"])


# === Dependencies (overridden in tests) ===

@lru_cache
def get_pipeline() -> InvestigationPipeline:
    return InvestigationPipeline()


@lru_cache
def get_span_analyzer() -> SpanAnalyzer:
    return SpanAnalyzer()


@lru_cache
def get_claim_verifier() -> ClaimVerificationAgent:
    return ClaimVerificationAgent()


@lru_cache
def get_preview_service() -> PreviewService:
    return PreviewService()


@lru_cache
def get_history() -> InvestigationHistory:
    return InvestigationHistory()


# === Investigation ===

def investigation_input(request: InvestigateRequest) -> Tuple[List[ContentItem], List[BaseMessage]]:
    """Content items and prior chat history for an investigate request."""
    if request.messages:
        messages = [m.model_dump(exclude_none=True) for m in request.messages]
        last = messages[-1]
        if last.get("role") != "user":
            raise ValidationError("Last message must be from user")
        items = items_from_message(last)
        if not items:
            raise ValidationError(NO_CONTENT_MESSAGE)
        return items, chat_history(messages[:-1], message_text)

    submission = request.direct_submission()
    if submission is None:
        raise ValidationError("Messages array is required")
    return normalize_submission(submission), []


def _frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def event_stream(events: AsyncIterator[InvestigationEvent]) -> AsyncIterator[str]:
    """Server-sent events framing; failures after the stream started become an error frame."""
    try:
        async for event in events:
            yield _frame(event.to_wire())
    except Exception:
        logger.exception("Investigation stream failed")
        yield _frame(ErrorEvent(error="The investigation failed due to an unexpected error.").to_wire())
    finally:
        await events.aclose()


@router.post("/investigate")
async def investigate(request: InvestigateRequest, pipeline: InvestigationPipeline = Depends(get_pipeline)):
    """
    Runs extraction, classification and the investigation agent.
    Validation and extraction failures are plain JSON errors; once the stream
    has started, failures arrive as a terminal ``error`` event.
    """
    deadline = Deadline(pipeline.settings.MAX_DURATION_SECONDS)
    items, history = investigation_input(request)
    logger.info(f"Investigation requested with {len(items)} source(s): {[i.kind.value for i in items]}")

    prepared = await pipeline.prepare(items, model=request.model, deadline=deadline)
    return StreamingResponse(
        event_stream(pipeline.stream(prepared, history=history, model=request.model)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# === Text review ===

@router.post("/analyze-text")
async def analyze_text(request: AnalyzeTextRequest, analyzer: SpanAnalyzer = Depends(get_span_analyzer)):
    if not isinstance(request.text, str):
        raise ValidationError("Request body must include a text string.")
    analysis = await analyzer.analyze(request.text)
    return analysis.to_wire()


@router.post("/verify-claim")
async def verify_claim(request: VerifyClaimRequest, verifier: ClaimVerificationAgent = Depends(get_claim_verifier)):
    if not isinstance(request.claim, str):
        raise ValidationError("Request body must include a claim string.")
    context = request.context if isinstance(request.context, str) else None
    verification = await verifier.verify(request.claim, context)
    return verification.to_wire()


@router.post("/preview")
async def preview(request: PreviewRequest, service: PreviewService = Depends(get_preview_service)):
    result = await service.preview(request.url or "")
    return result.to_wire()


# === History ===

@router.post("/investigations", response_model=SaveInvestigationResponse)
async def save_investigation(request: SaveInvestigationRequest, history: InvestigationHistory = Depends(get_history)):
    record = await history.save(
        user_query=request.user_query,
        results=request.results,
        user_source_content=request.user_source_content,
        graph_data=request.graph_data,
        timestamp=request.timestamp,
    )
    return SaveInvestigationResponse(id=record.id)


@router.get("/investigations")
async def list_investigations(history: InvestigationHistory = Depends(get_history)):
    return [record.to_wire() for record in await history.list_recent()]


@router.get("/investigations/{record_id}")
async def get_investigation(record_id: str, history: InvestigationHistory = Depends(get_history)):
    record = await history.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Investigation not found")
    return record.to_wire()


@router.delete("/investigations/{record_id}")
async def delete_investigation(record_id: str, history: InvestigationHistory = Depends(get_history)):
    if not await history.delete(record_id):
        raise HTTPException(status_code=404, detail="Investigation not found")
    return {"deleted": True, "id": record_id}
