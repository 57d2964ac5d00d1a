import asyncio
import logging
from typing import AsyncIterator, List, Optional, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph import END, StateGraph
from pydantic import BaseModel, ConfigDict

from checkmate.core.config import config, Config
from checkmate.core.errors import OrchestrationError, ValidationError
from checkmate.core.models import (
    Classification,
    CombinedContent,
    ContentItem,
    ErrorEvent,
    ExtractionResult,
    InvestigationEvent,
    InvestigationResult,
    InvestigationTypeEvent,
    ResultEvent,
    SourcesEvent,
)
from checkmate.services.budget import Deadline, timeout_message
from checkmate.services.classifier.agent import InvestigationTypeClassifier
from checkmate.services.combiner import combine
from checkmate.services.extraction.agent import ContentExtractor
from checkmate.services.investigation.router import AgentRouter

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

NO_CONTENT_EXTRACTED = "No content could be extracted"


class PipelineState(TypedDict, total=False):
    items: List[ContentItem]
    model: Optional[str]
    deadline: Deadline
    results: List[ExtractionResult]
    combined: CombinedContent
    classification: Classification
    error: Optional[str]


class PreparedInvestigation(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    results: List[ExtractionResult]
    combined: CombinedContent
    classification: Classification
    deadline: Deadline


class InvestigationPipeline:
    """
    extract -> combine -> (no content? stop) -> classify, as a LangGraph
    workflow, followed by the streaming agent for the chosen investigation type.
    """

    def __init__(
        self,
        settings: Config = config,
        extractor: Optional[ContentExtractor] = None,
        classifier: Optional[InvestigationTypeClassifier] = None,
        router: Optional[AgentRouter] = None,
    ):
        self.settings = settings
        self.extractor = extractor or ContentExtractor(settings)
        self.classifier = classifier or InvestigationTypeClassifier(settings)
        self.router = router or AgentRouter(settings)
        self.graph = self._build_graph()

    # === Nodes ===
    async def _extraction_node(self, state: PipelineState) -> PipelineState:
        results = await self.extractor.extract(state["items"], deadline=state["deadline"], model=state.get("model"))
        return {"results": results}

    async def _combine_node(self, state: PipelineState) -> PipelineState:
        deadline = state["deadline"]
        if deadline.expired():
            logger.error(f"Time budget of {deadline.seconds:.0f}s spent during extraction")
            raise OrchestrationError(timeout_message(deadline))
        combined = combine(state["results"])
        if combined.source_count == 0:
            reasons = "; ".join(f.error for f in combined.failures)
            logger.warning(f"All {len(combined.failures)} sources failed: {reasons}")
            error = f"{NO_CONTENT_EXTRACTED}: {reasons}" if reasons else NO_CONTENT_EXTRACTED
            return {"combined": combined, "error": error}
        return {"combined": combined}

    async def _classify_node(self, state: PipelineState) -> PipelineState:
        deadline = state["deadline"]
        try:
            classification = await asyncio.wait_for(
                self.classifier.classify(state["combined"], model=state.get("model")),
                timeout=deadline.remaining(),
            )
        except asyncio.TimeoutError as e:
            raise OrchestrationError(timeout_message(deadline)) from e
        return {"classification": classification}

    def _build_graph(self):
        workflow = StateGraph(PipelineState)
        workflow.add_node("extraction", self._extraction_node)
        workflow.add_node("combine", self._combine_node)
        workflow.add_node("classify", self._classify_node)

        workflow.set_entry_point("extraction")
        workflow.add_edge("extraction", "combine")
        workflow.add_conditional_edges(
            "combine",
            lambda state: "end" if state.get("error") else "classify",
            {"end": END, "classify": "classify"},
        )
        workflow.add_edge("classify", END)
        return workflow.compile()

    # === Public API ===
    async def prepare(
        self,
        items: List[ContentItem],
        model: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> PreparedInvestigation:
        """
        Extract, combine and classify.

        Raises:
            ValidationError: when no source produced any text.
            OrchestrationError: when the time budget runs out.
        """
        deadline = deadline or Deadline(self.settings.MAX_DURATION_SECONDS)
        state = await self.graph.ainvoke({"items": items, "model": model, "deadline": deadline, "error": None})
        if state.get("error"):
            raise ValidationError(state["error"])
        return PreparedInvestigation(
            results=state["results"],
            combined=state["combined"],
            classification=state["classification"],
            deadline=deadline,
        )

    async def stream(
        self,
        prepared: PreparedInvestigation,
        history: Optional[List[BaseMessage]] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[InvestigationEvent]:
        yield SourcesEvent(sources=prepared.combined.sources, failures=prepared.combined.failures)
        yield InvestigationTypeEvent(
            investigation_type=prepared.classification.investigation_type,
            used_fallback=prepared.classification.used_fallback,
        )

        events = self.router.stream(
            prepared.classification.investigation_type,
            prepared.combined,
            history=history,
            model=model,
            deadline=prepared.deadline,
        )
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()

    async def run(
        self,
        items: List[ContentItem],
        history: Optional[List[BaseMessage]] = None,
        model: Optional[str] = None,
    ) -> InvestigationResult:
        """Non-streaming investigation: the terminal result, or OrchestrationError."""
        prepared = await self.prepare(items, model=model)
        async for event in self.stream(prepared, history=history, model=model):
            if isinstance(event, ResultEvent):
                return event.result
            if isinstance(event, ErrorEvent):
                raise OrchestrationError(event.error)
        raise OrchestrationError("The investigation ended without a result.")
