import logging
from typing import Any, Dict, List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from checkmate.core.config import config, Config
from checkmate.core.errors import OrchestrationError
from checkmate.core.models import FactBiasSentimentSpan, SpanAnalysis
from checkmate.services.llm_wrapper import llm_wrapper

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

SPAN_TYPES = ("fact", "bias", "sentiment")


class RawSpan(BaseModel):
    start: int = Field(..., description="Start character index (0-based, inclusive) in the original text")
    end: int = Field(..., description="End character index (0-based, exclusive) in the original text")
    text: str = Field(..., description="The exact substring from start to end")
    type: str = Field(..., description="fact | bias | sentiment")
    subtype: Optional[str] = Field(None, description='e.g. "statistic", "political_bias", "positive_sentiment"')
    confidence: float = Field(..., ge=0, le=1)
    shortExplanation: str = Field(..., description="One-sentence explanation of why this span was highlighted")


class RawSpanList(BaseModel):
    spans: List[RawSpan] = Field(..., description="Highlighted spans within the original text")


class SpanAnalyzer:
    """
    Single-call annotator that tags fact, bias and sentiment spans with
    character offsets. Every span returned is a valid, non-blank slice of the
    analyzed text; anything else the model emits is dropped.
    """

    def __init__(self, settings: Config = config, llm: Optional[BaseChatModel] = None):
        self.settings = settings
        self._llm = llm
        self.parser = JsonOutputParser(pydantic_object=RawSpanList)

        self.prompt = ChatPromptTemplate.from_messages([
            ("system", """
You are a careful annotator that highlights parts of text related to factual claims, bias, and sentiment.

Identify sentences or short phrases that are:
- fact: concrete factual statements that could be verified (numbers, dates, named events, scientific or historical claims, quotes)
- bias: language showing political, demographic, ideological or other bias, including framing or loaded wording
- sentiment: clear emotional tone (strong praise, fear, anger, etc.)

For each span:
- Use 0-based character indices (start inclusive, end exclusive) into the ORIGINAL TEXT exactly as given.
- "text" MUST be the exact substring from start to end. Do not modify or normalize the text.
- Prefer fewer, higher-value spans (at most 30) that do not overlap heavily.
- Do NOT mark neutral, descriptive sentences as bias or sentiment.

{format_instructions}
"""),
            ("human", 'TEXT:\n"""{text}"""'),
        ])

    @property
    def llm(self) -> BaseChatModel:
        return self._llm or llm_wrapper.get_llm()

    @staticmethod
    def validate_spans(text: str, raw_spans: List[Any]) -> List[FactBiasSentimentSpan]:
        """
        Keep spans with ``0 <= start < end <= len(text)``, a known type and a
        non-blank slice. Span text is overwritten with the actual slice. The
        result is ordered by start; ties keep emission order.
        """
        valid = []
        for index, raw in enumerate(raw_spans):
            if not isinstance(raw, dict):
                logger.warning(f"Discarding span #{index}: not an object")
                continue
            start, end = raw.get("start"), raw.get("end")
            if not isinstance(start, int) or not isinstance(end, int) or isinstance(start, bool) or isinstance(end, bool):
                logger.warning(f"Discarding span #{index}: non-integer offsets {start!r}..{end!r}")
                continue
            if start < 0 or end <= start or end > len(text):
                logger.warning(f"Discarding span #{index}: offsets {start}..{end} outside text of length {len(text)}")
                continue
            span_type = str(raw.get("type", "")).strip().lower()
            if span_type not in SPAN_TYPES:
                logger.warning(f"Discarding span #{index}: unsupported type {raw.get('type')!r}")
                continue
            slice_ = text[start:end]
            if not slice_.strip():
                logger.warning(f"Discarding span #{index}: blank slice")
                continue

            confidence = raw.get("confidence")
            if not isinstance(confidence, (int, float)) or isinstance(confidence, bool) or not 0 <= confidence <= 1:
                confidence = None
            valid.append(FactBiasSentimentSpan(
                start=start,
                end=end,
                type=span_type,
                short_explanation=str(raw.get("shortExplanation") or raw.get("short_explanation") or ""),
                text=slice_,
                subtype=raw.get("subtype") if isinstance(raw.get("subtype"), str) else None,
                confidence=confidence,
            ))

        # sorted() is stable, so equal starts keep emission order.
        return sorted(valid, key=lambda span: span.start)

    async def analyze(self, text: str) -> SpanAnalysis:
        text = text or ""
        truncated = len(text) > self.settings.SPAN_MAX_TEXT_LENGTH
        analyzed = text[: self.settings.SPAN_MAX_TEXT_LENGTH]
        if not analyzed.strip():
            return SpanAnalysis(text=analyzed, spans=[], truncated=truncated)

        chain = self.prompt | self.llm | self.parser
        try:
            raw: Dict[str, Any] = await chain.ainvoke({
                "text": analyzed,
                "format_instructions": self.parser.get_format_instructions(),
            })
        except Exception as e:
            logger.error(f"Span analysis failed: {e}")
            raise OrchestrationError("Failed to analyze text.") from e

        raw_spans = raw.get("spans") if isinstance(raw, dict) else None
        if not isinstance(raw_spans, list):
            raw_spans = []
        spans = self.validate_spans(analyzed, raw_spans)
        logger.info(f"Span analysis kept {len(spans)}/{len(raw_spans)} spans")
        return SpanAnalysis(text=analyzed, spans=spans, truncated=truncated)
